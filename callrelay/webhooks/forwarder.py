"""Delivery of canonical events to the downstream target."""

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

import httpx
import structlog

from ..core.exceptions import NotFoundError
from ..storage import StorageService
from .models import CanonicalEvent, ForwardResult

logger = structlog.get_logger(__name__)


@dataclass
class RetryPolicy:
    """
    Backoff and classification rules for forwarding.

    Delays grow geometrically: with the defaults the waits after attempts
    1-4 are 5s, 15s, 45s and 135s, and every delay is capped at
    ``max_delay``. Every 5xx response is transient. A 4xx response is
    permanent unless its status is listed in ``retry_on_status``.
    """
    max_attempts: int = 5
    base_delay: float = 5.0
    multiplier: float = 3.0
    max_delay: float = 300.0
    retry_on_status: FrozenSet[int] = field(default_factory=lambda: frozenset({408, 429}))

    def calculate_delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) attempt fails."""
        delay = self.base_delay * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay)

    def is_retryable_status(self, status_code: int) -> bool:
        if 500 <= status_code < 600:
            return True
        return status_code in self.retry_on_status


@dataclass
class AttemptResult:
    """Result of a single delivery attempt."""
    success: bool
    retryable: bool = False
    status_code: Optional[int] = None
    error: Optional[str] = None
    response_time_ms: Optional[int] = None


class WebhookForwarder:
    """
    Forwards canonical events with retry support.

    Features:
    - Bearer-authenticated JSON POST to the configured target
    - Per-attempt request timeout
    - Exponential backoff with non-blocking sleeps
    - Optional deadline that cuts the retry loop short
    - Dead-letter storage under ``failed:<event id>`` and replay
    """

    USER_AGENT = "callrelay-forwarder/1.0"
    SOURCE_HEADER_VALUE = "resend-forwarder"

    def __init__(
        self,
        target_url: str,
        auth_token: str,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 10.0,
        storage: Optional[StorageService] = None,
        store_failed_payloads: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.target_url = target_url
        self._auth_token = auth_token
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.storage = storage
        self.store_failed_payloads = store_failed_payloads
        self._http_client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    async def start(self) -> None:
        """Create the HTTP client."""
        self._get_client()
        logger.info("Webhook forwarder started", target_url=self.target_url)

    async def stop(self) -> None:
        """Close the HTTP client if this forwarder created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.info("Webhook forwarder stopped")

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
                follow_redirects=False,
            )
            self._owns_client = True
        return self._http_client

    async def forward(
        self,
        event: CanonicalEvent,
        deadline: Optional[float] = None,
    ) -> ForwardResult:
        """
        Deliver an event, retrying transient failures.

        Args:
            event: The event to send
            deadline: Optional ``time.monotonic()`` value after which no
                further attempts are started

        Returns:
            ForwardResult of the last attempt
        """
        result = await self._deliver_with_retry(event, deadline)

        if not result.success and self.store_failed_payloads:
            result.stored_as_failed = await self._store_failed(event, result)

        return result

    async def replay_failed(self, event_id: str) -> ForwardResult:
        """
        Re-send a dead-lettered event.

        The stored entry is removed on success and updated on failure.

        Raises:
            NotFoundError: If no failed payload is stored under ``event_id``
        """
        record = await self.storage.get_failed_payload(event_id) if self.storage else None
        if not isinstance(record, dict) or "event" not in record:
            raise NotFoundError("Failed payload", event_id)

        event = CanonicalEvent.from_dict(record["event"])
        result = await self._deliver_with_retry(event, None)

        if result.success:
            await self.storage.delete_failed_payload(event_id)
            logger.info("Replayed failed webhook", webhook_id=event_id, attempts=result.attempts)
        else:
            record.update(self._failure_summary(result))
            record["replayCount"] = record.get("replayCount", 0) + 1
            await self.storage.store_failed_payload(event_id, record)
            logger.warning(
                "Replay of failed webhook did not succeed",
                webhook_id=event_id,
                status_code=result.status_code,
                error=result.error,
            )

        return result

    async def _deliver_with_retry(
        self,
        event: CanonicalEvent,
        deadline: Optional[float],
    ) -> ForwardResult:
        """Deliver an event with retry logic."""
        body = json.dumps(event.to_dict())
        headers = self._build_headers(event)
        policy = self.retry_policy
        result = ForwardResult(success=False)

        for attempt_num in range(1, policy.max_attempts + 1):
            attempt = await self._deliver_event(body, headers)

            result.attempts = attempt_num
            result.status_code = attempt.status_code
            result.error = attempt.error

            if attempt.success:
                result.success = True
                logger.info(
                    "Webhook forwarded",
                    webhook_id=event.id,
                    event_type=event.event_type,
                    status_code=attempt.status_code,
                    attempt=attempt_num,
                    response_time_ms=attempt.response_time_ms,
                )
                return result

            if not attempt.retryable:
                logger.error(
                    "Webhook rejected by target",
                    webhook_id=event.id,
                    status_code=attempt.status_code,
                    attempt=attempt_num,
                )
                return result

            if attempt_num >= policy.max_attempts:
                break

            delay = policy.calculate_delay(attempt_num)
            if deadline is not None and time.monotonic() + delay > deadline:
                logger.warning(
                    "Forward deadline reached, abandoning retries",
                    webhook_id=event.id,
                    attempt=attempt_num,
                )
                return result

            logger.warning(
                "Webhook forward failed, retrying",
                webhook_id=event.id,
                attempt=attempt_num,
                max_attempts=policy.max_attempts,
                delay_seconds=delay,
                status_code=attempt.status_code,
                error=attempt.error,
            )
            await self._sleep(delay)

        logger.error(
            "Webhook forward failed permanently",
            webhook_id=event.id,
            event_type=event.event_type,
            attempts=result.attempts,
            status_code=result.status_code,
            error=result.error,
        )
        return result

    async def _deliver_event(self, body: str, headers: Dict[str, str]) -> AttemptResult:
        """Perform a single delivery attempt."""
        client = self._get_client()
        start_time = time.monotonic()

        try:
            response = await client.post(
                self.target_url,
                content=body,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            return AttemptResult(success=False, retryable=True, error="Request timeout")
        except httpx.TransportError as e:
            return AttemptResult(
                success=False,
                retryable=True,
                error=f"Connection error: {e.__class__.__name__}",
            )

        response_time_ms = int((time.monotonic() - start_time) * 1000)

        if 200 <= response.status_code < 300:
            return AttemptResult(
                success=True,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
            )

        return AttemptResult(
            success=False,
            retryable=self.retry_policy.is_retryable_status(response.status_code),
            status_code=response.status_code,
            error=f"HTTP {response.status_code}",
            response_time_ms=response_time_ms,
        )

    def _build_headers(self, event: CanonicalEvent) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._auth_token}",
            "User-Agent": self.USER_AGENT,
            "X-Webhook-Source": self.SOURCE_HEADER_VALUE,
            "X-Webhook-ID": event.id,
        }

    @staticmethod
    def _failure_summary(result: ForwardResult) -> Dict[str, Any]:
        return {
            "error": result.error,
            "statusCode": result.status_code,
            "attempts": result.attempts,
            "failedAt": datetime.now(timezone.utc).isoformat(),
        }

    async def _store_failed(self, event: CanonicalEvent, result: ForwardResult) -> bool:
        """Persist an undeliverable event for later replay."""
        if self.storage is None:
            logger.warning("No storage configured for failed payloads", webhook_id=event.id)
            return False

        record = {"event": event.to_dict()}
        record.update(self._failure_summary(result))
        await self.storage.store_failed_payload(event.id, record)
        logger.info("Stored failed webhook payload", webhook_id=event.id)
        return True
