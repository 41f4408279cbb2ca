"""
Voice Provider Clients

Outbound call scheduling against the Bland.ai REST API.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..core.exceptions import (
    NotFoundError,
    ProviderAuthError,
    ProviderConflictError,
    ProviderError,
    ProviderRateLimitError,
)
from .models import CallStatus

logger = structlog.get_logger(__name__)


@dataclass
class CallRequest:
    """Parameters for scheduling an outbound call."""
    phone_number: str
    scheduled_time: datetime
    duration_minutes: Optional[int] = None
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    topic: Optional[str] = None
    description: Optional[str] = None
    record: bool = True
    voice_id: Optional[str] = None
    agent_id: Optional[str] = None
    webhook_url: Optional[str] = None
    goals: List[str] = field(default_factory=list)
    constraints: List[str] = field(default_factory=list)


@dataclass
class ProviderCall:
    """Call as reported by the provider."""
    call_id: str
    status: Optional[CallStatus] = None
    phone_number: Optional[str] = None
    scheduled_time: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def to_iso(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class CallProvider(ABC):
    """Abstract voice-call provider."""

    @abstractmethod
    async def schedule_call(self, request: CallRequest) -> ProviderCall:
        """Schedule a call and return the provider's call id."""

    @abstractmethod
    async def get_call(self, call_id: str) -> ProviderCall:
        """Fetch a call's current provider-side state."""

    @abstractmethod
    async def cancel_call(self, call_id: str) -> None:
        """Cancel a scheduled call."""

    @abstractmethod
    async def reschedule_call(self, call_id: str, new_time: datetime) -> None:
        """Move a scheduled call to a new time."""

    async def start(self) -> None:
        """Open connections."""

    async def stop(self) -> None:
        """Close connections."""


class BlandAIProvider(CallProvider):
    """
    Bland.ai provider.

    Every request is authenticated with the API key as a bearer token.
    Provider errors are raised as typed ``ProviderError`` subclasses and
    are never retried here, since re-sending a schedule request can place
    a second call.
    """

    DEFAULT_BASE_URL = "https://api.bland.ai"
    AGENT_NAME = "AI Phone Agent"
    DEFAULT_GOALS = [
        "Join the scheduled call on time",
        "Participate in the conversation on the agreed topic",
        "Summarize outcomes and next steps before hanging up",
    ]
    DEFAULT_CONSTRAINTS = [
        "Stay within the scheduled duration",
        "Do not share confidential information",
    ]

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        agent_id: Optional[str] = None,
        voice_id: Optional[str] = None,
        webhook_url: Optional[str] = None,
        timeout: float = 30.0,
        max_call_duration_minutes: int = 30,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.agent_id = agent_id
        self.voice_id = voice_id
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.max_call_duration_minutes = max_call_duration_minutes
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
            self._owns_client = True
        return self._client

    async def start(self) -> None:
        self._get_client()

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def schedule_call(self, request: CallRequest) -> ProviderCall:
        payload = self._build_call_payload(request)
        data = await self._request("POST", "/v1/calls", json=payload)

        call_id = data.get("call_id")
        if not call_id:
            raise ProviderError("Call provider response did not include a call id")

        logger.info(
            "Provider call scheduled",
            call_id=call_id,
            scheduled_time=payload["scheduled_time"],
        )
        return ProviderCall(
            call_id=call_id,
            status=CallStatus.SCHEDULED,
            phone_number=request.phone_number,
            scheduled_time=payload["scheduled_time"],
            raw=data,
        )

    async def get_call(self, call_id: str) -> ProviderCall:
        data = await self._request("GET", f"/v1/calls/{call_id}", call_id=call_id)
        return ProviderCall(
            call_id=data.get("call_id", call_id),
            status=CallStatus.parse(data.get("status")),
            phone_number=data.get("phone_number"),
            scheduled_time=data.get("scheduled_time"),
            raw=data,
        )

    async def cancel_call(self, call_id: str) -> None:
        await self._request("POST", f"/v1/calls/{call_id}/cancel", call_id=call_id)
        logger.info("Provider call cancelled", call_id=call_id)

    async def reschedule_call(self, call_id: str, new_time: datetime) -> None:
        await self._request(
            "POST",
            f"/v1/calls/{call_id}/reschedule",
            json={"scheduled_time": to_iso(new_time)},
            call_id=call_id,
        )
        logger.info("Provider call rescheduled", call_id=call_id)

    def _build_call_payload(self, request: CallRequest) -> Dict[str, Any]:
        """Translate a CallRequest into the provider's request body."""
        duration = request.duration_minutes or self.max_call_duration_minutes
        duration = min(duration, self.max_call_duration_minutes)
        topic = request.topic or "Scheduled Call"

        payload: Dict[str, Any] = {
            "phone_number": request.phone_number,
            "scheduled_time": to_iso(request.scheduled_time),
            "task": f"Join and participate in call: {topic}",
            "max_duration": duration * 60,
            "record": request.record,
            "reduce_latency": True,
            "wait_for_greeting": True,
            "agent_config": {
                "name": self.AGENT_NAME,
                "goals": request.goals or list(self.DEFAULT_GOALS),
                "constraints": request.constraints or list(self.DEFAULT_CONSTRAINTS),
            },
        }

        agent_id = request.agent_id or self.agent_id
        if agent_id:
            payload["agent_id"] = agent_id
        voice_id = request.voice_id or self.voice_id
        if voice_id:
            payload["voice_id"] = voice_id
        webhook_url = request.webhook_url or self.webhook_url
        if webhook_url:
            payload["webhook_url"] = webhook_url
        if request.description:
            payload["description"] = request.description

        return payload

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        call_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a request and map failures onto provider errors."""
        client = self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.error("Provider request timed out", path=path, call_id=call_id)
            raise ProviderError("Call provider request timed out") from e
        except httpx.TransportError as e:
            logger.error(
                "Provider unreachable",
                path=path,
                call_id=call_id,
                error=e.__class__.__name__,
            )
            raise ProviderError("Call provider unreachable") from e

        if response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = {}
            return body if isinstance(body, dict) else {}

        self._raise_for_status(response, path, call_id)
        return {}

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or ""
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or "")
        return ""

    def _raise_for_status(
        self,
        response: httpx.Response,
        path: str,
        call_id: Optional[str],
    ) -> None:
        status = response.status_code
        logger.error(
            "Provider request failed",
            path=path,
            call_id=call_id,
            upstream_status=status,
        )

        if status == 429:
            raise ProviderRateLimitError()
        if status == 401:
            raise ProviderAuthError()
        if status == 400 and "scheduling conflict" in self._error_text(response).lower():
            raise ProviderConflictError()
        if status == 404:
            raise NotFoundError("Call", call_id or path)
        raise ProviderError(
            f"Call provider request failed with status {status}",
            upstream_status=status,
        )
