"""Construction and lifecycle of the service graph."""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from .calls import BlandAIProvider, CallLifecycleManager, CallNotifier, CallProvider, LoggingNotifier
from .config import Settings
from .storage import KeyValueStore, StorageService, create_store
from .webhooks import (
    ResendEventTransformer,
    RetryPolicy,
    WebhookForwarder,
    WebhookPipeline,
    WebhookSigner,
)

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    """
    Every long-lived service, built once at startup.

    Routes receive these objects through FastAPI dependencies; nothing
    is kept in module globals.
    """
    settings: Settings
    store: KeyValueStore
    storage: StorageService
    forwarder: WebhookForwarder
    pipeline: WebhookPipeline
    provider: CallProvider
    call_manager: CallLifecycleManager
    call_webhook_signer: Optional[WebhookSigner] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: Optional[KeyValueStore] = None,
        provider: Optional[CallProvider] = None,
        notifier: Optional[CallNotifier] = None,
        forward_client: Optional[httpx.AsyncClient] = None,
    ) -> "ServiceContainer":
        """
        Wire services from settings.

        Args:
            settings: Validated settings
            store: Override the key/value backend
            provider: Override the voice provider
            notifier: Override the notification hooks
            forward_client: HTTP client for the downstream target

        Returns:
            An unstarted container; call ``start()`` before use
        """
        if store is None:
            store = create_store(
                settings.storage_backend,
                settings.redis_url,
                settings.storage_namespace,
            )
        storage = StorageService(
            store,
            default_ttl=settings.storage_default_ttl,
            lock_updates=settings.storage_lock_updates,
        )

        forwarder = WebhookForwarder(
            target_url=settings.target_webhook_url,
            auth_token=settings.target_webhook_auth_token,
            retry_policy=RetryPolicy(
                max_attempts=settings.forward_max_attempts,
                base_delay=settings.forward_retry_base_delay,
                multiplier=settings.forward_retry_multiplier,
                max_delay=settings.forward_retry_max_delay,
                retry_on_status=frozenset(settings.forward_retry_on_status),
            ),
            timeout=settings.forward_timeout_seconds,
            storage=storage,
            store_failed_payloads=settings.store_failed_payloads,
            http_client=forward_client,
        )

        pipeline = WebhookPipeline(
            signer=WebhookSigner(
                settings.webhook_signing_secret,
                max_age_seconds=settings.webhook_max_age_seconds,
            ),
            transformer=ResendEventTransformer(),
            forwarder=forwarder,
            debug=settings.debug_webhooks,
            forward_deadline_seconds=settings.forward_deadline_seconds,
        )

        if provider is None:
            provider = BlandAIProvider(
                api_key=settings.bland_ai_api_key,
                base_url=settings.bland_ai_base_url,
                agent_id=settings.bland_ai_agent_id,
                voice_id=settings.bland_ai_voice_id,
                webhook_url=settings.call_webhook_url,
                timeout=settings.bland_ai_timeout_seconds,
                max_call_duration_minutes=settings.max_call_duration_minutes,
            )

        call_manager = CallLifecycleManager(
            storage=storage,
            provider=provider,
            notifier=notifier if notifier is not None else LoggingNotifier(),
            max_call_duration_minutes=settings.max_call_duration_minutes,
        )

        call_webhook_signer = None
        if settings.bland_ai_webhook_secret:
            call_webhook_signer = WebhookSigner(
                settings.bland_ai_webhook_secret,
                max_age_seconds=settings.webhook_max_age_seconds,
            )

        return cls(
            settings=settings,
            store=store,
            storage=storage,
            forwarder=forwarder,
            pipeline=pipeline,
            provider=provider,
            call_manager=call_manager,
            call_webhook_signer=call_webhook_signer,
        )

    async def start(self) -> None:
        """Open connections."""
        await self.store.connect()
        await self.forwarder.start()
        await self.provider.start()
        logger.info(
            "Services started",
            storage="durable" if self.store.durable else "memory",
        )

    async def stop(self) -> None:
        """Close connections."""
        await self.provider.stop()
        await self.forwarder.stop()
        await self.store.close()
        logger.info("Services stopped")
