"""Webhook routes for Resend and call-provider callbacks."""

import json

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from ...calls.schemas import ProviderWebhookEvent
from ...container import ServiceContainer
from ...core.exceptions import AuthError, ForwardError, ValidationError
from ...webhooks import WebhookEnvelope
from ..dependencies import get_container

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


# =====================
# Resend Webhooks
# =====================


@router.post("/resend")
async def resend_webhook(
    request: Request,
    container: ServiceContainer = Depends(get_container),
):
    """Verify, normalize and forward a Resend webhook."""
    settings = container.settings

    config_errors = settings.webhook_config_errors()
    if config_errors:
        logger.error("Webhook configuration invalid", errors=config_errors)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Webhook configuration invalid",
                "details": config_errors,
            },
        )

    body = (await request.body()).decode("utf-8", errors="replace")
    envelope = WebhookEnvelope(
        body=body,
        signature=request.headers.get(settings.webhook_signature_header),
        timestamp=request.headers.get(settings.webhook_timestamp_header),
        headers=dict(request.headers),
    )

    result = await container.pipeline.process(envelope)
    return JSONResponse(status_code=result.status_code, content=result.to_response())


@router.get("/failed")
async def list_failed_webhooks(
    limit: int = Query(100, ge=1, le=1000),
    container: ServiceContainer = Depends(get_container),
):
    """List ids of events that could not be forwarded."""
    ids = await container.storage.list_failed_payload_ids(limit)
    return {"success": True, "data": ids}


@router.post("/failed/{event_id}/replay")
async def replay_failed_webhook(
    event_id: str,
    container: ServiceContainer = Depends(get_container),
):
    """Forward a dead-lettered event again."""
    result = await container.forwarder.replay_failed(event_id)
    if not result.success:
        raise ForwardError(upstream_status=result.status_code, attempts=result.attempts)

    return {
        "success": True,
        "webhookId": event_id,
        "statusCode": result.status_code,
        "attempts": result.attempts,
    }


# =====================
# Call Provider Webhooks
# =====================


@router.post("/calls")
async def call_provider_webhook(
    request: Request,
    container: ServiceContainer = Depends(get_container),
):
    """Apply a call status event from the voice provider."""
    settings = container.settings
    body = (await request.body()).decode("utf-8", errors="replace")

    signer = container.call_webhook_signer
    if signer is not None:
        verification = signer.verify(
            body,
            request.headers.get(settings.call_webhook_signature_header),
            request.headers.get(settings.call_webhook_timestamp_header),
        )
        if not verification.is_valid:
            logger.warning("Invalid call webhook signature", reason=verification.error)
            raise AuthError()

    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Invalid JSON payload")

    try:
        event = ProviderWebhookEvent.model_validate(payload)
    except PydanticValidationError:
        raise ValidationError("Invalid call webhook payload")

    return await container.call_manager.process_provider_webhook(event.model_dump())
