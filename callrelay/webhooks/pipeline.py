"""Verify, transform and forward one inbound webhook."""

import json
import time
from typing import Optional

import structlog

from .forwarder import WebhookForwarder
from .models import PipelineResult, PipelineStage, WebhookEnvelope
from .signing import WebhookSigner
from .transformer import ResendEventTransformer

logger = structlog.get_logger(__name__)


class WebhookPipeline:
    """
    Orchestrates signature check, validation, transformation and delivery.

    Each request moves through ``PipelineStage`` in order and stops at the
    first failure with a stage-specific status code:

    - 401 when the signature check fails
    - 400 when the body is not JSON or fails validation
    - 502 when the target could not be reached or rejected the event
    - 500 for anything unexpected

    Debug mode logs the payload, verification result, transformed event and
    forward outcome. It never changes the result.
    """

    def __init__(
        self,
        signer: WebhookSigner,
        transformer: ResendEventTransformer,
        forwarder: WebhookForwarder,
        debug: bool = False,
        forward_deadline_seconds: Optional[float] = None,
    ):
        self.signer = signer
        self.transformer = transformer
        self.forwarder = forwarder
        self.debug = debug
        self.forward_deadline_seconds = forward_deadline_seconds

    async def process(self, envelope: WebhookEnvelope) -> PipelineResult:
        """Run one webhook through the pipeline."""
        stage = PipelineStage.RECEIVED
        try:
            if self.debug:
                logger.info(
                    "Webhook received",
                    body=envelope.body,
                    has_signature=bool(envelope.signature),
                    timestamp=envelope.timestamp,
                )

            verification = self.signer.verify(envelope.body, envelope.signature, envelope.timestamp)
            if self.debug:
                logger.info(
                    "Signature verification",
                    is_valid=verification.is_valid,
                    error=verification.error,
                )
            if not verification.is_valid:
                logger.warning("Invalid webhook signature", reason=verification.error)
                return self._failure(stage, 401, "invalid_signature", "Invalid signature")
            stage = PipelineStage.SIGNATURE_CHECKED

            try:
                raw = json.loads(envelope.body)
            except ValueError:
                logger.warning("Webhook body is not valid JSON")
                return self._failure(stage, 400, "invalid_json", "Invalid JSON payload")

            validation = self.transformer.validate(raw)
            if not validation.is_valid:
                logger.warning("Invalid webhook payload", reason=validation.error)
                return self._failure(stage, 400, "invalid_payload", validation.error)
            stage = PipelineStage.VALIDATED

            event = self.transformer.transform(raw)
            stage = PipelineStage.TRANSFORMED
            if self.debug:
                logger.info("Webhook transformed", canonical_event=event.to_dict())

            deadline = None
            if self.forward_deadline_seconds:
                deadline = time.monotonic() + self.forward_deadline_seconds

            result = await self.forwarder.forward(event, deadline=deadline)
            if self.debug:
                logger.info(
                    "Forward outcome",
                    webhook_id=event.id,
                    success=result.success,
                    status_code=result.status_code,
                    attempts=result.attempts,
                    error=result.error,
                )
            if not result.success:
                return self._failure(
                    stage,
                    502,
                    event.id,
                    "Failed to forward webhook",
                    event_type=event.event_type,
                    timestamp=event.timestamp,
                )
            stage = PipelineStage.FORWARDED

        except Exception:
            logger.exception("Error processing webhook", stage=stage.value)
            return self._failure(stage, 500, "error", "Error processing webhook")

        logger.info(
            "Webhook processed",
            webhook_id=event.id,
            event_type=event.event_type,
            source_id=event.source_id,
        )
        return PipelineResult(
            success=True,
            status_code=200,
            webhook_id=event.id,
            stage=PipelineStage.DONE,
            event_type=event.event_type,
            timestamp=event.timestamp,
        )

    @staticmethod
    def _failure(
        stage: PipelineStage,
        status_code: int,
        webhook_id: str,
        error: str,
        event_type: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> PipelineResult:
        return PipelineResult(
            success=False,
            status_code=status_code,
            webhook_id=webhook_id,
            stage=stage,
            event_type=event_type,
            timestamp=timestamp,
            error=error,
        )
