"""
Webhook Relay Module

Verifies inbound Resend webhooks, normalizes them into canonical events
and forwards them to the configured target.
"""

from .forwarder import RetryPolicy, WebhookForwarder
from .models import (
    CanonicalEvent,
    ForwardResult,
    PipelineResult,
    PipelineStage,
    ResendEventType,
    VerificationResult,
    WebhookEnvelope,
    generate_webhook_id,
)
from .pipeline import WebhookPipeline
from .signing import WebhookSigner
from .transformer import ResendEventTransformer

__all__ = [
    "CanonicalEvent",
    "ForwardResult",
    "PipelineResult",
    "PipelineStage",
    "ResendEventTransformer",
    "ResendEventType",
    "RetryPolicy",
    "VerificationResult",
    "WebhookEnvelope",
    "WebhookForwarder",
    "WebhookPipeline",
    "WebhookSigner",
    "generate_webhook_id",
]
