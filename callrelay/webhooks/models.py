"""Webhook data models."""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ResendEventType(str, Enum):
    """Email events emitted by Resend."""
    EMAIL_SENT = "email.sent"
    EMAIL_DELIVERED = "email.delivered"
    EMAIL_DELIVERY_DELAYED = "email.delivery_delayed"
    EMAIL_COMPLAINED = "email.complained"
    EMAIL_BOUNCED = "email.bounced"
    EMAIL_OPENED = "email.opened"
    EMAIL_CLICKED = "email.clicked"

    @classmethod
    def is_known(cls, value: str) -> bool:
        return value in cls._value2member_map_


class PipelineStage(str, Enum):
    """Stages a webhook passes through, in order."""
    RECEIVED = "received"
    SIGNATURE_CHECKED = "signature_checked"
    VALIDATED = "validated"
    TRANSFORMED = "transformed"
    FORWARDED = "forwarded"
    DONE = "done"


def generate_webhook_id() -> str:
    """Generate a unique id for a processed webhook."""
    return f"wh_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


@dataclass
class WebhookEnvelope:
    """Raw inbound webhook request."""
    body: str
    signature: Optional[str] = None
    timestamp: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class VerificationResult:
    """Outcome of a signature or payload check."""
    is_valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "VerificationResult":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, error: str) -> "VerificationResult":
        return cls(is_valid=False, error=error)


@dataclass
class CanonicalEvent:
    """Provider-agnostic representation of an inbound webhook."""
    id: str
    timestamp: int
    event_type: str
    source_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    original_payload: Dict[str, Any] = field(default_factory=dict)
    source: str = "resend"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire format sent downstream."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "source": self.source,
            "eventType": self.event_type,
            "sourceId": self.source_id,
            "payload": self.payload,
            "originalPayload": self.original_payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalEvent":
        """Rebuild an event from its wire format."""
        return cls(
            id=data["id"],
            timestamp=int(data["timestamp"]),
            event_type=data["eventType"],
            source_id=data["sourceId"],
            payload=data.get("payload") or {},
            original_payload=data.get("originalPayload") or {},
            source=data.get("source", "resend"),
        )


@dataclass
class ForwardResult:
    """Result of forwarding one event downstream."""
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 0
    stored_as_failed: bool = False


@dataclass
class PipelineResult:
    """Terminal result of processing one webhook."""
    success: bool
    status_code: int
    webhook_id: str
    stage: PipelineStage
    event_type: Optional[str] = None
    timestamp: Optional[int] = None
    error: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        """Convert to the HTTP response body."""
        if self.success:
            return {
                "success": True,
                "webhookId": self.webhook_id,
                "eventType": self.event_type,
                "timestamp": self.timestamp,
                "statusCode": self.status_code,
            }
        return {
            "success": False,
            "webhookId": self.webhook_id,
            "error": self.error,
            "statusCode": self.status_code,
        }
