"""Resend webhook validation and normalization."""

import copy
import time
from typing import Any, Callable, Dict

from ..core.exceptions import ValidationError
from .models import (
    CanonicalEvent,
    ResendEventType,
    VerificationResult,
    generate_webhook_id,
)


class ResendEventTransformer:
    """
    Converts Resend webhook bodies into ``CanonicalEvent`` records.

    Only structurally broken payloads are rejected; event types this
    module does not know about are passed through so new Resend events
    reach the downstream consumer without a deploy.
    """

    SOURCE = "resend"

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = generate_webhook_id,
    ):
        self._clock = clock
        self._id_factory = id_factory

    def validate(self, raw: Any) -> VerificationResult:
        """Check the fields every Resend webhook carries."""
        if not isinstance(raw, dict):
            return VerificationResult.fail("Payload is not an object")

        if not raw.get("type") or not isinstance(raw["type"], str):
            return VerificationResult.fail("Missing event type")

        data = raw.get("data")
        if not isinstance(data, dict) or not data:
            return VerificationResult.fail("Missing data object")

        if not self._email_id(data):
            return VerificationResult.fail("Missing email ID")

        return VerificationResult.ok()

    def transform(self, raw: Dict[str, Any]) -> CanonicalEvent:
        """
        Normalize a validated payload.

        Args:
            raw: Parsed webhook body that passed ``validate``

        Returns:
            CanonicalEvent with a fresh id and processing timestamp

        Raises:
            ValidationError: If the payload is structurally invalid
        """
        result = self.validate(raw)
        if not result.is_valid:
            raise ValidationError(result.error)

        event_type = raw["type"]
        data = raw["data"]

        to = data.get("to")
        if to is None:
            recipients = []
        elif isinstance(to, list):
            recipients = to
        else:
            recipients = [to]

        metadata = {
            "from": data.get("from"),
            "to": recipients,
            "subject": data.get("subject"),
            "createdAt": data.get("created_at"),
            "originalTimestamp": raw.get("created_at"),
        }
        if data.get("delivered_at"):
            metadata["deliveredAt"] = data["delivered_at"]

        return CanonicalEvent(
            id=self._id_factory(),
            timestamp=int(self._clock()),
            event_type=event_type,
            source_id=str(self._email_id(data)),
            payload={
                "metadata": metadata,
                "eventData": self._event_data(event_type, data),
            },
            original_payload=copy.deepcopy(raw),
            source=self.SOURCE,
        )

    @staticmethod
    def _email_id(data: Dict[str, Any]) -> Any:
        return data.get("id") or data.get("email_id")

    @staticmethod
    def _event_data(event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Extract the fields specific to one event type."""
        if event_type == ResendEventType.EMAIL_BOUNCED.value:
            bounce = data.get("bounce") or {}
            return {
                "bounceCode": bounce.get("code", ""),
                "bounceDescription": bounce.get("description") or bounce.get("message", ""),
            }

        if event_type in (ResendEventType.EMAIL_OPENED.value, ResendEventType.EMAIL_CLICKED.value):
            # Resend nests click/open details under "click" or "open"; older payloads use "email"
            detail = data.get("click") or data.get("open") or data.get("email") or {}
            event_data = {
                "ipAddress": detail.get("ip_address") or detail.get("ipAddress", ""),
                "userAgent": detail.get("user_agent") or detail.get("userAgent", ""),
            }
            if event_type == ResendEventType.EMAIL_CLICKED.value:
                event_data["url"] = detail.get("url") or detail.get("link", "")
            return event_data

        if ResendEventType.is_known(event_type):
            return {}

        return {"unknownEventType": event_type}
