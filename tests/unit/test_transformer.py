"""Unit tests for Resend event transformation."""

import pytest

from callrelay.core.exceptions import ValidationError
from callrelay.webhooks import ResendEventTransformer, generate_webhook_id


@pytest.fixture
def transformer() -> ResendEventTransformer:
    return ResendEventTransformer(clock=lambda: 1_700_000_000.9, id_factory=lambda: "wh_test")


def _payload(event_type="email.delivered", **data):
    body = {
        "id": "em_123",
        "from": "Acme <noreply@acme.test>",
        "to": ["user@example.com"],
        "subject": "Welcome",
        "created_at": "2024-01-01T00:00:00Z",
    }
    body.update(data)
    return {"type": event_type, "created_at": "2024-01-01T00:00:05Z", "data": body}


class TestValidation:
    """Tests for payload validation."""

    def test_valid_payload(self, transformer):
        """Test a complete payload is valid."""
        assert transformer.validate(_payload()).is_valid is True

    @pytest.mark.parametrize(
        "raw,error",
        [
            ([], "Payload is not an object"),
            ({"data": {"id": "em_1"}}, "Missing event type"),
            ({"type": "email.sent"}, "Missing data object"),
            ({"type": "email.sent", "data": {}}, "Missing data object"),
            ({"type": "email.sent", "data": {"subject": "x"}}, "Missing email ID"),
        ],
    )
    def test_invalid_payloads(self, transformer, raw, error):
        """Test each structural problem is reported."""
        result = transformer.validate(raw)

        assert result.is_valid is False
        assert result.error == error

    def test_email_id_alias(self, transformer):
        """Test data.email_id is accepted in place of data.id."""
        raw = {"type": "email.sent", "data": {"email_id": "em_9"}}

        assert transformer.validate(raw).is_valid is True
        assert transformer.transform(raw).source_id == "em_9"

    def test_transform_rejects_invalid(self, transformer):
        """Test transform raises on an invalid payload."""
        with pytest.raises(ValidationError):
            transformer.transform({"type": "email.sent"})


class TestTransform:
    """Tests for canonical event construction."""

    def test_common_fields(self, transformer):
        """Test id, timestamp, source and metadata."""
        raw = _payload(delivered_at="2024-01-01T00:00:03Z")
        event = transformer.transform(raw)

        assert event.id == "wh_test"
        assert event.timestamp == 1_700_000_000
        assert event.event_type == "email.delivered"
        assert event.source_id == "em_123"
        assert event.source == "resend"
        assert event.payload["metadata"] == {
            "from": "Acme <noreply@acme.test>",
            "to": ["user@example.com"],
            "subject": "Welcome",
            "createdAt": "2024-01-01T00:00:00Z",
            "originalTimestamp": "2024-01-01T00:00:05Z",
            "deliveredAt": "2024-01-01T00:00:03Z",
        }
        assert event.payload["eventData"] == {}

    def test_original_payload_preserved(self, transformer):
        """Test the original body is copied, not referenced."""
        raw = _payload()
        event = transformer.transform(raw)

        raw["data"]["subject"] = "changed"

        assert event.original_payload["data"]["subject"] == "Welcome"

    def test_single_recipient_becomes_list(self, transformer):
        """Test a string recipient is wrapped in a list."""
        event = transformer.transform(_payload(to="solo@example.com"))

        assert event.payload["metadata"]["to"] == ["solo@example.com"]

    def test_bounced(self, transformer):
        """Test bounce details are extracted."""
        raw = _payload("email.bounced", bounce={"code": "550", "description": "Mailbox unavailable"})

        assert transformer.transform(raw).payload["eventData"] == {
            "bounceCode": "550",
            "bounceDescription": "Mailbox unavailable",
        }

    def test_opened(self, transformer):
        """Test open details are extracted."""
        raw = _payload("email.opened", open={"ip_address": "10.0.0.1", "user_agent": "Mail/1.0"})

        assert transformer.transform(raw).payload["eventData"] == {
            "ipAddress": "10.0.0.1",
            "userAgent": "Mail/1.0",
        }

    def test_clicked(self, transformer):
        """Test click details include the link."""
        raw = _payload(
            "email.clicked",
            click={"ip_address": "10.0.0.2", "user_agent": "Browser", "link": "https://acme.test/x"},
        )

        assert transformer.transform(raw).payload["eventData"] == {
            "ipAddress": "10.0.0.2",
            "userAgent": "Browser",
            "url": "https://acme.test/x",
        }

    def test_unknown_type_passes_through(self, transformer):
        """Test unknown event types are forwarded with a marker."""
        event = transformer.transform(_payload("contact.created"))

        assert event.event_type == "contact.created"
        assert event.payload["eventData"] == {"unknownEventType": "contact.created"}

    def test_to_dict_wire_format(self, transformer):
        """Test the downstream JSON keys."""
        data = transformer.transform(_payload()).to_dict()

        assert set(data) == {
            "id", "timestamp", "source", "eventType", "sourceId", "payload", "originalPayload",
        }


class TestWebhookIds:
    """Tests for webhook id generation."""

    def test_ids_are_unique(self):
        """Test generated ids do not repeat."""
        ids = {generate_webhook_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(i.startswith("wh_") for i in ids)
