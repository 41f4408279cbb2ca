"""Unit tests for the webhook processing pipeline."""

import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from callrelay.webhooks import (
    ForwardResult,
    PipelineStage,
    ResendEventTransformer,
    WebhookEnvelope,
    WebhookPipeline,
    WebhookSigner,
)

SECRET = "whsec_pipeline"


def _body(**overrides):
    payload = {
        "type": "email.delivered",
        "created_at": "2024-01-01T00:00:00Z",
        "data": {"id": "em_42", "to": ["a@example.com"], "subject": "Hi"},
    }
    payload.update(overrides)
    return json.dumps(payload)


def _signed(body: str) -> WebhookEnvelope:
    signer = WebhookSigner(SECRET)
    ts = int(time.time())
    return WebhookEnvelope(body=body, signature=signer.sign(body, ts), timestamp=str(ts))


@pytest.fixture
def forwarder():
    mock = MagicMock()
    mock.forward = AsyncMock(return_value=ForwardResult(success=True, status_code=200, attempts=1))
    return mock


@pytest.fixture
def pipeline(forwarder) -> WebhookPipeline:
    return WebhookPipeline(
        signer=WebhookSigner(SECRET),
        transformer=ResendEventTransformer(),
        forwarder=forwarder,
    )


class TestWebhookPipeline:
    """Tests for WebhookPipeline.process."""

    @pytest.mark.asyncio
    async def test_success(self, pipeline, forwarder):
        """Test a valid webhook is forwarded once."""
        result = await pipeline.process(_signed(_body()))

        assert result.success is True
        assert result.status_code == 200
        assert result.stage == PipelineStage.DONE
        assert result.event_type == "email.delivered"
        assert result.webhook_id.startswith("wh_")
        forwarder.forward.assert_awaited_once()

        event = forwarder.forward.await_args.args[0]
        assert event.source_id == "em_42"

        response = result.to_response()
        assert response["success"] is True
        assert response["webhookId"] == result.webhook_id
        assert response["eventType"] == "email.delivered"

    @pytest.mark.asyncio
    async def test_invalid_signature(self, pipeline, forwarder):
        """Test a bad signature stops before forwarding."""
        envelope = _signed(_body())
        envelope.signature = "v1,0000"

        result = await pipeline.process(envelope)

        assert result.status_code == 401
        assert result.webhook_id == "invalid_signature"
        assert result.error == "Invalid signature"
        assert result.stage == PipelineStage.RECEIVED
        forwarder.forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_signature(self, pipeline):
        """Test a missing signature header is a 401."""
        result = await pipeline.process(WebhookEnvelope(body=_body(), timestamp=str(int(time.time()))))

        assert result.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_json(self, pipeline, forwarder):
        """Test a signed non-JSON body is a 400."""
        result = await pipeline.process(_signed("not json"))

        assert result.status_code == 400
        assert result.webhook_id == "invalid_json"
        assert result.error == "Invalid JSON payload"
        forwarder.forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_payload(self, pipeline, forwarder):
        """Test a structurally invalid payload is a 400 with the reason."""
        result = await pipeline.process(_signed(json.dumps({"type": "email.sent", "data": {"x": 1}})))

        assert result.status_code == 400
        assert result.webhook_id == "invalid_payload"
        assert result.error == "Missing email ID"
        assert result.stage == PipelineStage.SIGNATURE_CHECKED
        forwarder.forward.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forward_failure(self, pipeline, forwarder):
        """Test a failed delivery is a 502 carrying the event id."""
        forwarder.forward.return_value = ForwardResult(
            success=False, status_code=503, error="HTTP 503", attempts=5,
        )

        result = await pipeline.process(_signed(_body()))

        assert result.success is False
        assert result.status_code == 502
        assert result.webhook_id.startswith("wh_")
        assert result.error == "Failed to forward webhook"
        assert result.stage == PipelineStage.TRANSFORMED

    @pytest.mark.asyncio
    async def test_unexpected_error(self, pipeline, forwarder):
        """Test an unexpected exception is a 500."""
        forwarder.forward.side_effect = RuntimeError("boom")

        result = await pipeline.process(_signed(_body()))

        assert result.status_code == 500
        assert result.webhook_id == "error"
        assert result.error == "Error processing webhook"
        assert result.to_response() == {
            "success": False,
            "webhookId": "error",
            "error": "Error processing webhook",
            "statusCode": 500,
        }

    @pytest.mark.asyncio
    async def test_deadline_passed_to_forwarder(self, forwarder):
        """Test a configured deadline reaches the forwarder."""
        pipeline = WebhookPipeline(
            signer=WebhookSigner(SECRET),
            transformer=ResendEventTransformer(),
            forwarder=forwarder,
            forward_deadline_seconds=20.0,
        )
        before = time.monotonic()

        await pipeline.process(_signed(_body()))

        deadline = forwarder.forward.await_args.kwargs["deadline"]
        assert before + 19.0 < deadline <= time.monotonic() + 20.0

    @pytest.mark.asyncio
    async def test_debug_mode_does_not_change_result(self, forwarder):
        """Test debug logging leaves the outcome unchanged."""
        pipeline = WebhookPipeline(
            signer=WebhookSigner(SECRET),
            transformer=ResendEventTransformer(),
            forwarder=forwarder,
            debug=True,
        )

        result = await pipeline.process(_signed(_body()))

        assert result.success is True
        assert result.status_code == 200
        assert result.stage == PipelineStage.DONE
        forwarder.forward.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_each_delivery_gets_new_id(self, pipeline):
        """Test redelivering the same webhook yields a new id."""
        body = _body()

        first = await pipeline.process(_signed(body))
        second = await pipeline.process(_signed(body))

        assert first.webhook_id != second.webhook_id
