"""Unit tests for the Bland.ai provider client."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from callrelay.calls import BlandAIProvider, CallRequest, CallStatus
from callrelay.core.exceptions import (
    NotFoundError,
    ProviderAuthError,
    ProviderConflictError,
    ProviderError,
    ProviderRateLimitError,
)

WHEN = datetime(2030, 1, 1, 10, 0, tzinfo=timezone.utc)


def _provider(handler, **kwargs) -> BlandAIProvider:
    client = httpx.AsyncClient(
        base_url="https://api.bland.test",
        headers={"Authorization": "Bearer key_123"},
        transport=httpx.MockTransport(handler),
    )
    kwargs.setdefault("max_call_duration_minutes", 30)
    return BlandAIProvider(api_key="key_123", http_client=client, **kwargs)


def _status(code, body=None):
    def handler(request):
        return httpx.Response(code, json=body or {})

    return handler


class TestScheduleCall:
    """Tests for scheduling through Bland.ai."""

    @pytest.mark.asyncio
    async def test_request_payload(self):
        """Test the request body sent to the provider."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"call_id": "bl_1", "status": "queued"})

        provider = _provider(handler, agent_id="agent_1", webhook_url="https://relay.test/webhooks/calls")
        result = await provider.schedule_call(
            CallRequest(
                phone_number="+15551234567",
                scheduled_time=WHEN,
                duration_minutes=15,
                topic="Demo",
                description="Product walkthrough",
            )
        )

        assert result.call_id == "bl_1"
        assert result.status is CallStatus.SCHEDULED
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/calls"
        assert request.headers["Authorization"] == "Bearer key_123"

        body = json.loads(request.content)
        assert body["phone_number"] == "+15551234567"
        assert body["scheduled_time"] == "2030-01-01T10:00:00Z"
        assert body["task"] == "Join and participate in call: Demo"
        assert body["max_duration"] == 900
        assert body["record"] is True
        assert body["agent_id"] == "agent_1"
        assert body["webhook_url"] == "https://relay.test/webhooks/calls"
        assert body["description"] == "Product walkthrough"
        assert body["agent_config"]["name"] == "AI Phone Agent"
        assert "voice_id" not in body

    @pytest.mark.asyncio
    async def test_duration_capped(self):
        """Test the duration sent never exceeds the configured maximum."""
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"call_id": "bl_1"})

        provider = _provider(handler, max_call_duration_minutes=20)
        await provider.schedule_call(CallRequest("+1555", WHEN, duration_minutes=45))
        await provider.schedule_call(CallRequest("+1555", WHEN))

        assert seen[0]["max_duration"] == 1200
        assert seen[1]["max_duration"] == 1200
        assert seen[1]["task"] == "Join and participate in call: Scheduled Call"

    @pytest.mark.asyncio
    async def test_missing_call_id(self):
        """Test a success response without a call id is an error."""
        provider = _provider(_status(200, {"status": "ok"}))

        with pytest.raises(ProviderError):
            await provider.schedule_call(CallRequest("+1555", WHEN))


class TestErrorMapping:
    """Tests for provider error translation."""

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        """Test 429 maps to ProviderRateLimitError."""
        provider = _provider(_status(429))

        with pytest.raises(ProviderRateLimitError) as exc_info:
            await provider.schedule_call(CallRequest("+1555", WHEN))

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "Rate limit exceeded. Please try again later."

    @pytest.mark.asyncio
    async def test_auth_failed(self):
        """Test 401 maps to ProviderAuthError."""
        provider = _provider(_status(401))

        with pytest.raises(ProviderAuthError):
            await provider.cancel_call("bl_1")

    @pytest.mark.asyncio
    async def test_scheduling_conflict(self):
        """Test a 400 naming a scheduling conflict maps to ProviderConflictError."""
        provider = _provider(_status(400, {"error": "Scheduling conflict with another call"}))

        with pytest.raises(ProviderConflictError):
            await provider.reschedule_call("bl_1", WHEN)

    @pytest.mark.asyncio
    async def test_plain_bad_request(self):
        """Test other 400 responses pass through as ProviderError."""
        provider = _provider(_status(400, {"error": "invalid phone number"}))

        with pytest.raises(ProviderError) as exc_info:
            await provider.schedule_call(CallRequest("+1555", WHEN))

        assert not isinstance(exc_info.value, ProviderConflictError)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_not_found(self):
        """Test 404 maps to NotFoundError."""
        provider = _provider(_status(404))

        with pytest.raises(NotFoundError):
            await provider.get_call("bl_missing")

    @pytest.mark.asyncio
    async def test_server_error(self):
        """Test 5xx responses become 502 errors."""
        provider = _provider(_status(503))

        with pytest.raises(ProviderError) as exc_info:
            await provider.cancel_call("bl_1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.upstream_status == 503

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Test transport failures become ProviderError."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = _provider(handler)

        with pytest.raises(ProviderError) as exc_info:
            await provider.get_call("bl_1")

        assert exc_info.value.status_code == 502


class TestOtherOperations:
    """Tests for get, cancel and reschedule requests."""

    @pytest.mark.asyncio
    async def test_get_call(self):
        """Test reading a call's provider state."""
        provider = _provider(_status(200, {"call_id": "bl_1", "status": "completed"}))

        call = await provider.get_call("bl_1")

        assert call.call_id == "bl_1"
        assert call.status is CallStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_reschedule_request(self):
        """Test the reschedule endpoint and body."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        provider = _provider(handler)
        await provider.reschedule_call("bl_1", WHEN)
        await provider.cancel_call("bl_1")

        assert seen[0].url.path == "/v1/calls/bl_1/reschedule"
        assert json.loads(seen[0].content) == {"scheduled_time": "2030-01-01T10:00:00Z"}
        assert seen[1].url.path == "/v1/calls/bl_1/cancel"
