"""Shared pytest fixtures for testing."""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "development"

from callrelay.calls import CallProvider, CallRequest, CallStatus, ProviderCall  # noqa: E402
from callrelay.config import Settings  # noqa: E402
from callrelay.storage import InMemoryStore, StorageService  # noqa: E402

TEST_SECRET = "whsec_test_secret"
TARGET_URL = "https://target.example.com/hooks/email"
TARGET_TOKEN = "target_token_123"


class FakeCallProvider(CallProvider):
    """In-memory call provider that records every request."""

    def __init__(self) -> None:
        self.requests: List[Tuple[str, tuple]] = []
        self.error: Optional[Exception] = None
        self._counter = 0

    def _record(self, method: str, *args) -> None:
        self.requests.append((method, args))
        if self.error is not None:
            raise self.error

    async def schedule_call(self, request: CallRequest) -> ProviderCall:
        self._record("schedule", request)
        self._counter += 1
        return ProviderCall(call_id=f"call_{self._counter}", status=CallStatus.SCHEDULED)

    async def get_call(self, call_id: str) -> ProviderCall:
        self._record("get", call_id)
        return ProviderCall(call_id=call_id, status=CallStatus.SCHEDULED)

    async def cancel_call(self, call_id: str) -> None:
        self._record("cancel", call_id)

    async def reschedule_call(self, call_id: str, new_time: datetime) -> None:
        self._record("reschedule", call_id, new_time)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with every webhook secret configured and in-memory storage."""
    return Settings(
        _env_file=None,
        environment="development",
        webhook_signing_secret=TEST_SECRET,
        target_webhook_url=TARGET_URL,
        target_webhook_auth_token=TARGET_TOKEN,
        storage_backend="memory",
        bland_ai_api_key="bland_test_key",
        forward_max_attempts=3,
        forward_retry_base_delay=0.0,
        store_failed_payloads=True,
        log_format="pretty",
    )


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def storage(store: InMemoryStore) -> StorageService:
    return StorageService(store)


@pytest.fixture
def fake_provider() -> FakeCallProvider:
    return FakeCallProvider()


@pytest.fixture
def future_time() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1)


@pytest.fixture
def sleeps() -> List[float]:
    """Collects backoff delays instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps: List[float]):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


def mock_http_client(handler) -> httpx.AsyncClient:
    """Build an AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def mock_client_factory():
    return mock_http_client


@pytest.fixture
def signing_secret() -> str:
    return TEST_SECRET


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def target_requests() -> List[httpx.Request]:
    """Requests received by the downstream target."""
    return []


@pytest.fixture
def target_status() -> Dict[str, int]:
    """Status code the downstream target answers with; tests may change it."""
    return {"code": 200}


@pytest.fixture
def app(settings: Settings, store: InMemoryStore, fake_provider: FakeCallProvider,
        target_requests: List[httpx.Request], target_status: Dict[str, int]) -> FastAPI:
    """Create test FastAPI application with a mocked downstream target."""
    from callrelay.api import create_app
    from callrelay.container import ServiceContainer

    def target(request: httpx.Request) -> httpx.Response:
        target_requests.append(request)
        return httpx.Response(target_status["code"], json={"ok": True})

    container = ServiceContainer.from_settings(
        settings,
        store=store,
        provider=fake_provider,
        forward_client=mock_http_client(target),
    )

    return create_app(settings, container)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
