"""
Storage Module

Key/value persistence with a durable Redis backend and an in-process
fallback, plus the typed service used by the webhook and call layers.
"""

from typing import Optional

import structlog

from .base import KeyValueStore, StorageEntry
from .memory import InMemoryStore
from .redis_store import RedisStore
from .service import CALL_PREFIX, FAILED_PREFIX, StorageService

logger = structlog.get_logger(__name__)


def create_store(
    backend: str = "auto",
    redis_url: Optional[str] = None,
    namespace: str = "phone_agent_storage",
) -> KeyValueStore:
    """
    Select the store implementation.

    Args:
        backend: "redis", "memory", or "auto" (Redis when a URL is configured)
        redis_url: Redis connection URL
        namespace: Key namespace for the Redis backend

    Returns:
        An unconnected store; call ``connect()`` before use
    """
    if backend == "redis" or (backend == "auto" and redis_url):
        return RedisStore(url=redis_url, namespace=namespace)

    logger.warning(
        "Using in-memory storage; data is not durable and not shared across processes",
    )
    return InMemoryStore()


__all__ = [
    "CALL_PREFIX",
    "FAILED_PREFIX",
    "InMemoryStore",
    "KeyValueStore",
    "RedisStore",
    "StorageEntry",
    "StorageService",
    "create_store",
]
