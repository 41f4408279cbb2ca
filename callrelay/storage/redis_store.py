"""Redis-backed key/value store."""

import re
from typing import List, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from ..core.exceptions import StorageError
from .base import KeyValueStore

logger = structlog.get_logger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(value: str) -> str:
    """Escape characters that SCAN MATCH treats as wildcards."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class RedisStore(KeyValueStore):
    """
    Durable store on Redis.

    Keys are namespaced as ``<namespace>:<key>`` so several deployments can
    share one database. Every Redis failure surfaces as ``StorageError``.

    Usage:
        store = RedisStore("redis://localhost:6379/0")
        await store.connect()
        await store.set("call:abc", '{"status": "scheduled"}', ttl=3600)
    """

    durable = True

    def __init__(
        self,
        url: Optional[str] = None,
        namespace: str = "phone_agent_storage",
        client: Optional[redis.Redis] = None,
        scan_count: int = 500,
    ):
        self.url = url
        self.namespace = namespace
        self.scan_count = scan_count
        self._client = client

    @property
    def client(self) -> redis.Redis:
        """Get Redis client."""
        if self._client is None:
            raise StorageError("Storage error: Redis not connected")
        return self._client

    async def connect(self) -> None:
        """Connect to Redis and check the connection."""
        if self._client is None:
            if not self.url:
                raise StorageError("Storage error: no Redis URL configured")
            self._client = redis.from_url(self.url, decode_responses=True)

        try:
            await self._client.ping()
        except RedisError as e:
            raise StorageError(f"Storage error: {e}") from e

        logger.info("Connected to Redis", namespace=self.namespace)

    async def close(self) -> None:
        """Disconnect from Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    def _make_key(self, key: str) -> str:
        """Create namespaced key."""
        return f"{self.namespace}:{key}"

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            if ttl:
                await self.client.set(self._make_key(key), value, ex=ttl)
            else:
                await self.client.set(self._make_key(key), value)
        except RedisError as e:
            logger.error("Redis set failed", key=key, error=str(e))
            raise StorageError(f"Storage error: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.client.get(self._make_key(key))
        except RedisError as e:
            logger.error("Redis get failed", key=key, error=str(e))
            raise StorageError(f"Storage error: {e}") from e

        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def delete(self, key: str) -> bool:
        try:
            removed = await self.client.delete(self._make_key(key))
        except RedisError as e:
            logger.error("Redis delete failed", key=key, error=str(e))
            raise StorageError(f"Storage error: {e}") from e
        return removed > 0

    async def list_keys(self, prefix: str = "", limit: int = 1000) -> List[str]:
        base = f"{self.namespace}:"
        pattern = _escape_glob(base + prefix) + "*"
        keys: List[str] = []

        try:
            async for full_key in self.client.scan_iter(match=pattern, count=self.scan_count):
                if isinstance(full_key, bytes):
                    full_key = full_key.decode("utf-8")
                keys.append(full_key[len(base):])
                if len(keys) >= limit:
                    break
        except RedisError as e:
            logger.error("Redis scan failed", prefix=prefix, error=str(e))
            raise StorageError(f"Storage error: {e}") from e

        return keys
