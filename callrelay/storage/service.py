"""Storage service: value encoding, key validation and call-record helpers."""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import structlog

from ..core.exceptions import ValidationError
from .base import KeyValueStore

logger = structlog.get_logger(__name__)

CALL_PREFIX = "call:"
FAILED_PREFIX = "failed:"

UpdateFn = Callable[[Optional[Dict[str, Any]]], Dict[str, Any]]


class StorageService:
    """
    Typed access to a ``KeyValueStore``.

    Strings are stored as-is and every other value is JSON-encoded. Reads
    decode JSON best-effort and fall back to the raw string, so opaque
    strings written by other producers stay readable.
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: int = 0,
        lock_updates: bool = True,
    ):
        self.store = store
        self.default_ttl = default_ttl or None
        self.lock_updates = lock_updates
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def durable(self) -> bool:
        return self.store.durable

    @staticmethod
    def _check_key(key: str) -> None:
        if not key:
            raise ValidationError("Key is required", field="key")

    @staticmethod
    def _encode(value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str)

    @staticmethod
    def _decode(raw: str) -> Any:
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    # Basic operations

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a value. ``ttl`` of None or 0 means no expiry."""
        self._check_key(key)
        if ttl is not None and ttl < 0:
            raise ValidationError("TTL must not be negative", field="ttl")
        await self.store.set(key, self._encode(value), ttl or None)

    async def get(self, key: str) -> Any:
        """Get a value, or None if absent."""
        self._check_key(key)
        raw = await self.store.get(key)
        if raw is None:
            return None
        return self._decode(raw)

    async def delete(self, key: str) -> bool:
        self._check_key(key)
        return await self.store.delete(key)

    async def list_keys(self, prefix: str = "", limit: int = 1000) -> List[str]:
        return await self.store.list_keys(prefix, limit)

    # Call records

    async def store_call_data(self, call_id: str, data: Dict[str, Any]) -> None:
        await self.set(CALL_PREFIX + call_id, data, self.default_ttl)

    async def get_call_data(self, call_id: str) -> Optional[Dict[str, Any]]:
        return await self.get(CALL_PREFIX + call_id)

    async def update_call_data(self, call_id: str, update_fn: UpdateFn) -> Dict[str, Any]:
        """
        Read-modify-write a call record.

        ``update_fn`` receives the current record (or None) and returns the
        record to store. Updates to one call id are serialized within this
        process; writers in other processes can still race.

        Returns:
            The record that was written
        """
        key = CALL_PREFIX + call_id
        self._check_key(call_id)

        async with self._key_lock(key):
            current = await self.get(key)
            if current is not None and not isinstance(current, dict):
                logger.warning("Replacing non-object call record", call_id=call_id)
                current = None
            updated = update_fn(current)
            await self.set(key, updated, self.default_ttl)

        return updated

    async def list_call_ids(self, limit: int = 100) -> List[str]:
        keys = await self.list_keys(CALL_PREFIX, limit)
        return [key[len(CALL_PREFIX):] for key in keys]

    # Dead-lettered webhook events

    async def store_failed_payload(self, event_id: str, data: Dict[str, Any]) -> None:
        await self.set(FAILED_PREFIX + event_id, data, self.default_ttl)

    async def get_failed_payload(self, event_id: str) -> Optional[Dict[str, Any]]:
        return await self.get(FAILED_PREFIX + event_id)

    async def delete_failed_payload(self, event_id: str) -> bool:
        return await self.delete(FAILED_PREFIX + event_id)

    async def list_failed_payload_ids(self, limit: int = 100) -> List[str]:
        keys = await self.list_keys(FAILED_PREFIX, limit)
        return [key[len(FAILED_PREFIX):] for key in keys]

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        if not self.lock_updates:
            yield
            return

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                self._locks.pop(key, None)
