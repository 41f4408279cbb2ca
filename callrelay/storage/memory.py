"""In-memory key/value store.

Not durable and not shared between processes: every replica holds its own
map and everything is lost on restart. Use it for local development and tests.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional

import structlog

from .base import KeyValueStore, StorageEntry

logger = structlog.get_logger(__name__)


class InMemoryStore(KeyValueStore):
    """Dict-backed store with TTL eviction on read and on listing."""

    durable = False

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[str, StorageEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        async with self._lock:
            self._entries[key] = StorageEntry(value=value, expires_at=expires_at)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug("Evicted expired entry", key=key)
                return None

            return entry.value

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def list_keys(self, prefix: str = "", limit: int = 1000) -> List[str]:
        now = self._clock()
        keys = []
        async with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]

            for key in self._entries:
                if key.startswith(prefix):
                    keys.append(key)
                    if len(keys) >= limit:
                        break
        return keys

    def __len__(self) -> int:
        return len(self._entries)
