"""Key/value store interface."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class StorageEntry:
    """A single stored value."""
    value: str
    expires_at: Optional[float] = None  # epoch seconds

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if entry is expired."""
        if self.expires_at is None:
            return False
        if now is None:
            now = time.time()
        return now >= self.expires_at


class KeyValueStore(ABC):
    """
    Minimal async key/value store.

    Values are strings; encoding of structured data is the caller's job.
    A ``ttl`` of ``None`` or ``0`` means the entry never expires.
    """

    #: Whether data survives process restarts and is shared across replicas.
    durable: bool = False

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store a value."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a value, or None if missing or expired."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""

    @abstractmethod
    async def list_keys(self, prefix: str = "", limit: int = 1000) -> List[str]:
        """List live keys starting with ``prefix``."""

    async def connect(self) -> None:
        """Open backend connections."""

    async def close(self) -> None:
        """Release backend connections."""
