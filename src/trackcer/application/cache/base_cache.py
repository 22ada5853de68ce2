"""Async-safe in-memory cache with a time-to-live per entry."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    expires_at: float
    ttl_seconds: int

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryCache(Generic[K, V]):
    """Dict of CacheEntry guarded by an asyncio.Lock.

    Listen up future me, entries live in process memory only. A restart drops them and
    the API and a CLI run never share anything. Expired entries are evicted lazily on
    read, purge_expired() sweeps the rest.

    Args:
        clock: Seconds source, monotonic by default. Tests pass a fake one.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[K, CacheEntry[V]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: K) -> V | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                self._entries.pop(key, None)
                return None
            return entry.value

    async def set(self, key: K, value: V, ttl_seconds: int) -> None:
        async with self._lock:
            self._entries[key] = CacheEntry(value, self._clock() + ttl_seconds, ttl_seconds)

    async def pop(self, key: K) -> V | None:
        """Remove a key, returning what was stored (expired or not)."""
        async with self._lock:
            entry = self._entries.pop(key, None)
        return entry.value if entry is not None else None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def purge_expired(self) -> int:
        """Drop every expired entry.

        Returns:
            How many entries were removed
        """
        async with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def ttl_of(self, key: K) -> int | None:
        """TTL an entry was stored with, None if absent."""
        entry = self._entries.get(key)
        return entry.ttl_seconds if entry is not None else None
