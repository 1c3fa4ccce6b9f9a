"""Process-lifetime TTL cache with get-or-compute semantics.

Instances are created by the application lifespan and passed to their
consumers; there is no module-level cache.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Async get-or-compute cache with per-entry expiry.

    Concurrent misses for the same key share one computation.
    ``None`` results are returned but not stored. A key's lock lives only
    while calls for it are in flight, and expired entries are swept at
    most once per TTL period on insert, so memory tracks live keys.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._next_sweep = clock() + ttl_seconds

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def get_or_compute(
        self, key: str, factory: Callable[[], Awaitable[V | None]]
    ) -> V | None:
        cached = self.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                cached = self.get(key)
                if cached is not None:
                    return cached
                value = await factory()
                if value is not None:
                    self._store(key, value)
                return value
        finally:
            self._release(key)

    def _store(self, key: str, value: V) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self.purge_expired()
            self._next_sweep = now + self._ttl
        self._entries[key] = (now + self._ttl, value)

    def _release(self, key: str) -> None:
        remaining = self._waiters.pop(key, 1) - 1
        if remaining > 0:
            self._waiters[key] = remaining
        else:
            self._locks.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [
            key for key, (expires_at, _) in self._entries.items() if now >= expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        # In-flight locks release themselves.
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
