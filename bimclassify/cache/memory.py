"""In-memory cache store for unit tests.

All state is guarded by one asyncio.Lock; counters are incremented under the
lock, standing in for the store-side atomic increment. The clock is
injectable so expiry can be tested without sleeping.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence

from bimclassify.cache.store import CacheStore


class InMemoryCacheStore(CacheStore):
    name = "memory"
    supports_native_batch = True

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._values: dict[str, tuple[bytes, float]] = {}
        self._counters: dict[str, dict[str, int]] = {}
        self._lock = asyncio.Lock()
        self.batch_calls = 0

    def _live(self, key: str) -> bytes | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.clock():
            del self._values[key]
            return None
        return value

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            return self._live(key)

    async def set(
        self, key: str, value: bytes, ttl_seconds: float, only_if_absent: bool = False
    ) -> bool:
        async with self._lock:
            if only_if_absent and self._live(key) is not None:
                return False
            self._values[key] = (value, self.clock() + ttl_seconds)
            return True

    async def delete(self, key: str) -> int:
        async with self._lock:
            existed = self._live(key) is not None
            self._values.pop(key, None)
            removed_counters = self._counters.pop(key, None) is not None
            return int(existed or removed_counters)

    async def batch_get(self, keys: Sequence[str]) -> list[bytes | None]:
        async with self._lock:
            self.batch_calls += 1
            return [self._live(key) for key in keys]

    async def increment(
        self, key: str, field: str, amount: int = 1, ttl_seconds: float | None = None
    ) -> int:
        async with self._lock:
            counters = self._counters.setdefault(key, {})
            counters[field] = counters.get(field, 0) + amount
            return counters[field]

    async def read_counters(self, key: str, fields: Sequence[str]) -> dict[str, int]:
        async with self._lock:
            counters = self._counters.get(key, {})
            return {field: counters.get(field, 0) for field in fields}

    async def expire_many(self, ttls: Mapping[str, float]) -> None:
        async with self._lock:
            now = self.clock()
            for key, ttl_seconds in ttls.items():
                value = self._live(key)
                if value is not None:
                    self._values[key] = (value, now + ttl_seconds)

    def __len__(self) -> int:
        return sum(1 for key in list(self._values) if self._live(key) is not None)
