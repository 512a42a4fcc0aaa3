"""Backing-store strategies for the classification cache.

The cache talks to a minimal interface (get, set, delete, batch_get,
increment, read_counters, expire). Which implementation backs it is decided
once, by probing the client's capabilities in build_store():

- RedisCacheStore: native MGET, HINCRBY and HGETALL (one round trip each)
- BasicCacheStore: plain key/value subset; batches become sequential reads
  and each counter field lives in its own key (INCRBY is still atomic)

Counters are always incremented by the store itself, never read-modify-write
from this process. Every call is bounded by a timeout; connectivity failures
and timeouts surface as StoreUnavailableError and are never retried here.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Mapping, Sequence
from typing import Any, TypeVar

from redis.exceptions import RedisError

from bimclassify.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OPERATION_TIMEOUT = 2.0

RICH_CAPABILITIES = ("get", "set", "delete", "mget", "hincrby", "hgetall", "pexpire", "pipeline")
BASIC_CAPABILITIES = ("get", "set", "delete", "incrby", "pexpire")


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(ttl_seconds * 1000))


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return int(value)


class CacheStore(ABC):
    """Minimal store contract used by ClassificationCache."""

    name: str = "abstract"
    supports_native_batch: bool = False

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Value for key, or None if absent/expired."""

    @abstractmethod
    async def set(
        self, key: str, value: bytes, ttl_seconds: float, only_if_absent: bool = False
    ) -> bool:
        """Store value with expiry. Returns False only when only_if_absent blocked the write."""

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Remove key; returns number of keys removed (0 is not an error)."""

    @abstractmethod
    async def batch_get(self, keys: Sequence[str]) -> list[bytes | None]:
        """Values in the same order as keys (None for missing)."""

    @abstractmethod
    async def increment(
        self, key: str, field: str, amount: int = 1, ttl_seconds: float | None = None
    ) -> int:
        """Atomically add amount to a counter field; returns the new value."""

    @abstractmethod
    async def read_counters(self, key: str, fields: Sequence[str]) -> dict[str, int]:
        """Current value of each counter field (0 when never incremented)."""

    @abstractmethod
    async def expire_many(self, ttls: Mapping[str, float]) -> None:
        """Reset the expiry of existing keys."""

    async def expire(self, key: str, ttl_seconds: float) -> None:
        await self.expire_many({key: ttl_seconds})


class _ClientStore(CacheStore):
    """Shared timeout/error translation for stores wrapping a Redis-protocol client."""

    def __init__(self, client: Any, operation_timeout: float = DEFAULT_OPERATION_TIMEOUT):
        self.client = client
        self.operation_timeout = operation_timeout

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.operation_timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Cache store %s failed during %s: %s", self.name, operation, exc)
            raise StoreUnavailableError(operation, exc) from exc


class RedisCacheStore(_ClientStore):
    """Rich strategy on redis.asyncio: MGET, HINCRBY, HGETALL, pipelined PEXPIRE."""

    name = "redis"
    supports_native_batch = True

    async def get(self, key: str) -> bytes | None:
        return await self._call("get", self.client.get(key))

    async def set(
        self, key: str, value: bytes, ttl_seconds: float, only_if_absent: bool = False
    ) -> bool:
        result = await self._call(
            "set", self.client.set(key, value, px=_ttl_ms(ttl_seconds), nx=only_if_absent)
        )
        return bool(result)

    async def delete(self, key: str) -> int:
        return int(await self._call("delete", self.client.delete(key)))

    async def batch_get(self, keys: Sequence[str]) -> list[bytes | None]:
        if not keys:
            return []
        return list(await self._call("batch_get", self.client.mget(list(keys))))

    async def increment(
        self, key: str, field: str, amount: int = 1, ttl_seconds: float | None = None
    ) -> int:
        if ttl_seconds is None:
            return int(await self._call("increment", self.client.hincrby(key, field, amount)))

        pipe = self.client.pipeline(transaction=True)
        pipe.hincrby(key, field, amount)
        pipe.pexpire(key, _ttl_ms(ttl_seconds))
        results = await self._call("increment", pipe.execute())
        return int(results[0])

    async def read_counters(self, key: str, fields: Sequence[str]) -> dict[str, int]:
        raw = await self._call("read_counters", self.client.hgetall(key))
        decoded = {
            (k.decode("utf-8") if isinstance(k, bytes) else k): v for k, v in (raw or {}).items()
        }
        return {field: _to_int(decoded.get(field)) for field in fields}

    async def expire_many(self, ttls: Mapping[str, float]) -> None:
        if not ttls:
            return
        pipe = self.client.pipeline(transaction=False)
        for key, ttl_seconds in ttls.items():
            pipe.pexpire(key, _ttl_ms(ttl_seconds))
        await self._call("expire", pipe.execute())


class BasicCacheStore(_ClientStore):
    """Fallback strategy for clients exposing only the key/value subset."""

    name = "basic"
    supports_native_batch = False

    async def get(self, key: str) -> bytes | None:
        return await self._call("get", self.client.get(key))

    async def set(
        self, key: str, value: bytes, ttl_seconds: float, only_if_absent: bool = False
    ) -> bool:
        result = await self._call(
            "set", self.client.set(key, value, px=_ttl_ms(ttl_seconds), nx=only_if_absent)
        )
        return bool(result)

    async def delete(self, key: str) -> int:
        return int(await self._call("delete", self.client.delete(key)))

    async def batch_get(self, keys: Sequence[str]) -> list[bytes | None]:
        return [await self.get(key) for key in keys]

    async def increment(
        self, key: str, field: str, amount: int = 1, ttl_seconds: float | None = None
    ) -> int:
        counter_key = f"{key}:{field}"
        value = int(await self._call("increment", self.client.incrby(counter_key, amount)))
        if ttl_seconds is not None:
            await self._call("increment", self.client.pexpire(counter_key, _ttl_ms(ttl_seconds)))
        return value

    async def read_counters(self, key: str, fields: Sequence[str]) -> dict[str, int]:
        # Not a single snapshot: fields are read one by one
        return {
            field: _to_int(await self._call("read_counters", self.client.get(f"{key}:{field}")))
            for field in fields
        }

    async def expire_many(self, ttls: Mapping[str, float]) -> None:
        for key, ttl_seconds in ttls.items():
            await self._call("expire", self.client.pexpire(key, _ttl_ms(ttl_seconds)))


def build_store(client: Any, operation_timeout: float = DEFAULT_OPERATION_TIMEOUT) -> CacheStore:
    """Pick the store strategy for a client, once, by capability probing.

    Raises:
        TypeError: If the client lacks even the basic key/value subset
    """
    if isinstance(client, CacheStore):
        return client
    if all(callable(getattr(client, name, None)) for name in RICH_CAPABILITIES):
        store: CacheStore = RedisCacheStore(client, operation_timeout)
    elif all(callable(getattr(client, name, None)) for name in BASIC_CAPABILITIES):
        store = BasicCacheStore(client, operation_timeout)
    else:
        raise TypeError(
            f"{type(client).__name__} does not support the cache store operations "
            f"({', '.join(BASIC_CAPABILITIES)})"
        )
    logger.info("Classification cache using %s store strategy", store.name)
    return store
