"""Redis client wiring for the classification cache."""

from __future__ import annotations

import redis.asyncio as redis

from bimclassify.cache.classification_cache import ClassificationCache
from bimclassify.cache.store import build_store
from bimclassify.config import get_config

# Global Redis client (lazy initialized)
_redis_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    """Get Redis client instance (singleton).

    Returns:
        Async Redis client (raw bytes responses; entries are JSON documents)
    """
    global _redis_client

    if _redis_client is None:
        cache_config = get_config().cache
        _redis_client = redis.from_url(
            cache_config.redis_url,
            decode_responses=False,
            socket_timeout=cache_config.operation_timeout_seconds,
            socket_connect_timeout=cache_config.operation_timeout_seconds,
        )

    return _redis_client


def get_classification_cache(client: object | None = None) -> ClassificationCache:
    """Build the classification cache over the configured (or given) client.

    The store strategy is chosen here, once, from the client's capabilities.
    """
    cache_config = get_config().cache
    store = build_store(
        client if client is not None else get_redis(),
        operation_timeout=cache_config.operation_timeout_seconds,
    )
    return ClassificationCache.from_config(store, cache_config)


async def close_redis() -> None:
    """Close the Redis connection pool. Call on application shutdown."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
