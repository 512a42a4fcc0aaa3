"""Pattern-keyed classification cache."""

from bimclassify.cache.classification_cache import ClassificationCache
from bimclassify.cache.memory import InMemoryCacheStore
from bimclassify.cache.store import (
    BasicCacheStore,
    CacheStore,
    RedisCacheStore,
    build_store,
)

__all__ = [
    "BasicCacheStore",
    "CacheStore",
    "ClassificationCache",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "build_store",
]
