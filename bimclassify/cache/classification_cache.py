"""Distributed classification cache keyed by pattern hash.

Entries expire on a hybrid policy: an absolute lifetime (default 24h, or the
caller's ttl) and a sliding window (default 6h) refreshed on every hit, never
past the absolute deadline. Whichever boundary comes first evicts the entry.

Hit/miss/total-item statistics are atomic store-side increments and strictly
best-effort: a failing counter update is logged and never fails the value
operation. Value reads and counter updates are not transactional, so
statistics are eventually consistent with the cache contents.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import timedelta

from bimclassify.cache.serialization import CacheDecodeError, decode_entry, encode_entry
from bimclassify.cache.store import CacheStore
from bimclassify.config import CacheConfig
from bimclassify.errors import StoreUnavailableError, ValidationError
from bimclassify.models import CacheStatistics
from bimclassify.suggestions.aggregate import ClassificationSuggestion

logger = logging.getLogger(__name__)

HIT_FIELD = "hit_count"
MISS_FIELD = "miss_count"
ITEMS_FIELD = "total_items"
STAT_FIELDS = (HIT_FIELD, MISS_FIELD, ITEMS_FIELD)

DEFAULT_ABSOLUTE_TTL = timedelta(hours=24)
DEFAULT_SLIDING_TTL = timedelta(hours=6)
DEFAULT_STATS_TTL = timedelta(days=7)


class ClassificationCache:
    """Get/set/batch-get/invalidate suggestions by pattern hash."""

    def __init__(
        self,
        store: CacheStore,
        key_prefix: str = "bim:classification:",
        stats_key: str = "bim:classification:stats",
        absolute_ttl: timedelta = DEFAULT_ABSOLUTE_TTL,
        sliding_ttl: timedelta = DEFAULT_SLIDING_TTL,
        stats_ttl: timedelta = DEFAULT_STATS_TTL,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache.

        Args:
            store: Backing store strategy (see bimclassify.cache.store.build_store)
            key_prefix: Prefix for entry keys
            stats_key: Key holding the statistics counters
            absolute_ttl: Default absolute lifetime of an entry
            sliding_ttl: Idle window; each hit restarts it
            stats_ttl: Lifetime of the statistics key after its last update
            clock: Epoch-seconds clock (injectable for tests)
        """
        self.store = store
        self.key_prefix = key_prefix
        self.stats_key = stats_key
        self.absolute_ttl = absolute_ttl
        self.sliding_ttl = sliding_ttl
        self.stats_ttl = stats_ttl
        self.clock = clock

    @classmethod
    def from_config(cls, store: CacheStore, config: CacheConfig) -> ClassificationCache:
        return cls(
            store,
            key_prefix=config.key_prefix,
            stats_key=config.stats_key,
            absolute_ttl=timedelta(seconds=config.absolute_ttl_seconds),
            sliding_ttl=timedelta(seconds=config.sliding_ttl_seconds),
            stats_ttl=timedelta(seconds=config.stats_ttl_seconds),
        )

    def key_for(self, pattern_hash: str) -> str:
        return f"{self.key_prefix}{pattern_hash}"

    async def get(self, pattern_hash: str) -> ClassificationSuggestion | None:
        """Cached suggestion for a pattern, or None on a miss.

        Raises:
            StoreUnavailableError: If the store cannot be reached (treat as miss)
        """
        key = self.key_for(pattern_hash)
        raw = await self.store.get(key)
        hit = await self._decode_live(key, raw)

        if hit is None:
            await self._record(MISS_FIELD)
            logger.debug("Cache miss for pattern hash: %s", pattern_hash)
            return None

        suggestion, absolute_expires_at = hit
        await self._slide({key: absolute_expires_at})
        await self._record(HIT_FIELD)
        logger.debug("Cache hit for pattern hash: %s", pattern_hash)
        return suggestion

    async def set(
        self,
        pattern_hash: str,
        suggestion: ClassificationSuggestion,
        ttl: timedelta | None = None,
    ) -> None:
        """Store a suggestion, replacing any existing entry wholesale.

        Args:
            pattern_hash: Pattern cache key
            suggestion: Suggestion to cache
            ttl: Absolute lifetime (default 24h); the sliding window still applies

        Raises:
            ValidationError: If ttl is not positive
            StoreUnavailableError: If the store cannot be reached
        """
        absolute = self.absolute_ttl if ttl is None else ttl
        if absolute.total_seconds() <= 0:
            raise ValidationError(f"ttl must be positive, got {absolute}")

        key = self.key_for(pattern_hash)
        now = self.clock()
        store_ttl = min(absolute, self.sliding_ttl).total_seconds()
        payload = encode_entry(suggestion, absolute_expires_at=now + absolute.total_seconds())

        created = await self.store.set(key, payload, store_ttl, only_if_absent=True)
        if not created:
            await self.store.set(key, payload, store_ttl)
        else:
            await self._record(ITEMS_FIELD)

        logger.info("Cached classification for pattern hash: %s", pattern_hash)

    async def get_many(
        self, pattern_hashes: Iterable[str]
    ) -> dict[str, ClassificationSuggestion]:
        """Batch lookup; absent hashes are simply missing from the result.

        Uses one multi-key read. If that read fails, falls back to sequential
        single-key gets.

        Raises:
            StoreUnavailableError: If the store cannot be reached at all
        """
        hashes = list(dict.fromkeys(pattern_hashes))
        if not hashes:
            return {}

        keys = [self.key_for(h) for h in hashes]
        try:
            raws = await self.store.batch_get(keys)
        except StoreUnavailableError as exc:
            logger.warning(
                "Batch read failed for %d hashes, falling back to single gets: %s",
                len(hashes),
                exc,
            )
            return await self._get_many_sequential(hashes)

        found: dict[str, ClassificationSuggestion] = {}
        deadlines: dict[str, float] = {}
        for pattern_hash, key, raw in zip(hashes, keys, raws):
            hit = await self._decode_live(key, raw)
            if hit is not None:
                found[pattern_hash], deadlines[key] = hit

        await self._slide(deadlines)
        await self._record(HIT_FIELD, len(found))
        await self._record(MISS_FIELD, len(hashes) - len(found))

        logger.debug("Batch cache lookup: %d/%d hits", len(found), len(hashes))
        return found

    async def invalidate(self, pattern_hash: str) -> None:
        """Remove an entry. Idempotent: absent keys are not an error."""
        removed = await self.store.delete(self.key_for(pattern_hash))
        if removed:
            await self._record(ITEMS_FIELD, -removed)
        logger.info("Invalidated cache for pattern hash: %s", pattern_hash)

    async def get_statistics(self) -> CacheStatistics:
        """Hit/miss/item counters, read in one structured read where supported."""
        counters = await self.store.read_counters(self.stats_key, STAT_FIELDS)
        return CacheStatistics(
            hit_count=max(0, counters[HIT_FIELD]),
            miss_count=max(0, counters[MISS_FIELD]),
            total_items=max(0, counters[ITEMS_FIELD]),
        )

    async def reset_statistics(self) -> None:
        await self.store.delete(self.stats_key)
        logger.info("Reset classification cache statistics")

    async def _get_many_sequential(
        self, hashes: list[str]
    ) -> dict[str, ClassificationSuggestion]:
        found = {}
        for pattern_hash in hashes:
            suggestion = await self.get(pattern_hash)
            if suggestion is not None:
                found[pattern_hash] = suggestion
        return found

    async def _decode_live(
        self, key: str, raw: bytes | None
    ) -> tuple[ClassificationSuggestion, float] | None:
        """Decode an entry; expired or unreadable entries count as misses."""
        if raw is None:
            return None

        try:
            envelope = decode_entry(raw)
        except CacheDecodeError as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            await self._discard(key)
            return None

        if envelope.absolute_expires_at <= self.clock():
            await self._discard(key)
            return None

        return envelope.suggestion.to_suggestion(), envelope.absolute_expires_at

    async def _slide(self, deadlines: dict[str, float]) -> None:
        """Restart the sliding window of hit keys, capped at their absolute deadline."""
        if not deadlines:
            return
        now = self.clock()
        sliding = self.sliding_ttl.total_seconds()
        ttls = {key: min(sliding, deadline - now) for key, deadline in deadlines.items()}
        try:
            await self.store.expire_many(ttls)
        except StoreUnavailableError as exc:
            logger.warning("Failed to extend sliding expiration: %s", exc)

    async def _discard(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except StoreUnavailableError as exc:
            logger.warning("Failed to discard cache entry %s: %s", key, exc)

    async def _record(self, field: str, amount: int = 1) -> None:
        """Best-effort atomic counter update."""
        if amount == 0:
            return
        try:
            await self.store.increment(
                self.stats_key, field, amount, ttl_seconds=self.stats_ttl.total_seconds()
            )
        except Exception:
            logger.warning("Failed to increment %s", field, exc_info=True)
