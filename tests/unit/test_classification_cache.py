"""Unit tests for the classification cache.

Runs against the in-memory store with a manually advanced clock.
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import pytest

from bimclassify.cache.classification_cache import ClassificationCache
from bimclassify.cache.memory import InMemoryCacheStore
from bimclassify.cache.serialization import SCHEMA_VERSION, decode_entry, encode_entry
from bimclassify.errors import StoreUnavailableError, ValidationError

HOUR = 3600


class NaiveCounterStore(InMemoryCacheStore):
    """Read-modify-write counters: the lost-update pattern atomic increments avoid."""

    async def increment(self, key, field, amount=1, ttl_seconds=None):
        current = (await self.read_counters(key, [field]))[field]
        await asyncio.sleep(0)
        async with self._lock:
            self._counters.setdefault(key, {})[field] = current + amount
        return current + amount


class FailingCounterStore(InMemoryCacheStore):
    async def increment(self, key, field, amount=1, ttl_seconds=None):
        raise StoreUnavailableError("increment")


class FailingBatchStore(InMemoryCacheStore):
    async def batch_get(self, keys):
        raise StoreUnavailableError("batch_get")


class TestGetSet:
    @pytest.mark.asyncio
    async def test_round_trip(self, cache, make_suggestion):
        suggestion = make_suggestion()

        await cache.set("abc123", suggestion)
        cached = await cache.get("abc123")

        assert cached == suggestion
        assert cached.derived_items == suggestion.derived_items
        assert cached.pending_events == ()

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, cache):
        assert await cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_replaces_existing(self, cache, make_suggestion):
        await cache.set("abc123", make_suggestion(commodity_code="OLD"))
        await cache.set("abc123", make_suggestion(commodity_code="NEW"))

        cached = await cache.get("abc123")
        stats = await cache.get_statistics()

        assert cached.commodity_code == "NEW"
        assert stats.total_items == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-5)])
    async def test_non_positive_ttl_rejected(self, cache, make_suggestion, ttl):
        with pytest.raises(ValidationError):
            await cache.set("abc123", make_suggestion(), ttl=ttl)

    @pytest.mark.asyncio
    async def test_key_prefix(self, memory_store, clock, make_suggestion):
        cache = ClassificationCache(memory_store, key_prefix="test:", clock=clock)

        await cache.set("abc123", make_suggestion())

        assert await memory_store.get("test:abc123") is not None


class TestExpiry:
    @pytest.mark.asyncio
    async def test_explicit_ttl_expires(self, cache, clock, make_suggestion):
        await cache.set("abc123", make_suggestion(), ttl=timedelta(seconds=1))

        clock.advance(2)

        assert await cache.get("abc123") is None

    @pytest.mark.asyncio
    async def test_idle_entry_expires_after_sliding_window(self, cache, clock, make_suggestion):
        await cache.set("abc123", make_suggestion())

        clock.advance(6 * HOUR + 1)

        assert await cache.get("abc123") is None

    @pytest.mark.asyncio
    async def test_hit_restarts_sliding_window(self, cache, clock, make_suggestion):
        await cache.set("abc123", make_suggestion())

        clock.advance(5 * HOUR)
        assert await cache.get("abc123") is not None
        clock.advance(5 * HOUR)
        assert await cache.get("abc123") is not None

    @pytest.mark.asyncio
    async def test_absolute_deadline_caps_sliding(self, cache, clock, make_suggestion):
        """Test frequent hits never keep an entry past its absolute lifetime."""
        await cache.set("abc123", make_suggestion())

        for _ in range(4):
            clock.advance(5 * HOUR)
            assert await cache.get("abc123") is not None

        clock.advance(5 * HOUR)

        assert await cache.get("abc123") is None

    @pytest.mark.asyncio
    async def test_expired_envelope_discarded(self, cache, memory_store, clock, make_suggestion):
        """Test an entry past its absolute deadline is a miss even if the store still holds it."""
        raw = encode_entry(make_suggestion(), absolute_expires_at=clock() - 1)
        await memory_store.set(cache.key_for("abc123"), raw, ttl_seconds=HOUR)

        assert await cache.get("abc123") is None
        assert await memory_store.get(cache.key_for("abc123")) is None


class TestCorruptEntries:
    @pytest.mark.asyncio
    async def test_unreadable_entry_is_a_miss(self, cache, memory_store):
        await memory_store.set(cache.key_for("abc123"), b"not json", ttl_seconds=HOUR)

        assert await cache.get("abc123") is None

        stats = await cache.get_statistics()
        assert stats.miss_count == 1
        assert await memory_store.get(cache.key_for("abc123")) is None

    @pytest.mark.asyncio
    async def test_unknown_schema_version_is_a_miss(self, cache, memory_store, clock, make_suggestion):
        envelope = json.loads(encode_entry(make_suggestion(), clock() + HOUR))
        envelope["schema_version"] = SCHEMA_VERSION + 1
        await memory_store.set(
            cache.key_for("abc123"), json.dumps(envelope).encode(), ttl_seconds=HOUR
        )

        assert await cache.get("abc123") is None

    def test_envelope_carries_version_and_deadline(self, make_suggestion):
        envelope = decode_entry(encode_entry(make_suggestion(), absolute_expires_at=123.0))

        assert envelope.schema_version == SCHEMA_VERSION
        assert envelope.absolute_expires_at == 123.0


class TestGetMany:
    @pytest.mark.asyncio
    async def test_single_batch_read(self, cache, memory_store, make_suggestion):
        await cache.set("h1", make_suggestion(1))
        await cache.set("h2", make_suggestion(2))

        found = await cache.get_many(["h1", "h2", "h3", "h1"])

        assert set(found) == {"h1", "h2"}
        assert found["h2"].element_id == 2
        assert memory_store.batch_calls == 1

        stats = await cache.get_statistics()
        assert stats.hit_count == 2
        assert stats.miss_count == 1

    @pytest.mark.asyncio
    async def test_matches_sequential_gets(self, memory_store, clock, make_suggestion):
        cache = ClassificationCache(memory_store, clock=clock)
        await cache.set("h1", make_suggestion(1))
        await cache.set("h3", make_suggestion(3))

        batch = await cache.get_many(["h1", "h2", "h3"])
        sequential = {}
        for pattern_hash in ["h1", "h2", "h3"]:
            suggestion = await cache.get(pattern_hash)
            if suggestion is not None:
                sequential[pattern_hash] = suggestion

        assert batch == sequential

    @pytest.mark.asyncio
    async def test_empty_input(self, cache, memory_store):
        assert await cache.get_many([]) == {}
        assert memory_store.batch_calls == 0

    @pytest.mark.asyncio
    async def test_batch_refreshes_sliding_window(self, cache, clock, make_suggestion):
        await cache.set("h1", make_suggestion())

        clock.advance(5 * HOUR)
        await cache.get_many(["h1"])
        clock.advance(5 * HOUR)

        assert await cache.get("h1") is not None

    @pytest.mark.asyncio
    async def test_falls_back_to_single_gets(self, clock, make_suggestion):
        cache = ClassificationCache(FailingBatchStore(clock=clock), clock=clock)
        await cache.set("h1", make_suggestion(1))

        found = await cache.get_many(["h1", "h2"])

        assert set(found) == {"h1"}
        stats = await cache.get_statistics()
        assert stats.hit_count == 1
        assert stats.miss_count == 1


class TestInvalidate:
    @pytest.mark.asyncio
    async def test_invalidate_is_idempotent(self, cache, make_suggestion):
        await cache.set("abc123", make_suggestion())

        await cache.invalidate("abc123")
        await cache.invalidate("abc123")

        assert await cache.get("abc123") is None
        stats = await cache.get_statistics()
        assert stats.total_items == 0

    @pytest.mark.asyncio
    async def test_invalidate_missing_key(self, cache):
        await cache.invalidate("never-set")

        assert (await cache.get_statistics()).total_items == 0


class TestStatistics:
    @pytest.mark.asyncio
    async def test_initial_statistics(self, cache):
        stats = await cache.get_statistics()

        assert stats.hit_count == 0
        assert stats.miss_count == 0
        assert stats.total_items == 0
        assert stats.hit_rate == 1.0

    @pytest.mark.asyncio
    async def test_counts_hits_misses_and_items(self, cache, make_suggestion):
        await cache.set("h1", make_suggestion(1))
        await cache.set("h2", make_suggestion(2))
        await cache.get("h1")
        await cache.get("h1")
        await cache.get("h3")

        stats = await cache.get_statistics()

        assert stats.hit_count == 2
        assert stats.miss_count == 1
        assert stats.total_items == 2
        assert stats.hit_rate == pytest.approx(2 / 3)

    @pytest.mark.asyncio
    async def test_concurrent_misses_all_counted(self, cache):
        await asyncio.gather(*(cache.get("missing") for _ in range(50)))

        assert (await cache.get_statistics()).miss_count == 50

    @pytest.mark.asyncio
    async def test_read_modify_write_loses_updates(self, clock):
        """Test the non-atomic counter pattern under-counts concurrent misses."""
        cache = ClassificationCache(NaiveCounterStore(clock=clock), clock=clock)

        await asyncio.gather(*(cache.get("missing") for _ in range(50)))

        assert (await cache.get_statistics()).miss_count < 50

    @pytest.mark.asyncio
    async def test_counter_failure_does_not_fail_reads(self, clock, make_suggestion):
        cache = ClassificationCache(FailingCounterStore(clock=clock), clock=clock)
        suggestion = make_suggestion()

        await cache.set("abc123", suggestion)

        assert await cache.get("abc123") == suggestion
        assert await cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_negative_drift_clamped(self, cache, memory_store):
        await memory_store.increment(cache.stats_key, "total_items", -3)

        assert (await cache.get_statistics()).total_items == 0

    @pytest.mark.asyncio
    async def test_reset_statistics(self, cache, make_suggestion):
        await cache.set("h1", make_suggestion())
        await cache.get("h1")

        await cache.reset_statistics()

        stats = await cache.get_statistics()
        assert stats.total_requests == 0
        assert stats.total_items == 0
        assert await cache.get("h1") is not None
