"""Batch classification using pattern aggregation and the classification cache.

Steps for a batch of element ids:
1. Aggregate elements into patterns
2. Look every pattern hash up in the cache (one batch read)
3. Classify uncached patterns through the external classifier
4. Persist and cache new suggestions

The cache is an optimization only: when it is unavailable every pattern is
treated as a miss and classification proceeds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from bimclassify.cache.classification_cache import ClassificationCache
from bimclassify.errors import StoreUnavailableError, ValidationError
from bimclassify.models import DIMENSIONS, Pattern
from bimclassify.patterns.aggregator import DEFAULT_PAGE_SIZE, PatternAggregator
from bimclassify.suggestions.aggregate import ClassificationSuggestion
from bimclassify.suggestions.events import DomainEvent

logger = logging.getLogger(__name__)

PROMPT_SAMPLE_COUNT = 5


class Classifier(Protocol):
    """External (generative) classifier, invoked only on cache miss."""

    async def classify(self, pattern: Pattern) -> ClassificationSuggestion | None:
        ...


class SuggestionSink(Protocol):
    """Durable store for new suggestions (e.g. SuggestionRepository)."""

    async def add(
        self, suggestion: ClassificationSuggestion, pattern_hash: str | None = None
    ) -> None:
        ...


@dataclass
class BatchClassificationResult:
    """Outcome of one batch classification run."""

    total_elements: int = 0
    total_patterns: int = 0
    cached_patterns: int = 0
    newly_classified_patterns: int = 0
    failed_patterns: int = 0
    cache_unavailable: int = 0  # Cache operations that failed and were treated as misses
    suggestions: dict[str, ClassificationSuggestion] = field(default_factory=dict)
    pattern_mapping: dict[str, list[int]] = field(default_factory=dict)
    events: list[DomainEvent] = field(default_factory=list)

    @property
    def cache_hit_rate(self) -> float:
        if self.total_patterns == 0:
            return 1.0
        return self.cached_patterns / self.total_patterns

    def suggestion_for_element(self, element_id: int) -> ClassificationSuggestion | None:
        for pattern_hash, element_ids in self.pattern_mapping.items():
            if element_id in element_ids:
                return self.suggestions.get(pattern_hash)
        return None


def build_classifier_payload(
    pattern: Pattern, sample_count: int = PROMPT_SAMPLE_COUNT
) -> dict[str, Any]:
    """Token-efficient pattern summary handed to the classifier."""
    dimensions = None
    if pattern.dimension_stats is not None:
        dimensions = {
            name: value.model_dump() if (value := getattr(pattern.dimension_stats, name)) else None
            for name in DIMENSIONS
        }

    return {
        "pattern_key": pattern.pattern_key,
        "pattern_hash": pattern.pattern_hash,
        "category": pattern.category,
        "family": pattern.family,
        "type": pattern.type_name,
        "material": pattern.material,
        "location_type": pattern.location_type,
        "element_count": pattern.element_count,
        "dimensions": dimensions,
        "samples": [
            {
                "id": element.id,
                "spec": element.spec,
                "metadata": element.display_metadata(),
            }
            for element in pattern.sample_elements[:sample_count]
        ],
    }


class ClassificationService:
    """Orchestrates aggregator, cache, classifier and suggestion store."""

    def __init__(
        self,
        aggregator: PatternAggregator,
        cache: ClassificationCache,
        classifier: Classifier,
        suggestion_store: SuggestionSink | None = None,
    ):
        self.aggregator = aggregator
        self.cache = cache
        self.classifier = classifier
        self.suggestion_store = suggestion_store

    async def classify_batch(self, element_ids: Iterable[int]) -> BatchClassificationResult:
        """Classify elements, reusing cached suggestions per pattern.

        New suggestions' pending events are drained into the result only after
        they were persisted; the caller publishes them once its transaction commits.
        """
        ids = list(element_ids)
        logger.info("Starting batch classification for %d elements", len(ids))

        patterns = await self.aggregator.group_into_patterns(ids)
        result = BatchClassificationResult(total_elements=len(ids), total_patterns=len(patterns))
        keyed = self._keyed(patterns, result)
        result.pattern_mapping = {h: list(p.element_ids) for h, p in keyed}

        cached = await self._lookup(keyed, result)
        result.suggestions.update(cached)
        result.cached_patterns = len(cached)
        logger.info("Cache hit for %d/%d patterns", len(cached), len(patterns))

        for hash_, pattern in keyed:
            if hash_ in cached:
                continue
            suggestion = await self._classify_and_store(hash_, pattern, result)
            if suggestion is not None:
                result.suggestions[hash_] = suggestion
                result.newly_classified_patterns += 1

        logger.info(
            "Classified %d new patterns (%d failed)",
            result.newly_classified_patterns,
            result.failed_patterns,
        )
        return result

    async def warm_cache(self, page_size: int = DEFAULT_PAGE_SIZE) -> BatchClassificationResult:
        """Bulk pre-processing: classify every uncached pattern in the corpus.

        Groups that normalize to an already handled hash (SQL and Python
        lowercasing can disagree on non-ASCII text) are classified once.
        """
        result = BatchClassificationResult()
        seen: set[str] = set()
        skip = 0

        while True:
            page = await self.aggregator.enumerate_all_patterns(skip=skip, take=page_size)
            if not page:
                break

            result.total_patterns += len(page)
            result.total_elements += sum(p.element_count for p in page)

            keyed = []
            for hash_, pattern in self._keyed(page, result):
                if hash_ in seen:
                    logger.debug("Skipping duplicate group for pattern %s", hash_)
                    continue
                seen.add(hash_)
                keyed.append((hash_, pattern))

            cached = await self._lookup(keyed, result)
            result.cached_patterns += len(cached)

            for hash_, pattern in keyed:
                if hash_ in cached:
                    continue
                suggestion = await self._classify_and_store(hash_, pattern, result)
                if suggestion is not None:
                    result.suggestions[hash_] = suggestion
                    result.newly_classified_patterns += 1

            if len(page) < page_size:
                break
            skip += page_size

        logger.info(
            "Cache warm-up: %d patterns, %d already cached, %d classified",
            result.total_patterns,
            result.cached_patterns,
            result.newly_classified_patterns,
        )
        return result

    @staticmethod
    def _keyed(
        patterns: list[Pattern], result: BatchClassificationResult
    ) -> list[tuple[str, Pattern]]:
        """Pair each pattern with its hash; malformed patterns count as failed."""
        keyed = []
        for pattern in patterns:
            try:
                keyed.append((pattern.pattern_hash, pattern))
            except ValidationError as exc:
                result.failed_patterns += 1
                logger.warning(
                    "Skipping pattern for elements %s: %s", pattern.element_ids[:5], exc
                )
        return keyed

    async def _lookup(
        self, keyed: list[tuple[str, Pattern]], result: BatchClassificationResult
    ) -> dict[str, ClassificationSuggestion]:
        if not keyed:
            return {}
        try:
            return await self.cache.get_many(h for h, _ in keyed)
        except StoreUnavailableError as exc:
            result.cache_unavailable += 1
            logger.warning("Classification cache unavailable, treating as miss: %s", exc)
            return {}

    async def _classify_and_store(
        self, hash_: str, pattern: Pattern, result: BatchClassificationResult
    ) -> ClassificationSuggestion | None:
        try:
            suggestion = await self.classifier.classify(pattern)
        except Exception:
            result.failed_patterns += 1
            logger.error("Error classifying pattern %s", hash_, exc_info=True)
            return None

        if suggestion is None:
            result.failed_patterns += 1
            logger.warning("Classifier returned no suggestion for %s", hash_)
            return None

        if self.suggestion_store is not None:
            await self.suggestion_store.add(suggestion, pattern_hash=hash_)
        result.events.extend(suggestion.pull_events())

        try:
            await self.cache.set(hash_, suggestion)
        except StoreUnavailableError as exc:
            result.cache_unavailable += 1
            logger.warning("Could not cache suggestion for %s: %s", hash_, exc)

        return suggestion
