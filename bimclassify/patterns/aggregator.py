"""Pattern aggregation: collapse near-duplicate elements into patterns.

Patterns are keyed by the case-insensitive tuple
(category, family, type, material, location type). Each pattern carries a
deterministic first-N sample (ascending element id) and dimension statistics
computed over the whole group. All operations are read-only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from bimclassify.elements.source import ElementSource, PatternGroup
from bimclassify.errors import ValidationError
from bimclassify.models import ElementSnapshot, Pattern
from bimclassify.patterns.statistics import compute_dimension_stats

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 50
DEFAULT_PAGE_SIZE = 1000


def _validate_sample_size(sample_size: int) -> int:
    if sample_size < 1:
        raise ValidationError(f"sample_size must be >= 1, got {sample_size}")
    return sample_size


def build_pattern(members: list[ElementSnapshot], sample_size: int) -> Pattern:
    """Build a Pattern from all members of one group.

    Display values come from the lowest-id member, so output does not depend on
    input order.
    """
    ordered = sorted(members, key=lambda element: element.id)
    first = ordered[0]
    return Pattern(
        category=first.category,
        family=first.family,
        type_name=first.type_name,
        material=first.material,
        location_type=first.location_type,
        element_count=len(ordered),
        sample_elements=ordered[:sample_size],
        dimension_stats=compute_dimension_stats(ordered),
        element_ids=[element.id for element in ordered],
    )


class PatternAggregator:
    """Groups element snapshots from an ElementSource into patterns."""

    def __init__(self, source: ElementSource, sample_size: int = DEFAULT_SAMPLE_SIZE):
        """Initialize aggregator.

        Args:
            source: Upstream element source
            sample_size: Default representative sample size per pattern
        """
        self.source = source
        self.sample_size = _validate_sample_size(sample_size)

    async def resolve_by_ids(self, element_ids: Iterable[int]) -> list[ElementSnapshot]:
        """Return the snapshots for the given ids.

        Duplicate ids are collapsed, unknown ids are ignored and order is not
        guaranteed. Empty input returns [] without touching the source.
        """
        unique_ids = list(dict.fromkeys(element_ids))
        if not unique_ids:
            return []

        elements = await self.source.get_by_ids(unique_ids)
        resolved = {element.id: element for element in elements}
        return list(resolved.values())

    async def group_into_patterns(
        self,
        element_ids: Iterable[int],
        sample_size: int | None = None,
    ) -> list[Pattern]:
        """Resolve ids and group them into one Pattern per distinct signature.

        Args:
            element_ids: Element ids to classify
            sample_size: Max sample elements per pattern (default: aggregator setting)

        Returns:
            Patterns ordered by element count (descending), then signature

        Raises:
            ValidationError: If sample_size < 1
        """
        size = _validate_sample_size(
            self.sample_size if sample_size is None else sample_size
        )
        elements = await self.resolve_by_ids(element_ids)

        groups: dict[tuple[str, str, str, str, str], list[ElementSnapshot]] = {}
        for element in elements:
            groups.setdefault(element.signature, []).append(element)

        patterns = [build_pattern(members, size) for members in groups.values()]
        patterns.sort(key=lambda p: (-p.element_count, p.signature))

        logger.info(
            "Aggregated %d elements into %d patterns", len(elements), len(patterns)
        )
        return patterns

    async def enumerate_all_patterns(
        self,
        skip: int = 0,
        take: int = DEFAULT_PAGE_SIZE,
        sample_size: int | None = None,
    ) -> list[Pattern]:
        """Page through every distinct pattern in the corpus.

        Used for bulk pre-processing independent of any id list.

        Raises:
            ValidationError: If skip < 0, take < 1 or sample_size < 1
        """
        if skip < 0:
            raise ValidationError(f"skip must be >= 0, got {skip}")
        if take < 1:
            raise ValidationError(f"take must be >= 1, got {take}")
        size = _validate_sample_size(
            self.sample_size if sample_size is None else sample_size
        )

        groups = await self.source.list_pattern_groups(skip, take)
        return [await self._pattern_from_group(group, size) for group in groups]

    async def count_distinct_patterns(self) -> int:
        """Number of distinct signatures in the corpus."""
        return await self.source.count_distinct_patterns()

    async def _pattern_from_group(self, group: PatternGroup, sample_size: int) -> Pattern:
        samples = await self.source.get_pattern_samples(group.signature, sample_size)
        return Pattern(
            category=group.category,
            family=group.family,
            type_name=group.type_name,
            material=group.material,
            location_type=group.location_type,
            element_count=group.element_count,
            sample_elements=samples[: min(sample_size, group.element_count)],
            dimension_stats=group.dimension_stats,
        )
