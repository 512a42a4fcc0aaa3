"""Contract of the upstream element source."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from bimclassify.models import DimensionStats, ElementSnapshot


@dataclass(slots=True)
class PatternGroup:
    """Corpus-level pattern summary returned by paged enumeration."""

    signature: tuple[str, str, str, str, str]  # Normalized grouping tuple
    category: str
    family: str | None
    type_name: str | None
    material: str | None
    location_type: str | None
    element_count: int
    dimension_stats: DimensionStats | None = None


class ElementSource(Protocol):
    """Supplies element snapshots; implemented by SqlElementRepository."""

    async def get_by_ids(self, element_ids: Sequence[int]) -> list[ElementSnapshot]:
        ...

    async def list_pattern_groups(self, skip: int, take: int) -> list[PatternGroup]:
        ...

    async def get_pattern_samples(
        self, signature: tuple[str, str, str, str, str], limit: int
    ) -> list[ElementSnapshot]:
        ...

    async def count_distinct_patterns(self) -> int:
        ...
