"""Dimension statistics over a pattern group."""

from __future__ import annotations

from collections.abc import Iterable

from bimclassify.models import DIMENSIONS, DimensionRange, DimensionStats, ElementSnapshot


def dimension_range(values: Iterable[float | None]) -> DimensionRange | None:
    """Min/max/avg of the reported values, None if nothing was reported."""
    present = [float(v) for v in values if v is not None]
    if not present:
        return None
    return DimensionRange(
        min=min(present),
        max=max(present),
        avg=sum(present) / len(present),
    )


def compute_dimension_stats(elements: Iterable[ElementSnapshot]) -> DimensionStats | None:
    """Compute statistics over every element of a group (not just the sample).

    Returns:
        DimensionStats, or None when no element reports any dimension
    """
    members = list(elements)
    stats = DimensionStats(
        **{
            name: dimension_range(element.dimension(name) for element in members)
            for name in DIMENSIONS
        }
    )
    return None if stats.is_empty else stats
