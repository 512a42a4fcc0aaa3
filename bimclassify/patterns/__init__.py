"""Pattern aggregation over BIM elements."""

from bimclassify.patterns.aggregator import PatternAggregator, build_pattern
from bimclassify.patterns.statistics import compute_dimension_stats

__all__ = ["PatternAggregator", "build_pattern", "compute_dimension_stats"]
