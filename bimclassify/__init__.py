"""BIMClassify - pattern-deduplicated, human-reviewed BIM classification suggestions."""

__version__ = "0.1.0"
