"""Canonical pattern identity (cache keys)."""

from bimclassify.canonical.pattern_hash import (
    PATTERN_HASH_LENGTH,
    normalize_field,
    pattern_hash,
    pattern_signature,
)

__all__ = [
    "PATTERN_HASH_LENGTH",
    "normalize_field",
    "pattern_hash",
    "pattern_signature",
]
