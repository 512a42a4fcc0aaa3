"""Pattern hash generation for deterministic cache keys.

Generates a deterministic 16-character hash representing a pattern's
categorical signature: category, family, type, material, location type.

Normalization rules:
- Text: lowercase
- Missing: None and "" are the same sentinel ("")

Each field is hashed on its own and the digests are combined, so a field value
containing any separator character can never collide with a neighbouring field.
"""

from __future__ import annotations

import hashlib

from bimclassify.errors import ValidationError

PATTERN_HASH_LENGTH = 16


def normalize_field(value: str | None) -> str:
    """Normalize one categorical field.

    Args:
        value: Raw field value

    Returns:
        Lowercased value, or "" when missing
    """
    if not value:
        return ""
    return value.lower()


def pattern_signature(
    category: str | None,
    family: str | None = None,
    type_name: str | None = None,
    material: str | None = None,
    location_type: str | None = None,
) -> tuple[str, str, str, str, str]:
    """Normalized grouping tuple for a pattern."""
    return (
        normalize_field(category),
        normalize_field(family),
        normalize_field(type_name),
        normalize_field(material),
        normalize_field(location_type),
    )


def pattern_hash(
    category: str | None,
    family: str | None = None,
    type_name: str | None = None,
    material: str | None = None,
    location_type: str | None = None,
) -> str:
    """Generate deterministic 16-character pattern hash.

    Args:
        category: BIM category (required, e.g. "Pipes")
        family: Family name
        type_name: Type name
        material: Material
        location_type: Indoor/Outdoor/Roof/etc.

    Returns:
        16-character lowercase hex string (SHA-256 of the per-field digests)

    Raises:
        ValidationError: If category is missing or blank
    """
    if category is None or not category.strip():
        raise ValidationError("category is required for pattern_hash generation")

    combined = hashlib.sha256()
    for part in pattern_signature(category, family, type_name, material, location_type):
        combined.update(hashlib.sha256(part.encode("utf-8")).digest())

    return combined.hexdigest()[:PATTERN_HASH_LENGTH]
