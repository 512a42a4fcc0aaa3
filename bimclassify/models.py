"""BIMClassify Pydantic models for type-safe data validation.

Value objects exchanged between the element source, the pattern aggregator,
the classification cache and the review workflow.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator

from bimclassify.canonical.pattern_hash import pattern_hash, pattern_signature

# Metadata values longer than this are truncated when shown to the classifier
METADATA_VALUE_MAX_CHARS = 80

DIMENSIONS = ("length", "width", "height", "diameter")


class SuggestionStatus(str, Enum):
    """Review state of a classification suggestion."""

    PENDING = "pending"
    APPROVED = "approved"  # Terminal
    REJECTED = "rejected"  # Terminal

    @property
    def is_terminal(self) -> bool:
        return self is not SuggestionStatus.PENDING


class ElementSnapshot(BaseModel):
    """Read-only view of one BIM element, owned upstream."""

    id: int
    external_id: str
    project_id: str
    category: str

    # Categorical attributes
    family: str | None = None
    type_name: str | None = None
    spec: str | None = None
    location_type: str | None = None  # Indoor/Outdoor/Roof/etc.
    material: str | None = None

    # Dimensions (mm)
    length_mm: float | None = None
    width_mm: float | None = None
    height_mm: float | None = None
    diameter_mm: float | None = None

    metadata: dict[str, str] = Field(default_factory=dict)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": 1001,
                "external_id": "3f2a-77c1",
                "project_id": "project-a",
                "category": "Pipes",
                "family": "Pipe Types",
                "type_name": "PVC DN110",
                "material": "PVC",
                "location_type": "Indoor",
                "length_mm": 3000.0,
                "diameter_mm": 110.0,
                "metadata": {"System Type": "Sanitary"},
            }
        }

    @property
    def signature(self) -> tuple[str, str, str, str, str]:
        """Normalized grouping tuple (case-insensitive)."""
        return pattern_signature(
            self.category, self.family, self.type_name, self.material, self.location_type
        )

    def dimension(self, name: str) -> float | None:
        return getattr(self, f"{name}_mm")

    def display_metadata(self) -> dict[str, str]:
        """Metadata with long values truncated for classifier payloads."""
        return {
            key: value[:METADATA_VALUE_MAX_CHARS] + "..."
            if len(value) > METADATA_VALUE_MAX_CHARS
            else value
            for key, value in self.metadata.items()
        }


class DimensionRange(BaseModel):
    """Min/max/avg of one dimension across a pattern group."""

    min: float | None = None
    max: float | None = None
    avg: float | None = None


class DimensionStats(BaseModel):
    """Per-dimension statistics; a dimension is None when no element reports it."""

    length: DimensionRange | None = None
    width: DimensionRange | None = None
    height: DimensionRange | None = None
    diameter: DimensionRange | None = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in DIMENSIONS)


class Pattern(BaseModel):
    """Group of BIM elements sharing one categorical signature."""

    category: str
    family: str | None = None
    type_name: str | None = None
    material: str | None = None
    location_type: str | None = None

    element_count: int = Field(ge=0)
    sample_elements: list[ElementSnapshot] = Field(default_factory=list)
    dimension_stats: DimensionStats | None = None

    # All member ids when grouped from explicit ids; empty for corpus enumeration
    element_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_sample_bounds(self) -> Pattern:
        if len(self.sample_elements) > self.element_count:
            raise ValueError("sample_elements cannot exceed element_count")
        return self

    @property
    def pattern_key(self) -> str:
        """Human-readable label, not unique; use pattern_hash for identity."""
        return f"{self.category}_{self.family or ''}_{self.type_name or ''}"

    @property
    def signature(self) -> tuple[str, str, str, str, str]:
        return pattern_signature(
            self.category, self.family, self.type_name, self.material, self.location_type
        )

    @property
    def pattern_hash(self) -> str:
        """Cache key for this pattern (see bimclassify.canonical.pattern_hash)."""
        return pattern_hash(
            self.category, self.family, self.type_name, self.material, self.location_type
        )


class DerivedItem(BaseModel):
    """Secondary billable item implied by a classified element."""

    commodity_code: str
    pricing_code: str | None = None
    quantity_formula: str  # Stored verbatim, never evaluated here
    quantity_unit: str

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "commodity_code": "PIPE-INSUL",
                "pricing_code": "INS-25",
                "quantity_formula": "length_mm / 1000",
                "quantity_unit": "m",
            }
        }


class CacheStatistics(BaseModel):
    """Hit/miss/item counters of the classification cache."""

    hit_count: int = Field(default=0, ge=0)
    miss_count: int = Field(default=0, ge=0)
    total_items: int = Field(default=0, ge=0)

    @property
    def total_requests(self) -> int:
        return self.hit_count + self.miss_count

    @property
    def hit_rate(self) -> float:
        """hits / (hits + misses); 1.0 before any request is recorded."""
        if self.total_requests == 0:
            return 1.0
        return self.hit_count / self.total_requests
