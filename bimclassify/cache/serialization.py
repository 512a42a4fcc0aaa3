"""Cache wire format for classification suggestions.

Entries are JSON envelopes:

    {"schema_version": 1,
     "absolute_expires_at": <epoch seconds>,
     "suggestion": {...public suggestion fields...}}

The absolute deadline travels with the value because the store holds a single
expiry, which sliding refreshes keep moving.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from bimclassify.models import DerivedItem, SuggestionStatus
from bimclassify.suggestions.aggregate import ClassificationSuggestion

SCHEMA_VERSION = 1


class CacheDecodeError(ValueError):
    """Cached bytes are corrupt or written by an incompatible schema version."""


class SuggestionDocument(BaseModel):
    """Flat document mirroring the suggestion's public fields."""

    id: UUID
    element_id: int
    commodity_code: str | None = None
    pricing_code: str | None = None
    derived_items: list[DerivedItem] = Field(default_factory=list)
    reasoning_summary: str
    status: SuggestionStatus
    correlation_id: UUID
    created_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    review_reason: str | None = None

    @classmethod
    def from_suggestion(cls, suggestion: ClassificationSuggestion) -> SuggestionDocument:
        return cls(
            id=suggestion.id,
            element_id=suggestion.element_id,
            commodity_code=suggestion.commodity_code,
            pricing_code=suggestion.pricing_code,
            derived_items=list(suggestion.derived_items),
            reasoning_summary=suggestion.reasoning_summary,
            status=suggestion.status,
            correlation_id=suggestion.correlation_id,
            created_at=suggestion.created_at,
            reviewed_at=suggestion.reviewed_at,
            reviewed_by=suggestion.reviewed_by,
            review_reason=suggestion.review_reason,
        )

    def to_suggestion(self) -> ClassificationSuggestion:
        """Rehydrate without recording events."""
        return ClassificationSuggestion(
            id=self.id,
            element_id=self.element_id,
            commodity_code=self.commodity_code,
            pricing_code=self.pricing_code,
            derived_items=list(self.derived_items),
            reasoning_summary=self.reasoning_summary,
            status=self.status,
            correlation_id=self.correlation_id,
            created_at=self.created_at,
            reviewed_at=self.reviewed_at,
            reviewed_by=self.reviewed_by,
            review_reason=self.review_reason,
        )


class CacheEnvelope(BaseModel):
    schema_version: int = SCHEMA_VERSION
    absolute_expires_at: float
    suggestion: SuggestionDocument


def encode_entry(suggestion: ClassificationSuggestion, absolute_expires_at: float) -> bytes:
    envelope = CacheEnvelope(
        absolute_expires_at=absolute_expires_at,
        suggestion=SuggestionDocument.from_suggestion(suggestion),
    )
    return envelope.model_dump_json().encode("utf-8")


def decode_entry(raw: bytes | str) -> CacheEnvelope:
    """Parse a cached entry.

    Raises:
        CacheDecodeError: If the payload is invalid or from another schema version
    """
    try:
        envelope = CacheEnvelope.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise CacheDecodeError(f"Invalid cache entry: {exc}") from exc

    if envelope.schema_version != SCHEMA_VERSION:
        raise CacheDecodeError(
            f"Unsupported cache schema version {envelope.schema_version} "
            f"(expected {SCHEMA_VERSION})"
        )
    return envelope
