"""Audit events raised by the classification suggestion aggregate."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base event: unique id, timestamp and the suggestion's correlation id."""

    event_type: ClassVar[str] = "domain_event"

    correlation_id: UUID
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly payload for publishers and audit logs."""
        payload: dict[str, Any] = {"event_type": self.event_type}
        for key, value in asdict(self).items():
            if isinstance(value, (UUID, Enum)):
                value = str(value.value if isinstance(value, Enum) else value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            payload[key] = value
        return payload


@dataclass(frozen=True, kw_only=True)
class ClassificationSuggested(DomainEvent):
    event_type: ClassVar[str] = "classification.suggested"

    suggestion_id: UUID
    element_id: int
    commodity_code: str | None = None


@dataclass(frozen=True, kw_only=True)
class ClassificationApproved(DomainEvent):
    event_type: ClassVar[str] = "classification.approved"

    suggestion_id: UUID
    element_id: int
    approved_by: str


@dataclass(frozen=True, kw_only=True)
class ClassificationRejected(DomainEvent):
    event_type: ClassVar[str] = "classification.rejected"

    suggestion_id: UUID
    element_id: int
    rejected_by: str
    reason: str
