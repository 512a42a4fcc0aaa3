"""Classification suggestion aggregate and its review state machine.

A suggestion is ADVISORY ONLY, never the canonical classification.

State machine:
    pending -> approved   (terminal)
    pending -> rejected   (terminal)

Each transition records exactly one event. Events are held until the caller
drains them with pull_events() after a successful persist (outbox style);
the aggregate never publishes on its own.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from bimclassify.errors import InvalidStateTransitionError, ValidationError
from bimclassify.models import DerivedItem, SuggestionStatus
from bimclassify.suggestions.events import (
    ClassificationApproved,
    ClassificationRejected,
    ClassificationSuggested,
    DomainEvent,
    utcnow,
)


def _require_text(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} is required and cannot be blank")
    return value.strip()


@dataclass
class ClassificationSuggestion:
    """Aggregate root. Use create() for new suggestions; the constructor rehydrates."""

    element_id: int
    reasoning_summary: str
    commodity_code: str | None = None
    pricing_code: str | None = None
    derived_items: list[DerivedItem] = field(default_factory=list)
    status: SuggestionStatus = SuggestionStatus.PENDING
    id: UUID = field(default_factory=uuid4)
    correlation_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    review_reason: str | None = None

    _pending_events: list[DomainEvent] = field(
        default_factory=list, init=False, repr=False, compare=False
    )

    @classmethod
    def create(
        cls,
        element_id: int,
        commodity_code: str | None,
        pricing_code: str | None,
        derived_items: Iterable[DerivedItem],
        reasoning_summary: str,
    ) -> ClassificationSuggestion:
        """Create a pending suggestion and record ClassificationSuggested.

        Raises:
            ValidationError: If reasoning_summary is blank
        """
        suggestion = cls(
            element_id=element_id,
            commodity_code=commodity_code,
            pricing_code=pricing_code,
            derived_items=list(derived_items),
            reasoning_summary=_require_text(reasoning_summary, "reasoning_summary"),
        )
        suggestion._record(
            ClassificationSuggested(
                correlation_id=suggestion.correlation_id,
                suggestion_id=suggestion.id,
                element_id=element_id,
                commodity_code=commodity_code,
            )
        )
        return suggestion

    @property
    def is_pending(self) -> bool:
        return self.status is SuggestionStatus.PENDING

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._pending_events)

    def approve(self, approved_by: str) -> ClassificationApproved:
        """Approve a pending suggestion.

        Raises:
            InvalidStateTransitionError: If the suggestion is not pending
            ValidationError: If approved_by is blank
        """
        self._ensure_pending("approve")
        actor = _require_text(approved_by, "approved_by")

        self.status = SuggestionStatus.APPROVED
        self.reviewed_at = utcnow()
        self.reviewed_by = actor

        event = ClassificationApproved(
            correlation_id=self.correlation_id,
            suggestion_id=self.id,
            element_id=self.element_id,
            approved_by=actor,
        )
        self._record(event)
        return event

    def reject(self, rejected_by: str, reason: str) -> ClassificationRejected:
        """Reject a pending suggestion; a non-blank reason is mandatory.

        Raises:
            InvalidStateTransitionError: If the suggestion is not pending
            ValidationError: If rejected_by or reason is blank
        """
        self._ensure_pending("reject")
        actor = _require_text(rejected_by, "rejected_by")
        why = _require_text(reason, "reason")

        self.status = SuggestionStatus.REJECTED
        self.reviewed_at = utcnow()
        self.reviewed_by = actor
        self.review_reason = why

        event = ClassificationRejected(
            correlation_id=self.correlation_id,
            suggestion_id=self.id,
            element_id=self.element_id,
            rejected_by=actor,
            reason=why,
        )
        self._record(event)
        return event

    def pull_events(self) -> list[DomainEvent]:
        """Drain recorded events. Call only after the change has been persisted."""
        events, self._pending_events = self._pending_events, []
        return events

    def _ensure_pending(self, action: str) -> None:
        if not self.is_pending:
            raise InvalidStateTransitionError(self.id, self.status.value, action)

    def _record(self, event: DomainEvent) -> None:
        self._pending_events.append(event)
