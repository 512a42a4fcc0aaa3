"""Unit tests for the classification suggestion state machine and its events."""

from __future__ import annotations

import pytest

from bimclassify.errors import InvalidStateTransitionError, ValidationError
from bimclassify.models import SuggestionStatus
from bimclassify.suggestions.aggregate import ClassificationSuggestion
from bimclassify.suggestions.events import (
    ClassificationApproved,
    ClassificationRejected,
    ClassificationSuggested,
)


def new_suggestion(reasoning: str = "Indoor PVC waste pipe") -> ClassificationSuggestion:
    return ClassificationSuggestion.create(
        element_id=42,
        commodity_code="PIPE-PVC",
        pricing_code=None,
        derived_items=[],
        reasoning_summary=reasoning,
    )


class TestCreate:
    def test_created_pending(self):
        suggestion = new_suggestion()

        assert suggestion.status is SuggestionStatus.PENDING
        assert suggestion.is_pending
        assert suggestion.reviewed_at is None

    def test_records_suggested_event(self):
        suggestion = new_suggestion()

        events = suggestion.pull_events()

        assert len(events) == 1
        event = events[0]
        assert isinstance(event, ClassificationSuggested)
        assert event.suggestion_id == suggestion.id
        assert event.element_id == 42
        assert event.correlation_id == suggestion.correlation_id

    def test_pull_events_drains(self):
        suggestion = new_suggestion()
        suggestion.pull_events()

        assert suggestion.pull_events() == []
        assert suggestion.pending_events == ()

    @pytest.mark.parametrize("reasoning", ["", "   "])
    def test_blank_reasoning_rejected(self, reasoning):
        with pytest.raises(ValidationError):
            new_suggestion(reasoning)

    def test_commodity_code_optional(self):
        suggestion = ClassificationSuggestion.create(
            element_id=1,
            commodity_code=None,
            pricing_code=None,
            derived_items=[],
            reasoning_summary="Unclear element",
        )

        assert suggestion.commodity_code is None


class TestApprove:
    def test_approve(self):
        suggestion = new_suggestion()
        suggestion.pull_events()

        event = suggestion.approve("reviewer@example.com")

        assert suggestion.status is SuggestionStatus.APPROVED
        assert suggestion.reviewed_by == "reviewer@example.com"
        assert suggestion.reviewed_at is not None
        assert isinstance(event, ClassificationApproved)
        assert event.correlation_id == suggestion.correlation_id
        assert suggestion.pull_events() == [event]

    def test_blank_reviewer_rejected(self):
        suggestion = new_suggestion()

        with pytest.raises(ValidationError):
            suggestion.approve("  ")
        assert suggestion.is_pending

    def test_approve_twice_raises(self):
        suggestion = new_suggestion()
        suggestion.approve("alice")
        suggestion.pull_events()

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            suggestion.approve("bob")

        assert exc_info.value.current_status == "approved"
        assert suggestion.reviewed_by == "alice"
        assert suggestion.pull_events() == []


class TestReject:
    def test_reject_with_reason(self):
        suggestion = new_suggestion()
        suggestion.pull_events()

        event = suggestion.reject("alice", "Wrong material")

        assert suggestion.status is SuggestionStatus.REJECTED
        assert suggestion.review_reason == "Wrong material"
        assert isinstance(event, ClassificationRejected)
        assert event.reason == "Wrong material"

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, reason):
        suggestion = new_suggestion()
        suggestion.pull_events()

        with pytest.raises(ValidationError):
            suggestion.reject("alice", reason)

        assert suggestion.is_pending
        assert suggestion.pull_events() == []

    def test_reject_after_approve_raises(self):
        suggestion = new_suggestion()
        suggestion.approve("alice")

        with pytest.raises(InvalidStateTransitionError):
            suggestion.reject("bob", "Too late")

        assert suggestion.status is SuggestionStatus.APPROVED

    def test_terminal_check_precedes_validation(self):
        """Test a terminal suggestion reports the state error, not the blank reason."""
        suggestion = new_suggestion()
        suggestion.reject("alice", "Duplicate")

        with pytest.raises(InvalidStateTransitionError):
            suggestion.reject("bob", "")


class TestEvents:
    def test_event_to_dict(self):
        suggestion = new_suggestion()
        suggestion.pull_events()
        event = suggestion.reject("alice", "Wrong code")

        payload = event.to_dict()

        assert payload["event_type"] == "classification.rejected"
        assert payload["suggestion_id"] == str(suggestion.id)
        assert payload["correlation_id"] == str(suggestion.correlation_id)
        assert payload["reason"] == "Wrong code"
        assert isinstance(payload["occurred_at"], str)

    def test_event_ids_unique(self):
        suggestion = new_suggestion()
        created = suggestion.pull_events()[0]
        approved = suggestion.approve("alice")

        assert created.event_id != approved.event_id
        assert created.correlation_id == approved.correlation_id
