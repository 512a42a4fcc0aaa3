"""Review operations (approve/reject) on classification suggestions.

Events are published only after the transition has been committed; a failed
or lost conditional update publishes nothing.
"""

from __future__ import annotations

import logging
from uuid import UUID

from bimclassify.db.connection import SessionScope
from bimclassify.review.publisher import EventPublisher, LoggingEventPublisher
from bimclassify.suggestions.aggregate import ClassificationSuggestion
from bimclassify.suggestions.events import DomainEvent
from bimclassify.suggestions.repository import SuggestionRepository

logger = logging.getLogger(__name__)


class ReviewService:
    """Human review workflow over the durable suggestion store."""

    def __init__(
        self,
        session_scope: SessionScope,
        publisher: EventPublisher | None = None,
    ):
        """Initialize review service.

        Args:
            session_scope: Factory of committing session contexts
                (e.g. bimclassify.db.connection.get_session)
            publisher: Audit event publisher (default: log only)
        """
        self.session_scope = session_scope
        self.publisher = publisher or LoggingEventPublisher()

    async def approve(self, suggestion_id: UUID, approved_by: str) -> ClassificationSuggestion:
        """Approve a pending suggestion.

        Raises:
            SuggestionNotFoundError: If the suggestion does not exist
            InvalidStateTransitionError: If it is no longer pending
            ValidationError: If approved_by is blank
        """
        async with self.session_scope() as session:
            repository = SuggestionRepository(session)
            suggestion = await repository.get(suggestion_id)
            suggestion.approve(approved_by)
            await repository.save_review(suggestion)
            events = suggestion.pull_events()

        await self._publish(events)
        logger.info("Suggestion %s approved by %s", suggestion_id, approved_by)
        return suggestion

    async def reject(
        self, suggestion_id: UUID, rejected_by: str, reason: str
    ) -> ClassificationSuggestion:
        """Reject a pending suggestion with a mandatory reason.

        Raises:
            SuggestionNotFoundError: If the suggestion does not exist
            InvalidStateTransitionError: If it is no longer pending
            ValidationError: If rejected_by or reason is blank
        """
        async with self.session_scope() as session:
            repository = SuggestionRepository(session)
            suggestion = await repository.get(suggestion_id)
            suggestion.reject(rejected_by, reason)
            await repository.save_review(suggestion)
            events = suggestion.pull_events()

        await self._publish(events)
        logger.info("Suggestion %s rejected by %s: %s", suggestion_id, rejected_by, reason)
        return suggestion

    async def list_pending(self, limit: int = 100) -> list[ClassificationSuggestion]:
        async with self.session_scope() as session:
            return await SuggestionRepository(session).list_pending(limit)

    async def _publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            await self.publisher.publish(event)
