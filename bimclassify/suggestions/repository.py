"""Durable storage for classification suggestions.

Review transitions are written with a conditional update
(``WHERE status = 'pending'``), so two reviewers racing on the same
suggestion produce exactly one transition.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bimclassify.db.models import ClassificationSuggestionModel
from bimclassify.errors import InvalidStateTransitionError, SuggestionNotFoundError
from bimclassify.models import DerivedItem, SuggestionStatus
from bimclassify.suggestions.aggregate import ClassificationSuggestion


def to_model(
    suggestion: ClassificationSuggestion, pattern_hash: str | None = None
) -> ClassificationSuggestionModel:
    return ClassificationSuggestionModel(
        id=suggestion.id,
        element_id=suggestion.element_id,
        pattern_hash=pattern_hash,
        commodity_code=suggestion.commodity_code,
        pricing_code=suggestion.pricing_code,
        derived_items=[item.model_dump() for item in suggestion.derived_items],
        reasoning_summary=suggestion.reasoning_summary,
        status=suggestion.status.value,
        correlation_id=suggestion.correlation_id,
        created_at=suggestion.created_at,
        reviewed_at=suggestion.reviewed_at,
        reviewed_by=suggestion.reviewed_by,
        review_reason=suggestion.review_reason,
    )


def to_suggestion(row: ClassificationSuggestionModel) -> ClassificationSuggestion:
    return ClassificationSuggestion(
        id=row.id,
        element_id=row.element_id,
        commodity_code=row.commodity_code,
        pricing_code=row.pricing_code,
        derived_items=[DerivedItem.model_validate(item) for item in row.derived_items or []],
        reasoning_summary=row.reasoning_summary,
        status=SuggestionStatus(row.status),
        correlation_id=row.correlation_id,
        created_at=_as_utc(row.created_at),
        reviewed_at=_as_utc(row.reviewed_at),
        reviewed_by=row.reviewed_by,
        review_reason=row.review_reason,
    )


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops the offset; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SuggestionRepository:
    """Suggestion persistence bound to one session; the caller owns commit."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def add(
        self, suggestion: ClassificationSuggestion, pattern_hash: str | None = None
    ) -> None:
        """Insert a new suggestion."""
        self.session.add(to_model(suggestion, pattern_hash))
        await self.session.flush()

    async def get(self, suggestion_id: UUID) -> ClassificationSuggestion:
        """Load a suggestion.

        Raises:
            SuggestionNotFoundError: If the id is unknown
        """
        row = await self.session.get(ClassificationSuggestionModel, suggestion_id)
        if row is None:
            raise SuggestionNotFoundError(suggestion_id)
        return to_suggestion(row)

    async def list_pending(self, limit: int = 100) -> list[ClassificationSuggestion]:
        """Oldest pending suggestions first."""
        stmt = (
            select(ClassificationSuggestionModel)
            .where(ClassificationSuggestionModel.status == SuggestionStatus.PENDING.value)
            .order_by(ClassificationSuggestionModel.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [to_suggestion(row) for row in result.scalars()]

    async def save_review(self, suggestion: ClassificationSuggestion) -> None:
        """Persist a review transition only if the stored row is still pending.

        Raises:
            InvalidStateTransitionError: If another reviewer got there first
            SuggestionNotFoundError: If the row no longer exists
        """
        stmt = (
            update(ClassificationSuggestionModel)
            .where(
                ClassificationSuggestionModel.id == suggestion.id,
                ClassificationSuggestionModel.status == SuggestionStatus.PENDING.value,
            )
            .values(
                status=suggestion.status.value,
                reviewed_at=suggestion.reviewed_at,
                reviewed_by=suggestion.reviewed_by,
                review_reason=suggestion.review_reason,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 0:
            current = await self.session.execute(
                select(ClassificationSuggestionModel.status).where(
                    ClassificationSuggestionModel.id == suggestion.id
                )
            )
            status = current.scalar_one_or_none()
            if status is None:
                raise SuggestionNotFoundError(suggestion.id)
            action = "approve" if suggestion.status is SuggestionStatus.APPROVED else "reject"
            raise InvalidStateTransitionError(suggestion.id, status, action)
