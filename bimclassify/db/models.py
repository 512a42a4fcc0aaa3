"""SQLAlchemy async database models for BIMClassify.

bim_elements is the upstream element source (read-only for this package);
classification_suggestions is the durable record of every suggestion and its
review outcome. The cache never substitutes for either.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class BimElementModel(Base):
    """BIM element snapshot as supplied by the authoring tool export."""

    __tablename__ = "bim_elements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[str] = mapped_column(Text, nullable=False)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    # Categorical signature
    category: Mapped[str] = mapped_column(Text, nullable=False)
    family: Mapped[str | None] = mapped_column(Text)
    type_name: Mapped[str | None] = mapped_column(Text)
    material: Mapped[str | None] = mapped_column(Text)
    location_type: Mapped[str | None] = mapped_column(Text)
    spec: Mapped[str | None] = mapped_column(Text)

    # Dimensions (mm)
    length_mm: Mapped[float | None] = mapped_column(Float)
    width_mm: Mapped[float | None] = mapped_column(Float)
    height_mm: Mapped[float | None] = mapped_column(Float)
    diameter_mm: Mapped[float | None] = mapped_column(Float)

    meta: Mapped[dict] = mapped_column("meta_json", JSON, default=dict, nullable=False)

    __table_args__ = (
        # CRITICAL for pattern grouping on large corpora
        Index(
            "idx_bim_elements_pattern",
            "category",
            "family",
            "type_name",
            "material",
            "location_type",
            "id",
        ),
    )


class ClassificationSuggestionModel(Base):
    """Durable, audit-grade record of an advisory classification suggestion."""

    __tablename__ = "classification_suggestions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    element_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    pattern_hash: Mapped[str | None] = mapped_column(String(16), index=True)

    commodity_code: Mapped[str | None] = mapped_column(String(100))
    pricing_code: Mapped[str | None] = mapped_column(String(100))
    derived_items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    reasoning_summary: Mapped[str] = mapped_column(String(2000), nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    correlation_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reviewed_by: Mapped[str | None] = mapped_column(String(200))
    review_reason: Mapped[str | None] = mapped_column(Text)
