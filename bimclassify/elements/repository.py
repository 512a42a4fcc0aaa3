"""SQLAlchemy implementation of the element source.

Pattern grouping happens in SQL on the normalized signature
(lower(coalesce(field, ''))), so corpus-wide enumeration never loads every
element into memory.

SQLite's lower() only folds ASCII letters, so groups that differ in the case
of non-ASCII characters come back separately while sharing one pattern hash;
ClassificationService.warm_cache classifies such groups once.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import and_, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession

from bimclassify.db.models import BimElementModel
from bimclassify.elements.source import PatternGroup
from bimclassify.models import DIMENSIONS, DimensionRange, DimensionStats, ElementSnapshot

logger = logging.getLogger(__name__)

# Stay well below SQLite's bound-parameter limit
ID_CHUNK_SIZE = 500

_SIGNATURE_COLUMNS = (
    BimElementModel.category,
    BimElementModel.family,
    BimElementModel.type_name,
    BimElementModel.material,
    BimElementModel.location_type,
)


def _normalized(column):
    # Literal rather than a bound parameter so GROUP BY matches the select list
    return func.lower(func.coalesce(column, literal_column("''")))


def to_snapshot(row: BimElementModel) -> ElementSnapshot:
    """Convert ORM row to an immutable snapshot."""
    return ElementSnapshot(
        id=row.id,
        external_id=row.external_id,
        project_id=row.project_id,
        category=row.category,
        family=row.family,
        type_name=row.type_name,
        spec=row.spec,
        location_type=row.location_type,
        material=row.material,
        length_mm=row.length_mm,
        width_mm=row.width_mm,
        height_mm=row.height_mm,
        diameter_mm=row.diameter_mm,
        metadata={str(k): str(v) for k, v in (row.meta or {}).items()},
    )


class SqlElementRepository:
    """Read-only element queries against the bim_elements table."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def get_by_ids(self, element_ids: Sequence[int]) -> list[ElementSnapshot]:
        """Fetch snapshots for the given ids (unknown ids are skipped)."""
        ids = list(dict.fromkeys(element_ids))
        snapshots: list[ElementSnapshot] = []

        for start in range(0, len(ids), ID_CHUNK_SIZE):
            chunk = ids[start : start + ID_CHUNK_SIZE]
            result = await self.session.execute(
                select(BimElementModel).where(BimElementModel.id.in_(chunk))
            )
            snapshots.extend(to_snapshot(row) for row in result.scalars())

        return snapshots

    async def list_pattern_groups(self, skip: int, take: int) -> list[PatternGroup]:
        """One page of distinct signatures with counts and dimension statistics.

        Ordered by element count descending, then signature, so pages are stable.
        """
        keys = [_normalized(column).label(f"k{i}") for i, column in enumerate(_SIGNATURE_COLUMNS)]
        displays = [func.min(column) for column in _SIGNATURE_COLUMNS]
        element_count = func.count(BimElementModel.id).label("element_count")

        dimension_columns = []
        for name in DIMENSIONS:
            column = getattr(BimElementModel, f"{name}_mm")
            dimension_columns.extend([func.min(column), func.max(column), func.avg(column)])

        stmt = (
            select(*keys, *displays, element_count, *dimension_columns)
            .group_by(*keys)
            .order_by(element_count.desc(), *keys)
            .offset(skip)
            .limit(take)
        )
        result = await self.session.execute(stmt)

        groups = []
        for row in result.all():
            values = tuple(row)
            signature = tuple(values[0:5])
            category, family, type_name, material, location_type = values[5:10]
            count = values[10]
            dims = values[11:]

            ranges = {}
            for i, name in enumerate(DIMENSIONS):
                low, high, avg = dims[i * 3 : i * 3 + 3]
                ranges[name] = (
                    None
                    if low is None
                    else DimensionRange(min=float(low), max=float(high), avg=float(avg))
                )
            stats = DimensionStats(**ranges)

            groups.append(
                PatternGroup(
                    signature=signature,
                    category=category,
                    family=family,
                    type_name=type_name,
                    material=material,
                    location_type=location_type,
                    element_count=count,
                    dimension_stats=None if stats.is_empty else stats,
                )
            )

        logger.debug("Listed %d pattern groups (skip=%d, take=%d)", len(groups), skip, take)
        return groups

    async def get_pattern_samples(
        self, signature: tuple[str, str, str, str, str], limit: int
    ) -> list[ElementSnapshot]:
        """First `limit` elements (ascending id) matching a normalized signature."""
        conditions = [
            _normalized(column) == value
            for column, value in zip(_SIGNATURE_COLUMNS, signature)
        ]
        stmt = (
            select(BimElementModel)
            .where(and_(*conditions))
            .order_by(BimElementModel.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [to_snapshot(row) for row in result.scalars()]

    async def count_distinct_patterns(self) -> int:
        """Count distinct normalized signatures across the corpus."""
        distinct = (
            select(
                *[
                    _normalized(column).label(f"k{i}")
                    for i, column in enumerate(_SIGNATURE_COLUMNS)
                ]
            )
            .distinct()
            .subquery()
        )
        result = await self.session.execute(select(func.count()).select_from(distinct))
        return int(result.scalar_one())
