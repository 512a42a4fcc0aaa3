"""Tests for the SQL element source (SQLite via aiosqlite)."""

from __future__ import annotations

import pytest
import pytest_asyncio

from bimclassify.elements import repository as element_repository
from bimclassify.elements.repository import SqlElementRepository


@pytest_asyncio.fixture()
async def seeded_session(db_session, make_row):
    db_session.add_all(
        [
            make_row(1, "Pipes", family="Pipe Types", material="PVC", length_mm=1000.0,
                     meta={"System": "Sanitary"}),
            make_row(2, "Pipes", family="pipe types", material="pvc", length_mm=3000.0),
            make_row(3, "Pipes", family="Pipe Types", material="PVC", diameter_mm=110.0),
            make_row(4, "Ducts", family="Duct Types", material="Steel"),
            make_row(5, "Pipes", family="Pipe Types", material=None),
            make_row(6, "Pipes", family="Pipe Types", material=""),
        ]
    )
    await db_session.commit()
    return db_session


class TestGetByIds:
    @pytest.mark.asyncio
    async def test_returns_snapshots(self, seeded_session):
        repo = SqlElementRepository(seeded_session)

        elements = await repo.get_by_ids([1, 4, 999])

        by_id = {e.id: e for e in elements}
        assert set(by_id) == {1, 4}
        assert by_id[1].metadata == {"System": "Sanitary"}
        assert by_id[1].length_mm == 1000.0

    @pytest.mark.asyncio
    async def test_chunked_lookup(self, seeded_session, monkeypatch):
        monkeypatch.setattr(element_repository, "ID_CHUNK_SIZE", 2)
        repo = SqlElementRepository(seeded_session)

        elements = await repo.get_by_ids([1, 2, 3, 4, 5])

        assert sorted(e.id for e in elements) == [1, 2, 3, 4, 5]


class TestPatternGroups:
    @pytest.mark.asyncio
    async def test_groups_ordered_by_count(self, seeded_session):
        repo = SqlElementRepository(seeded_session)

        groups = await repo.list_pattern_groups(skip=0, take=10)

        assert [g.element_count for g in groups] == [3, 2, 1]
        assert groups[0].signature == ("pipes", "pipe types", "", "pvc", "")
        assert groups[0].category == "Pipes"

    @pytest.mark.asyncio
    async def test_none_and_empty_group_together(self, seeded_session):
        repo = SqlElementRepository(seeded_session)

        groups = await repo.list_pattern_groups(skip=0, take=10)

        no_material = [g for g in groups if g.signature[3] == ""]
        assert len(no_material) == 1
        assert no_material[0].element_count == 2

    @pytest.mark.asyncio
    async def test_dimension_statistics_over_group(self, seeded_session):
        repo = SqlElementRepository(seeded_session)

        groups = await repo.list_pattern_groups(skip=0, take=1)
        stats = groups[0].dimension_stats

        assert stats.length.min == 1000.0
        assert stats.length.max == 3000.0
        assert stats.length.avg == pytest.approx(2000.0)
        assert stats.diameter.min == 110.0
        assert stats.width is None

    @pytest.mark.asyncio
    async def test_paging(self, seeded_session):
        repo = SqlElementRepository(seeded_session)

        page = await repo.list_pattern_groups(skip=2, take=5)

        assert len(page) == 1
        assert page[0].category == "Ducts"
        assert page[0].dimension_stats is None

    @pytest.mark.asyncio
    async def test_samples_by_ascending_id(self, seeded_session):
        repo = SqlElementRepository(seeded_session)

        samples = await repo.get_pattern_samples(("pipes", "pipe types", "", "pvc", ""), limit=2)

        assert [e.id for e in samples] == [1, 2]

    @pytest.mark.asyncio
    async def test_count_distinct_patterns(self, seeded_session):
        repo = SqlElementRepository(seeded_session)

        assert await repo.count_distinct_patterns() == 3

    @pytest.mark.asyncio
    async def test_empty_corpus(self, db_session):
        repo = SqlElementRepository(db_session)

        assert await repo.list_pattern_groups(skip=0, take=10) == []
        assert await repo.count_distinct_patterns() == 0
