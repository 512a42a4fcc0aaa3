"""Pytest configuration and fixtures for BIMClassify tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bimclassify.cache.classification_cache import ClassificationCache
from bimclassify.cache.memory import InMemoryCacheStore
from bimclassify.config import reset_config
from bimclassify.db.connection import session_scope as make_session_scope
from bimclassify.db.models import Base, BimElementModel
from bimclassify.models import DerivedItem, ElementSnapshot
from bimclassify.suggestions.aggregate import ClassificationSuggestion


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryCacheStore:
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def cache(memory_store: InMemoryCacheStore, clock: FakeClock) -> ClassificationCache:
    return ClassificationCache(memory_store, clock=clock)


@pytest.fixture
def make_element():
    """Factory for element snapshots."""

    def _make(element_id: int, category: str = "Pipes", **kwargs) -> ElementSnapshot:
        return ElementSnapshot(
            id=element_id,
            external_id=f"ext-{element_id}",
            project_id=kwargs.pop("project_id", "project-a"),
            category=category,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_suggestion():
    """Factory for pending suggestions (events already drained)."""

    def _make(element_id: int = 1, commodity_code: str | None = "PIPE-PVC") -> ClassificationSuggestion:
        suggestion = ClassificationSuggestion.create(
            element_id=element_id,
            commodity_code=commodity_code,
            pricing_code="PVC-110",
            derived_items=[
                DerivedItem(
                    commodity_code="PIPE-INSUL",
                    quantity_formula="length_mm / 1000",
                    quantity_unit="m",
                )
            ],
            reasoning_summary="Sanitary PVC pipe, indoor",
        )
        suggestion.pull_events()
        return suggestion

    return _make


@pytest_asyncio.fixture()
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    """File-backed SQLite so several sessions see the same data."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bimclassify.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def session_scope(session_factory):
    """Committing unit-of-work contexts on the test database."""
    return make_session_scope(session_factory)


@pytest.fixture
def make_row():
    """Factory for bim_elements rows."""

    def _make(element_id: int, category: str, **kwargs) -> BimElementModel:
        return BimElementModel(
            id=element_id,
            external_id=f"ext-{element_id}",
            project_id=kwargs.pop("project_id", "project-a"),
            category=category,
            meta=kwargs.pop("meta", {}),
            **kwargs,
        )

    return _make


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()
