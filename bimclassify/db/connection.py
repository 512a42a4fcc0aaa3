"""Async engine and session scopes for the element and suggestion tables."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bimclassify.config import DBConfig, get_config
from bimclassify.db.models import Base

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(db_config: DBConfig) -> AsyncEngine:
    """Create an engine; pool settings apply to server databases only."""
    if db_config.url.lower().startswith("sqlite"):
        return create_async_engine(db_config.url, echo=db_config.echo)

    return create_async_engine(
        db_config.url,
        echo=db_config.echo,
        pool_size=db_config.pool_size,
        max_overflow=db_config.pool_max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine(get_config().db)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _session_factory


def session_scope(factory: async_sessionmaker[AsyncSession]) -> SessionScope:
    """Unit-of-work contexts over a factory: commit on clean exit, roll back on error.

    Usage:
        scope = session_scope(factory)
        async with scope() as session:
            ...
    """

    @asynccontextmanager
    async def _scope() -> AsyncGenerator[AsyncSession, None]:
        session = factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    return _scope


def get_session() -> AbstractAsyncContextManager[AsyncSession]:
    """Unit of work on the configured database (see session_scope)."""
    return session_scope(get_session_factory())()


async def init_db(drop: bool = False) -> None:
    """Create all tables (drop them first when asked)."""
    async with get_engine().begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine. Call on application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
