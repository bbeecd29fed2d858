"""Database configuration and session management.

This module provides async SQLAlchemy configuration for the metadata tables
and for the physical dataset, version and chart tables, which all live in the
same database. PostgreSQL (asyncpg) is the production engine; SQLite
(aiosqlite) is supported for local runs and tests.

Example:
    async with get_session_maker()() as session:
        result = await session.execute(select(DatasetRecord))
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def create_engine_for(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite connections are switched to explicit ``BEGIN`` so that DDL such as
    ``CREATE TABLE ... AS`` and ``ALTER TABLE`` is part of the surrounding
    transaction and savepoints work.

    Args:
        url: SQLAlchemy database URL.
        **kwargs: Extra engine options (e.g. ``poolclass``).

    Returns:
        Configured AsyncEngine.
    """
    engine = create_async_engine(url, echo=False, future=True, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


# Lazy initialization - only create when first accessed
_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Get or create the database engine (lazy initialization).

    Raises:
        ValueError: If DATABASE_URL is not configured.
    """
    global _engine
    if _engine is None:
        settings.database.validate()
        _engine = create_engine_for(settings.database.url)
    return _engine


def get_session_maker() -> async_sessionmaker:
    """Get or create the session maker (lazy initialization)."""
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


def configure(engine: AsyncEngine) -> None:
    """Point the module at an existing engine (used by tests and scripts)."""
    global _engine, _session_maker
    _engine = engine
    _session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that provides a database session.

    Yields:
        AsyncSession for database operations.
    """
    async with get_session_maker()() as session:
        yield session


async def init_models(engine: Optional[AsyncEngine] = None) -> None:
    """Create the metadata tables if they do not exist yet."""
    from models import db_models  # noqa: F401 - ensure models are registered

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
