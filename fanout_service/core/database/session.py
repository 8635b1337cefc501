"""Async engine and session factory.

The notification engine opens one session per operation from the factory
returned by ``get_sessionmaker()``. Tests build their own factory bound to
an in-memory SQLite engine and hand it to the engine directly.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fanout_service.core.database.base import Base
from fanout_service.core.exceptions import StorageError
from fanout_service.core.settings import get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fanout_service.core.settings.database import DatabaseSettings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def create_engine(settings: DatabaseSettings | None = None) -> AsyncEngine:
    """Create an async engine from database settings."""
    settings = settings or get_db_settings()
    return create_async_engine(
        settings.url,
        echo=settings.echo,
        pool_pre_ping=settings.pool_pre_ping,
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by every engine operation."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Get the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine()
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = create_sessionmaker(get_engine())
    return _sessionmaker


@asynccontextmanager
async def transaction(
    sessionmaker: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """Open a session and a transaction that commits when the block exits cleanly.

    Any exception rolls the transaction back. Driver and SQL errors are
    re-raised as ``StorageError`` naming ``operation``; everything else
    propagates unchanged.

    Example:
        async with transaction(sessionmaker, "delete_notifications") as session:
            await repo.delete(session, "reply", [1, 2])
    """
    try:
        async with sessionmaker() as session, session.begin():
            yield session
    except SQLAlchemyError as exc:
        logger.exception("Storage operation failed", extra={"operation": operation})
        raise StorageError(operation, exc) from exc


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create all tables known to ``Base.metadata`` if they do not exist."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close pooled connections and forget the process-wide engine."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _sessionmaker = None


__all__ = [
    "create_engine",
    "create_sessionmaker",
    "create_tables",
    "dispose_engine",
    "get_engine",
    "get_sessionmaker",
    "transaction",
]
