"""Database connection and session management.

This module provides the async database engine, session factory, and
session lifecycle helpers for the storage layer.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stock_livedata.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


class StorageUnavailableError(Exception):
    """Raised when the backing store cannot be reached or a write fails."""


def normalize_async_database_url(database_url: str) -> str:
    """Map sync driver URLs onto their async counterparts."""
    if database_url.startswith("postgresql://"):
        logger.warning(
            "Database URL uses sync dialect 'postgresql://'; using async driver 'postgresql+asyncpg://'."
        )
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (":memory:" in database_url or database_url.endswith(":///"))


def create_async_db_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an asynchronous SQLAlchemy engine.

    Args:
        database_url: Database connection URL (e.g., sqlite+aiosqlite:///...).
        **kwargs: Additional engine options.

    Returns:
        SQLAlchemy AsyncEngine instance.
    """
    return create_async_engine(normalize_async_database_url(database_url), **kwargs)


def create_async_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an asynchronous session factory."""
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def init_async_db(engine: AsyncEngine) -> list[str]:
    """Initialize the database schema asynchronously.

    Creates all tables defined in the models. Existing tables are left alone.

    Args:
        engine: SQLAlchemy AsyncEngine instance.

    Returns:
        Names of the tables that did not exist before.
    """
    async with engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        await conn.run_sync(Base.metadata.create_all)
    created = [name for name in Base.metadata.tables if name not in existing]
    logger.info("Database schema initialized (%d tables created)", len(created))
    return created


class DatabaseManager:
    """Manages the async engine and hands out sessions.

    A single manager is constructed at startup and shared by the series
    store, the directory and the scheduler; `dispose_async` releases its
    connections at shutdown.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        """Initialize database manager.

        Args:
            database_url: Database connection URL.
            pool_size: Connection pool size (ignored for SQLite).
            max_overflow: Maximum overflow connections (ignored for SQLite).
            echo: Echo SQL statements for debugging.
        """
        self.database_url = normalize_async_database_url(database_url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

        self._async_engine: AsyncEngine | None = None
        self._async_session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def dialect_name(self) -> str:
        """Backend dialect name (``sqlite`` or ``postgresql``)."""
        return self.database_url.split(":", 1)[0].split("+", 1)[0]

    def _get_async_engine(self) -> AsyncEngine:
        """Get or create the asynchronous engine."""
        if self._async_engine is None:
            kwargs: dict[str, Any] = {"echo": self._echo}
            if _is_memory_sqlite(self.database_url):
                # One shared connection, otherwise every session sees an empty database.
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            elif self.dialect_name != "sqlite":
                kwargs["pool_size"] = self._pool_size
                kwargs["max_overflow"] = self._max_overflow
            self._async_engine = create_async_db_engine(self.database_url, **kwargs)
        return self._async_engine

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an asynchronous session as a context manager.

        Commits on clean exit and rolls back on error. Driver-level
        connection failures surface as StorageUnavailableError.

        Yields:
            SQLAlchemy AsyncSession instance.
        """
        if self._async_session_factory is None:
            self._async_session_factory = create_async_session_factory(self._get_async_engine())

        session = self._async_session_factory()
        try:
            yield session
            await session.commit()
        except (OperationalError, DBAPIError) as e:
            await session.rollback()
            raise StorageUnavailableError(str(e)) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def init_schema_async(self) -> list[str]:
        """Initialize database schema asynchronously; returns the newly created tables."""
        try:
            return await init_async_db(self._get_async_engine())
        except (OperationalError, DBAPIError) as e:
            raise StorageUnavailableError(str(e)) from e

    async def dispose_async(self) -> None:
        """Dispose of all async database connections."""
        if self._async_engine is not None:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None
        logger.info("Async database connections disposed")
