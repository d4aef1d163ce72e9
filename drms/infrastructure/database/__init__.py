"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from drms.config import settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the session maker bound to the global engine."""
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup and by the migration CLI.

    Args:
        database_url: Override for settings.database_url

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    # asyncpg takes ssl=, not libpq's sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")

    _engine = create_async_engine(
        url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )

    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """
    Close the database engine and dispose of connections.

    Should be called during application shutdown.
    """
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def get_session_context(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    For use in background jobs, scripts, and manual async operations.
    The session is committed when the block exits normally and rolled back
    when it raises; either way it is closed and its connection returned
    to the pool.

    Usage:
        async with get_session_context() as session:
            result = await session.execute(select(RepairCaseModel))

    Args:
        session_maker: Session maker to use instead of the global one

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    maker = session_maker or get_session_maker()

    async with maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
