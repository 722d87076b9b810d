"""
Database configuration and session management.

Provides:
- Async engine creation with proper configuration
- Async session factory for the key-value store
- Database initialization utilities
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def _get_async_database_url(sync_url: str) -> str:
    """Convert sync database URL to async URL."""
    if sync_url.startswith("sqlite:///"):
        # SQLite async uses aiosqlite
        return sync_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    elif sync_url.startswith("postgresql://"):
        # PostgreSQL async uses asyncpg
        return sync_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return sync_url


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given database URL.

    In-memory SQLite databases use a static pool so every session sees
    the same database.

    Args:
        database_url: Sync or async database URL
        echo: Log SQL statements

    Returns:
        AsyncEngine bound to the database
    """
    async_url = _get_async_database_url(database_url)

    if ":memory:" in async_url:
        return create_async_engine(
            async_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )

    if "sqlite" in async_url:
        # aiosqlite cannot create missing parent directories
        db_path = Path(async_url.split(":///", 1)[1])
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(async_url, echo=echo)

    return create_async_engine(
        async_url,
        pool_size=5,  # Maximum number of connections in pool
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,  # Test connections before using them
        echo=echo,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_async_db_context(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for short-lived database sessions.

    Usage:
        async with get_async_db_context(factory) as session:
            session.add(value)
            # Automatic commit on context exit

    Yields:
        AsyncSession: SQLAlchemy async database session
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize database by creating all tables.

    Safe to call repeatedly; existing tables are left untouched.
    """
    from pocket_calendar.models.base import Base

    logger.info("Creating database tables...")
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")
