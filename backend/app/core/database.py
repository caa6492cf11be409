"""
Database layer — async PostgreSQL via SQLAlchemy 2.0 + asyncpg.

Provides:
    • Lazily created async engine and session factory
    • Base model for ORM entities
    • Connectivity probe for the health endpoint

The engine is built on first use so that importing the application
(e.g. in tests that inject an in-memory directory) never needs a
database driver or a reachable server.

Usage:
    from backend.app.core.database import get_session_factory

    async with get_session_factory()() as session:
        result = await session.execute(select(UserLocation))
"""

from __future__ import annotations

import logging
from functools import lru_cache

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──
@lru_cache()
def get_engine() -> AsyncEngine:
    """Create the shared async engine from settings (once)."""
    logger.info("Creating database engine: %s", settings.DATABASE_URL.split("@")[-1])
    return create_async_engine(
        settings.DATABASE_URL,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
    )


# ── Session Factory ──
@lru_cache()
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Lifecycle ──
async def ping(engine: AsyncEngine) -> None:
    """Run a trivial query; raises if the database is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose engine connections if an engine was ever created."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
        logger.info("Database connections closed")
