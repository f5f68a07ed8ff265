"""PostgreSQL connectivity for the catalog store.

Only used with ``STORE_BACKEND=postgres``. The engine is created on first
use so the memory backend never imports a driver connection.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from bazaar.config import settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            # Waiting for a pooled connection counts against the store timeout
            pool_timeout=settings.store_timeout,
            pool_pre_ping=True,
        )
    return _engine


@asynccontextmanager
async def session_context() -> AsyncIterator[AsyncSession]:
    """One transaction: committed on success, rolled back on any error."""
    global _sessions
    if _sessions is None:
        _sessions = async_sessionmaker(get_engine(), expire_on_commit=False)
    async with _sessions() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the catalog table when missing."""
    from bazaar.persistence.tables import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Catalog schema ready")


async def close_db() -> None:
    global _engine, _sessions
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessions = None


async def health_check() -> bool:
    """Readiness probe for the catalog database."""
    try:
        async with session_context() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Catalog database unreachable: {e}")
        return False
    return True
