"""Database wiring for assessment records.

DATABASE_URL set: one asyncpg-backed engine per process and a session
factory that record repos borrow sessions from.  DATABASE_URL unset: both
names are None and `assessrec.repos.provider` hands out the in-memory repo.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from assessrec.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str) -> AsyncEngine:
    # Record rows carry JSON blobs up to a few hundred KB; keep the pool small.
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
    )


engine: AsyncEngine | None = build_engine(SETTINGS.database_url) if SETTINGS.database_url else None
async_session_factory: async_sessionmaker[AsyncSession] | None = (
    async_sessionmaker(engine, expire_on_commit=False) if engine is not None else None
)


@asynccontextmanager
async def lifespan_db() -> AsyncIterator[None]:
    """Own the engine for the life of a process; disposes the pool on exit."""
    if engine is None:
        logger.info("DATABASE_URL not set, records are kept in memory")
        yield
        return

    logger.info("Record database: %s", engine.url.render_as_string(hide_password=True))
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Record database pool disposed")
