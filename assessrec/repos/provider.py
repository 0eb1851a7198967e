"""Pick the record repository for a unit of work.

    async with lifespan_backends():
        async with record_repo_scope() as repo:
            async with record_session(ctx, repo, user_id) as rec:
                ...

With a database configured each scope gets its own session, committed when
the block exits cleanly and rolled back otherwise.  Without one, every scope
shares a single process-wide InMemoryRecordRepo.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from assessrec.db import engine as engine_module
from assessrec.db.engine import lifespan_db
from assessrec.db.redis import lifespan_redis
from assessrec.repos.pg_record_repo import PgRecordRepo
from assessrec.repos.record_repo import InMemoryRecordRepo, RecordRepo

memory_repo = InMemoryRecordRepo()


@asynccontextmanager
async def record_repo_scope() -> AsyncIterator[RecordRepo]:
    factory = engine_module.async_session_factory
    if factory is None:
        yield memory_repo
        return

    async with factory() as session:
        try:
            yield PgRecordRepo(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def lifespan_backends() -> AsyncIterator[None]:
    # Redis is closed before the database.
    async with lifespan_db():
        async with lifespan_redis():
            yield
