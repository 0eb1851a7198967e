"""Shared Redis client for the record lock and the grade queue.

Both need one view across every process that touches records: two API
instances holding separate in-process locks could each load, mutate and save
the same student's record.  With REDIS_URL unset, `redis_pool` is None and
both fall back to their in-memory versions.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from assessrec.core.config import SETTINGS

logger = logging.getLogger(__name__)

redis_pool: aioredis.Redis | None = (  # type: ignore[type-arg]
    aioredis.from_url(SETTINGS.redis_url, decode_responses=True, max_connections=20)
    if SETTINGS.redis_url
    else None
)


@asynccontextmanager
async def lifespan_redis() -> AsyncIterator[None]:
    """Check Redis is reachable on start and close the pool on exit.

    An unreachable server is logged, not raised: lock and queue calls will
    surface the error where it matters.
    """
    if redis_pool is None:
        logger.info("REDIS_URL not set, record locks and grade queue are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
    except RedisError:
        logger.exception("Redis ping failed at startup")
    else:
        logger.info("Redis ready for record locks and grade queue")
    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis pool closed")
