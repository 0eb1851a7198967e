"""Per-record mutual exclusion for load → mutate → save cycles.

THE RACE
----------
A double-clicked "submit" sends two requests for the same record:

  request A: load (2 tries) ─ append try ─────────── save (3 tries)
  request B:     load (2 tries) ─ append try ─ save (3 tries)   ← A's try is lost

The optimistic revision check in the repos turns the lost update into a
ConcurrentModification.  The lock avoids the conflict in the first place by
making B wait until A has saved.  Group records lock on the group, so two
members submitting at once are serialised too.

Each lock holder gets a random token, and release only deletes the key if
the token still matches.  Without that, a holder whose lock already expired
would delete the NEXT holder's lock.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol, runtime_checkable

from assessrec.core.errors import ConcurrentModification
from assessrec.core.metrics import LOCK_WAIT
from assessrec.db.redis import redis_pool

logger = logging.getLogger(__name__)


def record_lock_key(assessment_id: int, user_id: int, group_id: int = 0) -> str:
    if group_id > 0:
        return f"assess:{assessment_id}:group:{group_id}"
    return f"assess:{assessment_id}:user:{user_id}"


@runtime_checkable
class RecordLock(Protocol):
    async def acquire(self, key: str, ttl_seconds: int) -> str | None:
        """Take the lock; returns a release token, or None if someone else holds it."""
        ...

    async def release(self, key: str, token: str) -> bool:
        """Drop the lock if `token` still owns it."""
        ...


class InMemoryRecordLock:
    """Per-process lock table for tests and single-instance dev."""

    def __init__(self) -> None:
        # key -> (token, expires_at monotonic)
        self._held: dict[str, tuple[str, float]] = {}

    async def acquire(self, key: str, ttl_seconds: int) -> str | None:
        now = time.monotonic()
        held = self._held.get(key)
        if held is not None and held[1] > now:
            return None
        token = secrets.token_hex(16)
        self._held[key] = (token, now + ttl_seconds)
        return token

    async def release(self, key: str, token: str) -> bool:
        held = self._held.get(key)
        if held is None or held[0] != token:
            return False
        del self._held[key]
        return True


class RedisRecordLock:
    """Redis-backed lock shared across all instances (SET NX EX + token check)."""

    _PREFIX = "lock:"

    # KEYS[1] = lock key, ARGV[1] = token.  Delete only if we still own it.
    _RELEASE_SCRIPT = """
    if redis.call('GET', KEYS[1]) == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
    return 0
    """

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._script = None

    async def _get_script(self):
        if self._script is None:
            self._script = self._redis.register_script(self._RELEASE_SCRIPT)
        return self._script

    async def acquire(self, key: str, ttl_seconds: int) -> str | None:
        token = secrets.token_hex(16)
        ok = await self._redis.set(
            f"{self._PREFIX}{key}", token, nx=True, ex=ttl_seconds
        )
        return token if ok else None

    async def release(self, key: str, token: str) -> bool:
        script = await self._get_script()
        deleted = await script(keys=[f"{self._PREFIX}{key}"], args=[token])
        return bool(deleted)


@asynccontextmanager
async def hold_record_lock(
    lock: RecordLock,
    key: str,
    *,
    ttl_seconds: int,
    wait_seconds: float,
    poll_interval: float = 0.05,
) -> AsyncIterator[str]:
    """Hold `key` for the duration of the block, waiting up to `wait_seconds` for it."""
    started = time.monotonic()
    while True:
        token = await lock.acquire(key, ttl_seconds)
        if token is not None:
            break
        if time.monotonic() - started >= wait_seconds:
            logger.warning("Gave up waiting for record lock %s", key)
            raise ConcurrentModification(f"record {key} is locked by another request")
        await asyncio.sleep(poll_interval)
    LOCK_WAIT.observe(time.monotonic() - started)

    try:
        yield token
    finally:
        if not await lock.release(key, token):
            logger.warning("Record lock %s expired before release", key)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    record_lock: RecordLock = RedisRecordLock(redis_pool)
else:
    record_lock = InMemoryRecordLock()
