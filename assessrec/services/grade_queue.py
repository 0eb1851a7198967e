"""Hand-off queue for reporting scores to an external gradebook.

Reporting a grade is slow and unreliable (token exchange, remote HTTP call,
retries).  None of that belongs inside a record save, so a save whose score
changed only pushes a GradeUpdate here and a separate worker owns the
transport.

Redis list semantics: LPUSH on the left, BRPOP from the right → FIFO.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from typing import Protocol, runtime_checkable

from assessrec.db.redis import redis_pool


@dataclass(frozen=True, slots=True)
class GradeUpdate:
    assessment_id: int
    user_id: int
    score: float
    grade_ref: str
    group_id: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(raw: str) -> GradeUpdate:
        return GradeUpdate(**json.loads(raw))


@runtime_checkable
class GradeQueue(Protocol):
    async def push(self, update: GradeUpdate) -> None: ...
    async def pop(self, timeout: int = 0) -> GradeUpdate | None: ...
    async def pending(self) -> int: ...


class InMemoryGradeQueue:
    """In-memory grade queue for tests, no Redis needed."""

    def __init__(self) -> None:
        self._updates: list[GradeUpdate] = []

    async def push(self, update: GradeUpdate) -> None:
        self._updates.append(update)

    async def pop(self, timeout: int = 0) -> GradeUpdate | None:
        if self._updates:
            return self._updates.pop(0)
        return None

    async def pending(self) -> int:
        return len(self._updates)


class RedisGradeQueue:
    _KEY = "tasks:grade_passback"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def push(self, update: GradeUpdate) -> None:
        await self._redis.lpush(self._KEY, update.to_json())

    async def pop(self, timeout: int = 5) -> GradeUpdate | None:
        result = await self._redis.brpop(self._KEY, timeout=timeout)
        if result is None:
            return None
        _, raw = result
        return GradeUpdate.from_json(raw)

    async def pending(self) -> int:
        return await self._redis.llen(self._KEY)


if redis_pool is not None:
    grade_queue: GradeQueue = RedisGradeQueue(redis_pool)
else:
    grade_queue = InMemoryGradeQueue()
