"""Grade passback worker process.

RUN:  python -m assessrec.worker

Record saves only queue a GradeUpdate (see record_session).  This loop pops
them and hands each one to a GradeSender, which owns the actual transport
to the external gradebook.  A failed delivery is logged and dropped; the
next save with a changed score queues a fresh update.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from assessrec.core.config import SETTINGS
from assessrec.core.logging import setup_logging
from assessrec.db.redis import lifespan_redis
from assessrec.services.grade_queue import GradeQueue, GradeUpdate, grade_queue

logger = logging.getLogger("assessrec.worker")


class GradeSender(Protocol):
    async def send(self, update: GradeUpdate) -> None: ...


class LoggingGradeSender:
    """Default sender: records what would be sent."""

    async def send(self, update: GradeUpdate) -> None:
        logger.info(
            "Grade for assessment=%d user=%d ref=%s score=%s",
            update.assessment_id,
            update.user_id,
            update.grade_ref,
            update.score,
        )


async def drain_grade_updates(
    queue: GradeQueue,
    sender: GradeSender,
    *,
    timeout: int = 1,
    max_updates: int | None = None,
) -> int:
    """Deliver queued updates until the queue is empty (or max_updates reached).

    Returns the number delivered successfully.
    """
    delivered = 0
    handled = 0
    while max_updates is None or handled < max_updates:
        update = await queue.pop(timeout=timeout)
        if update is None:
            break
        handled += 1
        try:
            await sender.send(update)
            delivered += 1
        except Exception:
            logger.exception("Grade update %s failed", update.id)
    return delivered


async def run_worker(sender: GradeSender | None = None) -> None:
    sender = sender or LoggingGradeSender()
    async with lifespan_redis():
        logger.info("Worker started, waiting for grade updates")
        while True:
            if await drain_grade_updates(grade_queue, sender) == 0:
                await asyncio.sleep(1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
