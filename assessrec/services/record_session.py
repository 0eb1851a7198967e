"""One locked load → mutate → save cycle on a record.

    async with record_session(ctx, repo, user_id=7) as rec:
        if not rec.has_record():
            await rec.create_record()
        rec.score_question(0, rec.add_submission(now), answer)
        rec.retotal()
    # saved and committed, lock released, grade updates queued if the score moved

The lock key depends on the group, and the group is only known once the row
has been read, so the row is peeked before locking and read again under the
lock.  A user joining an existing group has no row yet; pass `group_id` so the
join takes the group's lock.

The repo is committed before the lock is released, so the next holder always
loads what this one saved.  If the body raises, nothing is saved.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from assessrec.core.config import SETTINGS
from assessrec.core.logging import record_context
from assessrec.models.record import AssessmentRecord
from assessrec.repos.record_repo import RecordRepo
from assessrec.services import grade_queue as grade_queue_module
from assessrec.services import record_lock as record_lock_module
from assessrec.services.assess_record import AttemptRecord
from assessrec.services.grade_queue import GradeQueue, GradeUpdate
from assessrec.services.providers import AssessmentContext
from assessrec.services.record_lock import RecordLock, hold_record_lock, record_lock_key

logger = logging.getLogger(__name__)


@asynccontextmanager
async def record_session(
    context: AssessmentContext,
    repo: RecordRepo,
    user_id: int,
    *,
    in_practice: bool = False,
    readonly: bool = False,
    group_id: int | None = None,
    lock: RecordLock | None = None,
    queue: GradeQueue | None = None,
    wait_seconds: float | None = None,
) -> AsyncIterator[AttemptRecord]:
    lock = lock if lock is not None else record_lock_module.record_lock
    queue = queue if queue is not None else grade_queue_module.grade_queue

    if group_id is None:
        peeked = await repo.get(context.assessment_id, user_id)
        group_id = peeked.group_id if peeked is not None else 0
    key = record_lock_key(context.assessment_id, user_id, group_id)

    with record_context(context.assessment_id, user_id, group_id):
        async with hold_record_lock(
            lock,
            key,
            ttl_seconds=SETTINGS.record_lock_ttl_seconds,
            wait_seconds=(
                wait_seconds if wait_seconds is not None else SETTINGS.record_lock_wait_seconds
            ),
        ):
            rec = AttemptRecord(context, repo, user_id, in_practice=in_practice)
            await rec.load()
            score_before = rec.score if rec.has_record() else 0.0

            yield rec

            if readonly or not rec.has_record():
                return
            stored = await rec.save()
            await repo.commit()
            if stored.score != score_before:
                await _queue_grade_updates(repo, queue, stored)


async def _queue_grade_updates(
    repo: RecordRepo, queue: GradeQueue, stored: AssessmentRecord
) -> None:
    """One update per row with a grade ref; a group save moves every member's score."""
    rows = (
        await repo.group_rows(stored.assessment_id, stored.group_id)
        if stored.is_group
        else [stored]
    )
    for row in rows:
        if not row.external_grade_ref:
            continue
        await queue.push(
            GradeUpdate(
                assessment_id=row.assessment_id,
                user_id=row.user_id,
                score=row.score,
                grade_ref=row.external_grade_ref,
                group_id=row.group_id,
            )
        )
        logger.info("Queued grade update for user=%d, score=%s", row.user_id, row.score)
