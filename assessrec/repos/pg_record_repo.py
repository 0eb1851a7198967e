"""PostgreSQL implementation of RecordRepo."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assessrec.core.errors import ConcurrentModification, InvalidOperation
from assessrec.db.tables import AssessmentRecordRow
from assessrec.models.record import AssessmentRecord


class PgRecordRepo:
    """Satisfies the RecordRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, assessment_id: int, user_id: int) -> AssessmentRecord | None:
        return await self._fetch(assessment_id, user_id)

    async def _fetch(
        self, assessment_id: int, user_id: int, *, refresh: bool = False
    ) -> AssessmentRecord | None:
        stmt = select(AssessmentRecordRow).where(
            AssessmentRecordRow.assessment_id == assessment_id,
            AssessmentRecordRow.user_id == user_id,
        )
        if refresh:
            # Bulk UPDATE bypasses the identity map; reload the row from the database.
            stmt = stmt.execution_options(populate_existing=True)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_record(row)

    async def group_rows(self, assessment_id: int, group_id: int) -> list[AssessmentRecord]:
        stmt = (
            select(AssessmentRecordRow)
            .where(
                AssessmentRecordRow.assessment_id == assessment_id,
                AssessmentRecordRow.group_id == group_id,
            )
            .order_by(AssessmentRecordRow.user_id)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_record(row) for row in rows]

    async def insert(self, records: Sequence[AssessmentRecord]) -> None:
        for record in records:
            self._session.add(
                AssessmentRecordRow(
                    user_id=record.user_id,
                    assessment_id=record.assessment_id,
                    group_id=record.group_id,
                    external_grade_ref=record.external_grade_ref,
                    version=record.version,
                    time_on_task=record.time_on_task,
                    start_time=record.start_time,
                    last_change=record.last_change,
                    score=record.score,
                    status=record.status,
                    scored_data=record.scored_data,
                    practice_data=record.practice_data,
                    revision=record.revision,
                )
            )
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise InvalidOperation("record already exists") from exc

    async def update(
        self, record: AssessmentRecord, expected_revision: int
    ) -> AssessmentRecord:
        """Compare-and-swap on `revision` across the user row or every group row.

        Every target row must still be at `expected_revision`; if any has
        moved, nothing is written.
        """
        stmt = update(AssessmentRecordRow).where(
            AssessmentRecordRow.assessment_id == record.assessment_id,
            AssessmentRecordRow.revision == expected_revision,
        )
        if record.is_group:
            stmt = stmt.where(AssessmentRecordRow.group_id == record.group_id)
            targets = await self._count_group(record.assessment_id, record.group_id)
        else:
            stmt = stmt.where(AssessmentRecordRow.user_id == record.user_id)
            targets = 1
        stmt = stmt.values(
            time_on_task=record.time_on_task,
            start_time=record.start_time,
            last_change=record.last_change,
            score=record.score,
            status=record.status,
            scored_data=record.scored_data,
            practice_data=record.practice_data,
            revision=expected_revision + 1,
        ).execution_options(synchronize_session=False)

        if targets == 0:
            raise ConcurrentModification("record no longer exists")
        # Savepoint: a partial group match is undone before the error surfaces.
        async with self._session.begin_nested():
            result = await self._session.execute(stmt)
            if result.rowcount != targets:
                raise ConcurrentModification(
                    f"record changed since revision {expected_revision}"
                )

        stored = await self._fetch(record.assessment_id, record.user_id, refresh=True)
        if stored is None:
            raise ConcurrentModification("record no longer exists")
        return stored

    async def commit(self) -> None:
        await self._session.commit()

    async def _count_group(self, assessment_id: int, group_id: int) -> int:
        stmt = select(func.count()).select_from(AssessmentRecordRow).where(
            AssessmentRecordRow.assessment_id == assessment_id,
            AssessmentRecordRow.group_id == group_id,
        )
        return (await self._session.execute(stmt)).scalar_one()


def _row_to_record(row: AssessmentRecordRow) -> AssessmentRecord:
    return AssessmentRecord(
        assessment_id=row.assessment_id,
        user_id=row.user_id,
        group_id=row.group_id,
        external_grade_ref=row.external_grade_ref or "",
        version=row.version,
        time_on_task=row.time_on_task,
        start_time=row.start_time,
        last_change=row.last_change,
        score=row.score,
        status=row.status,
        scored_data=row.scored_data or b"",
        practice_data=row.practice_data or b"",
        revision=row.revision,
    )
