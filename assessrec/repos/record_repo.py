from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol

from assessrec.core.errors import ConcurrentModification, InvalidOperation
from assessrec.models.record import AssessmentRecord


class RecordRepo(Protocol):
    async def get(self, assessment_id: int, user_id: int) -> AssessmentRecord | None: ...
    async def group_rows(
        self, assessment_id: int, group_id: int
    ) -> list[AssessmentRecord]: ...
    async def insert(self, records: Sequence[AssessmentRecord]) -> None: ...
    async def update(
        self, record: AssessmentRecord, expected_revision: int
    ) -> AssessmentRecord: ...
    async def commit(self) -> None: ...


class InMemoryRecordRepo:
    def __init__(self) -> None:
        self._rows: dict[tuple[int, int], AssessmentRecord] = {}

    async def get(self, assessment_id: int, user_id: int) -> AssessmentRecord | None:
        return self._rows.get((assessment_id, user_id))

    async def group_rows(self, assessment_id: int, group_id: int) -> list[AssessmentRecord]:
        return [
            r
            for _, r in sorted(self._rows.items())
            if r.assessment_id == assessment_id and r.group_id == group_id
        ]

    async def insert(self, records: Sequence[AssessmentRecord]) -> None:
        """Insert rows as given; a member joining a group arrives at the group's revision."""
        keys = [(r.assessment_id, r.user_id) for r in records]
        if any(k in self._rows for k in keys):
            raise InvalidOperation("record already exists")
        for key, record in zip(keys, records):
            self._rows[key] = record

    async def update(
        self, record: AssessmentRecord, expected_revision: int
    ) -> AssessmentRecord:
        """Write `record` to its row (every member row for a group record).

        Raises ConcurrentModification if any target row moved past
        `expected_revision` since it was read.
        """
        targets = self._targets(record)
        if not targets:
            raise ConcurrentModification("record no longer exists")
        if any(self._rows[k].revision != expected_revision for k in targets):
            raise ConcurrentModification(
                f"record changed since revision {expected_revision}"
            )

        new_revision = expected_revision + 1
        for key in targets:
            current = self._rows[key]
            self._rows[key] = replace(
                current,
                time_on_task=record.time_on_task,
                start_time=record.start_time,
                last_change=record.last_change,
                score=record.score,
                status=record.status,
                scored_data=record.scored_data,
                practice_data=record.practice_data,
                revision=new_revision,
            )
        return self._rows[(record.assessment_id, record.user_id)]

    async def commit(self) -> None:
        # Writes are visible as soon as they are made.
        return None

    def _targets(self, record: AssessmentRecord) -> list[tuple[int, int]]:
        if record.is_group:
            return [
                k
                for k, r in self._rows.items()
                if r.assessment_id == record.assessment_id
                and r.group_id == record.group_id
            ]
        key = (record.assessment_id, record.user_id)
        return [key] if key in self._rows else []
