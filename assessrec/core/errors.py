"""Typed failures raised by the attempt-record core.

Callers catch these to decide what to tell the student: a missing record
means "start the assessment first", a conflict means "reload and retry".
"""

from __future__ import annotations


class AttemptRecordError(Exception):
    pass


class RecordNotFound(AttemptRecordError, LookupError):
    """No stored row for (assessment, user). Create the record before mutating it."""

    def __init__(self, assessment_id: int, user_id: int) -> None:
        super().__init__(f"no record for assessment={assessment_id} user={user_id}")
        self.assessment_id = assessment_id
        self.user_id = user_id


class InvalidOperation(AttemptRecordError, ValueError):
    pass


class MalformedStoredData(AttemptRecordError, ValueError):
    pass


class ConcurrentModification(AttemptRecordError):
    """The stored record changed between load and save."""


class UpstreamServiceError(AttemptRecordError):
    """A collaborator (settings, assignment, evaluation) failed or returned bad data."""
