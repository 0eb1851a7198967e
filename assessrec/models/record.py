from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

SubmitBy = Literal["by_assessment", "by_question"]

# Persisted status bits.  Only the row encoding uses these.
_BY_ASSESSMENT_BIT = 1
_BY_QUESTION_BIT = 2
_PRACTICE_BIT = 16


class ScoredState(StrEnum):
    INACTIVE = "inactive"
    ACTIVE_BY_ASSESSMENT = "active_by_assessment"
    ACTIVE_BY_QUESTION = "active_by_question"
    SUBMITTED = "submitted"  # derived from attempt data, never stored in the bits


class PracticeState(StrEnum):
    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass(frozen=True, slots=True)
class RecordStatus:
    """Active-attempt state for the scored and practice axes.

    A single scored field makes "active by-assessment AND by-question"
    unrepresentable.
    """

    scored: ScoredState = ScoredState.INACTIVE
    practice: PracticeState = PracticeState.INACTIVE

    @property
    def scored_active(self) -> bool:
        return self.scored in (
            ScoredState.ACTIVE_BY_ASSESSMENT,
            ScoredState.ACTIVE_BY_QUESTION,
        )

    @property
    def practice_active(self) -> bool:
        return self.practice == PracticeState.ACTIVE

    def with_scored(self, active: bool, submit_by: SubmitBy) -> RecordStatus:
        if not active:
            return RecordStatus(ScoredState.INACTIVE, self.practice)
        if submit_by == "by_question":
            return RecordStatus(ScoredState.ACTIVE_BY_QUESTION, self.practice)
        return RecordStatus(ScoredState.ACTIVE_BY_ASSESSMENT, self.practice)

    def with_practice(self, active: bool) -> RecordStatus:
        state = PracticeState.ACTIVE if active else PracticeState.INACTIVE
        return RecordStatus(self.scored, state)

    def to_bits(self) -> int:
        bits = 0
        if self.scored == ScoredState.ACTIVE_BY_ASSESSMENT:
            bits |= _BY_ASSESSMENT_BIT
        elif self.scored == ScoredState.ACTIVE_BY_QUESTION:
            bits |= _BY_QUESTION_BIT
        if self.practice == PracticeState.ACTIVE:
            bits |= _PRACTICE_BIT
        return bits

    @staticmethod
    def from_bits(bits: int) -> RecordStatus:
        # Legacy rows may carry both submit-mode bits; by-assessment wins.
        if bits & _BY_ASSESSMENT_BIT:
            scored = ScoredState.ACTIVE_BY_ASSESSMENT
        elif bits & _BY_QUESTION_BIT:
            scored = ScoredState.ACTIVE_BY_QUESTION
        else:
            scored = ScoredState.INACTIVE
        practice = (
            PracticeState.ACTIVE if bits & _PRACTICE_BIT else PracticeState.INACTIVE
        )
        return RecordStatus(scored, practice)


@dataclass(frozen=True, slots=True)
class AssessmentRecord:
    """One stored row: a student's (or a group member's) record for one assessment.

    scored_data / practice_data are the gzip-compressed JSON blobs; an empty
    blob means the container was never built.  `revision` is bumped on every
    save and checked against the value read at load time.
    """

    assessment_id: int
    user_id: int
    group_id: int = 0
    external_grade_ref: str = ""
    version: int = 2
    time_on_task: int = 0
    start_time: int = 0
    last_change: int = 0
    score: float = 0.0
    status: int = 0
    scored_data: bytes = b""
    practice_data: bytes = b""
    revision: int = 0

    @property
    def is_group(self) -> bool:
        return self.group_id > 0
