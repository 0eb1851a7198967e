"""In-memory shape of one scored (or practice) attempt container.

AttemptData
  ├── submissions       seconds since record start, index = submission id
  ├── autosaves         slot → last unsubmitted answers
  └── assess_versions   one per "take" (by-assessment) or a single one (by-question)
        └── questions   one QuestionSlot per question position
              └── question_versions   one per regeneration
                    └── tries[part]   append-only list of Try

The lists are append-only logs.  Only AttemptRecord appends to them; scores
and statuses are the only fields rewritten in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Final, Literal

LATEST: Final = "last"

VersionSelector = int | Literal["last"]


class VersionStatus(IntEnum):
    IN_PROGRESS = 0
    SUBMITTED = 1


@dataclass(frozen=True, slots=True)
class Try:
    submission_index: int
    raw_score: float = 0.0
    student_answer: Any = None  # JSON-shaped once recorded
    answer_value: Any = None


@dataclass(slots=True)
class QuestionVersion:
    question_id: int
    seed: int
    tries: list[list[Try]] = field(default_factory=list)
    answer_weights: list[float] | None = None
    score_override: float | None = None

    @property
    def part_count(self) -> int:
        return max(len(self.answer_weights or ()), len(self.tries), 1)

    def weights(self) -> list[float]:
        """Per-part weights; uniform when none were stored or they don't cover every part."""
        n = self.part_count
        if self.answer_weights and len(self.answer_weights) >= n:
            return list(self.answer_weights[:n])
        return [1.0] * n

    def part_tries(self, pn: int) -> list[Try]:
        if pn < len(self.tries):
            return self.tries[pn]
        return []

    def has_tries(self) -> bool:
        return any(self.tries)


@dataclass(slots=True)
class QuestionSlot:
    question_versions: list[QuestionVersion]
    score: float = 0.0
    raw_score: float = 0.0
    scored_version: int | None = None

    @property
    def current(self) -> QuestionVersion:
        return self.question_versions[-1]


@dataclass(slots=True)
class AssessmentVersion:
    questions: list[QuestionSlot] = field(default_factory=list)
    start_time: int = 0
    last_change: int = 0
    status: VersionStatus = VersionStatus.IN_PROGRESS
    score: float = 0.0
    time_limit_end: int | None = None

    @property
    def is_submitted(self) -> bool:
        return self.status == VersionStatus.SUBMITTED


@dataclass(slots=True)
class Autosave:
    answers: dict[int, Any] = field(default_factory=dict)
    time: int = 0


@dataclass(slots=True)
class AttemptData:
    submissions: list[int] = field(default_factory=list)
    autosaves: dict[int, Autosave] = field(default_factory=dict)
    assess_versions: list[AssessmentVersion] = field(default_factory=list)
    scored_version: int | None = None
    score_override: float | None = None

    @property
    def version_count(self) -> int:
        return len(self.assess_versions)

    @property
    def latest(self) -> AssessmentVersion | None:
        if not self.assess_versions:
            return None
        return self.assess_versions[-1]
