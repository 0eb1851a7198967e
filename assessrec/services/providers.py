"""Collaborator interfaces the core consumes.

Everything the record needs but does not own (settings, which question goes
in which slot, how an answer is graded, how a question is drawn, who is in a
group) comes through one of these Protocols, bundled in an AssessmentContext.
Implementations live with the caller; tests use small in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from assessrec.models.settings import AssessmentSettings, QuestionSettings


@dataclass(frozen=True, slots=True)
class QuestionAssignment:
    question_id: int
    seed: int


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Per-part correctness returned by the question engine.

    raw_scores[pn] is 0..1.  answer_weights and answer_values are optional
    extras some question types report.
    """

    raw_scores: Sequence[float]
    answer_weights: Sequence[float] | None = None
    answer_values: Sequence[Any] | None = None


@dataclass(frozen=True, slots=True)
class RenderRequest:
    qn: int
    question_id: int
    seed: int
    attempt: int
    last_answers: dict[int, Any] = field(default_factory=dict)
    show_answers: dict[int, bool] = field(default_factory=dict)
    part_scores: dict[int, float] = field(default_factory=dict)
    show_hints: bool = False
    clear_answers: bool = False


@dataclass(frozen=True, slots=True)
class RenderedQuestion:
    html: str
    answer_weights: Sequence[float] = (1,)


class SettingsProvider(Protocol):
    def get_assessment_settings(self) -> AssessmentSettings | Mapping[str, Any]: ...
    def get_question_settings(
        self, question_id: int
    ) -> QuestionSettings | Mapping[str, Any]: ...
    def get_adjusted_time_limit(self) -> int: ...


class QuestionAssigner(Protocol):
    def assign_questions_and_seeds(
        self,
        practice: bool,
        attempt: int,
        old_questions: Sequence[tuple[int, int]],
    ) -> Sequence[QuestionAssignment]: ...

    def assign_regeneration(
        self,
        qn: int,
        practice: bool,
        old_questions: Sequence[tuple[int, int]],
    ) -> QuestionAssignment: ...


class QuestionEvaluator(Protocol):
    def evaluate(
        self, question_id: int, seed: int, attempt: int, answer: Any
    ) -> EvaluationResult: ...


class QuestionRenderer(Protocol):
    def render(self, request: RenderRequest) -> RenderedQuestion: ...


class GroupDirectory(Protocol):
    def member_names(self, group_id: int) -> list[str]: ...


@dataclass(frozen=True, slots=True)
class AssessmentContext:
    """Everything an AttemptRecord needs to know about its assessment."""

    assessment_id: int
    settings: SettingsProvider
    assigner: QuestionAssigner
    evaluator: QuestionEvaluator | None = None
    renderer: QuestionRenderer | None = None
    groups: GroupDirectory | None = None
