from __future__ import annotations

import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from assessrec.repos.record_repo import InMemoryRecordRepo
from assessrec.services.assess_record import AttemptRecord
from assessrec.services.grade_queue import grade_queue
from assessrec.services.providers import (
    AssessmentContext,
    EvaluationResult,
    QuestionAssignment,
    RenderedQuestion,
    RenderRequest,
)
from assessrec.services.record_lock import record_lock

# Ensure repo root is on sys.path so `import assessrec` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

ASSESSMENT_ID = 50
START = 1_700_000_000


@pytest.fixture(autouse=True)
def reset_record_lock() -> None:
    """Drop any locks a failed test left behind."""
    if hasattr(record_lock, "_held"):
        record_lock._held.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_grade_queue() -> None:
    if hasattr(grade_queue, "_updates"):
        grade_queue._updates.clear()  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeSettings:
    def __init__(
        self,
        assessment: Mapping[str, Any] | None = None,
        questions: Mapping[int, Mapping[str, Any]] | None = None,
        default_question: Mapping[str, Any] | None = None,
        adjusted_time_limit: int = 0,
    ) -> None:
        self.assessment = dict(assessment or {})
        self.questions = {qid: dict(s) for qid, s in (questions or {}).items()}
        self.default_question = dict(default_question or {"points_possible": 10})
        self.adjusted_time_limit = adjusted_time_limit
        self.question_calls = 0

    def get_assessment_settings(self) -> Mapping[str, Any]:
        return self.assessment

    def get_question_settings(self, question_id: int) -> Mapping[str, Any]:
        self.question_calls += 1
        return self.questions.get(question_id, self.default_question)

    def get_adjusted_time_limit(self) -> int:
        return self.adjusted_time_limit


class FakeAssigner:
    """Hands out question ids 101, 102, ... and seeds that never repeat."""

    def __init__(self, question_count: int = 2) -> None:
        self.question_count = question_count
        self.calls: list[tuple[bool, int, list[tuple[int, int]]]] = []

    def assign_questions_and_seeds(
        self,
        practice: bool,
        attempt: int,
        old_questions: Sequence[tuple[int, int]],
    ) -> list[QuestionAssignment]:
        self.calls.append((practice, attempt, list(old_questions)))
        base = (5000 if practice else 1000) + attempt * 100
        return [
            QuestionAssignment(question_id=101 + qn, seed=base + qn)
            for qn in range(self.question_count)
        ]

    def assign_regeneration(
        self,
        qn: int,
        practice: bool,
        old_questions: Sequence[tuple[int, int]],
    ) -> QuestionAssignment:
        return QuestionAssignment(question_id=101 + qn, seed=9000 + len(old_questions))


ANSWER_SCORES = {"right": 1.0, "half": 0.5, "wrong": 0.0}


class FakeEvaluator:
    """Scores "right"/"half"/"wrong"; a list answer is scored part by part."""

    def __init__(
        self,
        answer_weights: Sequence[float] | None = None,
        bad_scores: Sequence[float] | None = None,
    ) -> None:
        self.answer_weights = answer_weights
        self.bad_scores = bad_scores
        self.calls: list[tuple[int, int, int, Any]] = []

    def evaluate(self, question_id: int, seed: int, attempt: int, answer: Any) -> EvaluationResult:
        self.calls.append((question_id, seed, attempt, answer))
        if self.bad_scores is not None:
            return EvaluationResult(raw_scores=self.bad_scores)
        answers = answer if isinstance(answer, list) else [answer]
        return EvaluationResult(
            raw_scores=[ANSWER_SCORES.get(a, 0.0) for a in answers],
            answer_weights=self.answer_weights,
            answer_values=[f"value:{a}" for a in answers],
        )


class FakeRenderer:
    def __init__(self) -> None:
        self.requests: list[RenderRequest] = []

    def render(self, request: RenderRequest) -> RenderedQuestion:
        self.requests.append(request)
        return RenderedQuestion(
            html=f"<div class='question'>{request.question_id}:{request.seed}</div>",
            answer_weights=(1, 1),
        )


class FakeGroups:
    def __init__(self, members: Mapping[int, list[str]] | None = None) -> None:
        self.members = dict(members or {})

    def member_names(self, group_id: int) -> list[str]:
        return list(self.members.get(group_id, []))


class Clock:
    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def repo() -> InMemoryRecordRepo:
    return InMemoryRecordRepo()


@pytest.fixture
def make_context() -> Callable[..., AssessmentContext]:
    def _make(
        *,
        questions: Mapping[int, Mapping[str, Any]] | None = None,
        default_question: Mapping[str, Any] | None = None,
        adjusted_time_limit: int = 0,
        question_count: int = 2,
        evaluator: FakeEvaluator | None = None,
        renderer: FakeRenderer | None = None,
        groups: FakeGroups | None = None,
        **assessment: Any,
    ) -> AssessmentContext:
        return AssessmentContext(
            assessment_id=ASSESSMENT_ID,
            settings=FakeSettings(
                assessment=assessment,
                questions=questions,
                default_question=default_question,
                adjusted_time_limit=adjusted_time_limit,
            ),
            assigner=FakeAssigner(question_count),
            evaluator=evaluator if evaluator is not None else FakeEvaluator(),
            renderer=renderer if renderer is not None else FakeRenderer(),
            groups=groups,
        )

    return _make


@pytest.fixture
def make_record(
    make_context: Callable[..., AssessmentContext],
    repo: InMemoryRecordRepo,
    clock: Clock,
) -> Callable[..., AttemptRecord]:
    """AttemptRecord for user 7 on a fresh context; pass context= to reuse one."""

    def _make(
        user_id: int = 7,
        *,
        context: AssessmentContext | None = None,
        in_practice: bool = False,
        **context_kwargs: Any,
    ) -> AttemptRecord:
        ctx = context if context is not None else make_context(**context_kwargs)
        return AttemptRecord(ctx, repo, user_id, in_practice=in_practice, clock=clock)

    return _make
