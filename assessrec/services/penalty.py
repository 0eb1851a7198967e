"""Retry, regeneration and lateness penalties.

    base = raw × points
    retry:  over = try + 1 − retry_penalty_after   → base × (1 − over × retry_penalty / 100)
    regen:  over = regen + 1 − regen_penalty_after → base × (1 − over × regen_penalty / 100)
    late:   submit_time > due_date                  → base × (1 − exception_penalty / 100)

Penalties compound in that order.  The result is clamped to [0, points] so a
stack of penalties can never take points away from other parts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from assessrec.models.settings import AssessmentSettings, QuestionSettings

PenaltyKind = Literal["retry", "regen", "late"]


@dataclass(frozen=True, slots=True)
class Penalty:
    kind: PenaltyKind
    amount: float  # percent


@dataclass(frozen=True, slots=True)
class PenaltyPolicy:
    retry_penalty: float = 0
    retry_penalty_after: int = 1
    regen_penalty: float = 0
    regen_penalty_after: int = 1
    exception_penalty: float = 0

    @staticmethod
    def from_settings(
        question: QuestionSettings, assessment: AssessmentSettings
    ) -> PenaltyPolicy:
        return PenaltyPolicy(
            retry_penalty=question.retry_penalty,
            retry_penalty_after=question.retry_penalty_after,
            regen_penalty=question.regen_penalty,
            regen_penalty_after=question.regen_penalty_after,
            exception_penalty=assessment.exception_penalty,
        )


NO_PENALTIES = PenaltyPolicy()


def score_after_penalty(
    raw_score: float,
    points_possible: float,
    try_number: int,
    regen_number: int,
    due_date: int,
    submit_time: int,
    policy: PenaltyPolicy = NO_PENALTIES,
) -> tuple[float, list[Penalty]]:
    """Points earned for one try after penalties, plus the penalties applied.

    try_number and regen_number are 0-based.
    """
    base = raw_score * points_possible
    penalties: list[Penalty] = []

    if policy.retry_penalty > 0:
        tries_over = try_number + 1 - policy.retry_penalty_after
        if tries_over > 0:
            amount = tries_over * policy.retry_penalty
            base *= 1 - amount / 100
            penalties.append(Penalty("retry", amount))

    if policy.regen_penalty > 0:
        regens_over = regen_number + 1 - policy.regen_penalty_after
        if regens_over > 0:
            amount = regens_over * policy.regen_penalty
            base *= 1 - amount / 100
            penalties.append(Penalty("regen", amount))

    if policy.exception_penalty > 0 and submit_time > due_date:
        base *= 1 - policy.exception_penalty / 100
        penalties.append(Penalty("late", policy.exception_penalty))

    return min(max(base, 0.0), max(points_possible, 0.0)), penalties
