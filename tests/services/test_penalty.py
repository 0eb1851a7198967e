from __future__ import annotations

import pytest

from assessrec.models.settings import AssessmentSettings, QuestionSettings
from assessrec.services.penalty import (
    NO_PENALTIES,
    Penalty,
    PenaltyPolicy,
    score_after_penalty,
)

DUE = 1_000


def test_no_penalties_is_raw_times_points() -> None:
    score, penalties = score_after_penalty(0.5, 10, 3, 2, DUE, DUE + 50)
    assert score == 5.0
    assert penalties == []


def test_retry_penalty_applies_after_threshold() -> None:
    policy = PenaltyPolicy(retry_penalty=10, retry_penalty_after=1)
    first, first_penalties = score_after_penalty(1.0, 10, 0, 0, DUE, DUE, policy)
    second, second_penalties = score_after_penalty(1.0, 10, 1, 0, DUE, DUE, policy)
    assert first == 10
    assert first_penalties == []
    assert second == pytest.approx(9.0)
    assert second_penalties == [Penalty("retry", 10)]


def test_retry_penalty_grows_with_tries_over() -> None:
    policy = PenaltyPolicy(retry_penalty=10, retry_penalty_after=2)
    score, penalties = score_after_penalty(1.0, 10, 3, 0, DUE, DUE, policy)
    # over = 3 + 1 - 2 = 2
    assert score == pytest.approx(8.0)
    assert penalties == [Penalty("retry", 20)]


def test_regen_penalty_mirrors_retry() -> None:
    policy = PenaltyPolicy(regen_penalty=25)
    score, penalties = score_after_penalty(1.0, 8, 0, 1, DUE, DUE, policy)
    assert score == pytest.approx(6.0)
    assert penalties == [Penalty("regen", 25)]


def test_late_penalty() -> None:
    policy = PenaltyPolicy(exception_penalty=20)
    score, penalties = score_after_penalty(1.0, 10, 0, 0, DUE, DUE + 100, policy)
    assert score == pytest.approx(8.0)
    assert penalties == [Penalty("late", 20)]


def test_submitting_exactly_at_due_date_is_not_late() -> None:
    policy = PenaltyPolicy(exception_penalty=20)
    score, penalties = score_after_penalty(1.0, 10, 0, 0, DUE, DUE, policy)
    assert score == 10
    assert penalties == []


def test_penalties_compound_in_order() -> None:
    policy = PenaltyPolicy(retry_penalty=10, regen_penalty=50, exception_penalty=20)
    score, penalties = score_after_penalty(1.0, 10, 1, 1, DUE, DUE + 1, policy)
    assert score == pytest.approx(10 * 0.9 * 0.5 * 0.8)
    assert [p.kind for p in penalties] == ["retry", "regen", "late"]


def test_stacked_penalties_clamp_at_zero() -> None:
    policy = PenaltyPolicy(retry_penalty=60)
    score, penalties = score_after_penalty(1.0, 10, 2, 0, DUE, DUE, policy)
    # 1 - 2 * 60 / 100 is negative
    assert score == 0.0
    assert penalties == [Penalty("retry", 120)]


@pytest.mark.parametrize("dimension", ["try", "regen", "late"])
def test_penalised_score_never_increases(dimension: str) -> None:
    policy = PenaltyPolicy(retry_penalty=15, regen_penalty=15, exception_penalty=30)
    previous = None
    for step in range(6):
        args = {"try": 0, "regen": 0, "late": 0}
        args[dimension] = step
        score, _ = score_after_penalty(
            0.8, 10, args["try"], args["regen"], DUE, DUE + args["late"], policy
        )
        if previous is not None:
            assert score <= previous
        previous = score


def test_policy_from_settings() -> None:
    policy = PenaltyPolicy.from_settings(
        QuestionSettings(points_possible=5, retry_penalty=10, regen_penalty=5, regen_penalty_after=2),
        AssessmentSettings(exception_penalty=15),
    )
    assert policy == PenaltyPolicy(
        retry_penalty=10,
        retry_penalty_after=1,
        regen_penalty=5,
        regen_penalty_after=2,
        exception_penalty=15,
    )
    assert NO_PENALTIES == PenaltyPolicy()
