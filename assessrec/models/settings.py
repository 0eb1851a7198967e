"""Settings handed to the core by the assessment/question settings providers.

Providers may return these models or plain mappings; either way the core
runs them through `model_validate` so a provider sending garbage fails loudly
instead of producing a wrong score.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from assessrec.models.record import SubmitBy

ShowScores = Literal["during", "at_end", "total", "none"]
ShowAnswers = Literal["never", "after_lastattempt", "with_score", "after_n"]


class AssessmentSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    submit_by: SubmitBy = "by_assessment"
    allowed_attempts: int = Field(default=1, ge=0)
    time_limit: int = Field(default=0, ge=0)  # seconds, 0 = untimed
    due_date: int = 0  # original due date, unix seconds
    exception_penalty: float = Field(default=0, ge=0, le=100)  # late penalty, percent
    show_scores: ShowScores = "during"


class QuestionSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    points_possible: float = Field(ge=0)
    tries_max: int = Field(default=1, ge=1)
    retry_penalty: float = Field(default=0, ge=0)  # percent per try over the limit
    retry_penalty_after: int = Field(default=1, ge=1)
    regen_penalty: float = Field(default=0, ge=0)  # percent per regen over the limit
    regen_penalty_after: int = Field(default=1, ge=1)
    regens_max: int = Field(default=1, ge=1)
    show_answers: ShowAnswers = "never"
    show_answers_after_n: int = Field(default=0, ge=0)
    show_hints: bool = False
