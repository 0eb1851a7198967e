"""Scoring engine: try → part → question → version → record.

Which regeneration number a question version is penalised with depends on
the submit mode:

  by_question    slots regenerate independently; regen = question version index
  by_assessment  every new take regenerates everything; regen = assessment version index

"Best wins" everywhere, with ties going to the lower index:
  part      best post-penalty try (its raw score travels with it)
  slot      best question version (by_question only has more than one)
  record    best assessment version (by_assessment only has more than one)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass
from typing import Literal

from assessrec.core.errors import MalformedStoredData
from assessrec.models.attempt_data import AttemptData, QuestionSlot, QuestionVersion
from assessrec.models.settings import AssessmentSettings, QuestionSettings
from assessrec.services.penalty import Penalty, PenaltyPolicy, score_after_penalty

logger = logging.getLogger(__name__)

TryScope = Literal["last", "all"]
Rescope = Literal["all"] | Collection[int]


@dataclass(frozen=True, slots=True)
class PartScore:
    try_count: int
    points_possible: float
    score: float = 0.0
    raw_score: float = 0.0
    penalties: tuple[Penalty, ...] = ()


@dataclass(frozen=True, slots=True)
class QuestionScore:
    score: float
    raw_score: float
    parts: tuple[PartScore, ...] = ()
    overridden: bool = False


@dataclass(frozen=True, slots=True)
class RetotalResult:
    score: float
    kept: int | Literal["override"] | None


class ScoringEngine:
    def __init__(
        self,
        assessment: AssessmentSettings,
        question_settings: Callable[[int], QuestionSettings],
    ) -> None:
        self._assessment = assessment
        self._question_settings = question_settings

    @property
    def by_question(self) -> bool:
        return self._assessment.submit_by == "by_question"

    def regen_number(self, av_index: int, qv_index: int) -> int:
        return qv_index if self.by_question else av_index

    def score_question_version(
        self,
        qver: QuestionVersion,
        *,
        regen: int,
        start_time: int,
        submissions: list[int],
        tries: TryScope = "last",
    ) -> QuestionScore:
        qsettings = self._question_settings(qver.question_id)
        policy = PenaltyPolicy.from_settings(qsettings, self._assessment)
        weights = qver.weights()
        weight_total = sum(weights) or 1.0

        parts: list[PartScore] = []
        for pn, weight in enumerate(weights):
            points = qsettings.points_possible * weight / weight_total
            part_tries = qver.part_tries(pn)
            if not part_tries:
                parts.append(PartScore(try_count=0, points_possible=points))
                continue

            first = len(part_tries) - 1 if tries == "last" else 0
            best_score = 0.0
            best_raw = 0.0
            best_penalties: list[Penalty] = []
            for try_number in range(first, len(part_tries)):
                part_try = part_tries[try_number]
                if part_try.raw_score <= 0:
                    continue
                score, penalties = score_after_penalty(
                    part_try.raw_score,
                    points,
                    try_number,
                    regen,
                    self._assessment.due_date,
                    start_time + self._elapsed(submissions, part_try.submission_index),
                    policy,
                )
                if score > best_score:
                    best_score = score
                    best_raw = part_try.raw_score
                    best_penalties = penalties
            parts.append(
                PartScore(
                    try_count=len(part_tries),
                    points_possible=points,
                    score=best_score,
                    raw_score=best_raw,
                    penalties=tuple(best_penalties),
                )
            )

        score = sum(p.score for p in parts)
        raw = sum(p.raw_score for p in parts)
        if qver.score_override is not None:
            return QuestionScore(qver.score_override, raw, tuple(parts), overridden=True)
        return QuestionScore(score, raw, tuple(parts))

    def score_slot(
        self,
        slot: QuestionSlot,
        *,
        av_index: int,
        start_time: int,
        submissions: list[int],
    ) -> tuple[QuestionScore, int]:
        """Best question version in the slot and its index."""
        best: QuestionScore | None = None
        best_index = 0
        for qv_index, qver in enumerate(slot.question_versions):
            qscore = self.score_question_version(
                qver,
                regen=self.regen_number(av_index, qv_index),
                start_time=start_time,
                submissions=submissions,
                tries="all",
            )
            if best is None or qscore.score > best.score:
                best = qscore
                best_index = qv_index
        if best is None:
            return QuestionScore(0.0, 0.0), 0
        return best, best_index

    def retotal(
        self,
        data: AttemptData,
        *,
        start_time: int,
        rescope: Rescope = "all",
    ) -> RetotalResult:
        """Recompute every stored score in `data` in place.

        Questions outside `rescope` keep their stored slot score.  Running this
        twice over the same tries gives the same numbers.
        """
        best_total: float | None = None
        best_version: int | None = None

        for av_index, aver in enumerate(data.assess_versions):
            total = 0.0
            for qn, slot in enumerate(aver.questions):
                if rescope != "all" and qn not in rescope:
                    total += slot.score
                    continue
                qscore, qv_index = self.score_slot(
                    slot,
                    av_index=av_index,
                    start_time=start_time,
                    submissions=data.submissions,
                )
                slot.score = qscore.score
                slot.raw_score = qscore.raw_score
                if self.by_question:
                    slot.scored_version = qv_index
                total += qscore.score
            aver.score = total
            if best_total is None or total > best_total:
                best_total = total
                best_version = av_index

        if data.score_override is not None:
            data.scored_version = None
            return RetotalResult(data.score_override, "override")

        data.scored_version = best_version
        logger.debug(
            "retotaled %d versions, best=%s score=%s",
            len(data.assess_versions),
            best_version,
            best_total,
        )
        return RetotalResult(best_total or 0.0, best_version)

    @staticmethod
    def _elapsed(submissions: list[int], index: int) -> int:
        if not 0 <= index < len(submissions):
            raise MalformedStoredData(
                f"try references submission {index}, only {len(submissions)} recorded"
            )
        return submissions[index]
