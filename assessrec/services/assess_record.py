"""AttemptRecord: one student's (or group's) attempt history for one assessment.

Typical unit of work (see record_session for the locked version):

    rec = AttemptRecord(ctx, repo, user_id=7)
    if not await rec.load():
        await rec.create_record()
    sub = rec.add_submission(now)
    rec.score_question(qn=0, submission=sub, answer="42")
    rec.retotal()
    await rec.save()

The stored blobs are decoded once in load() and re-encoded once in save();
everything in between works on the decoded AttemptData.  AttemptRecord is the
only code that appends versions, regenerations, submissions or tries.

WHERE "VERSIONS" LIVE
-----------------------
by_assessment   every new take is a new AssessmentVersion; each slot holds
                exactly one QuestionVersion.  `ver` selects the take.
by_question     there is a single AssessmentVersion; each slot accumulates
                its own QuestionVersions (regenerations).  `ver` selects the
                regeneration inside the slot.
Practice data always has one AssessmentVersion.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable, Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Literal, NamedTuple

from pydantic import ValidationError

from assessrec.core.errors import (
    ConcurrentModification,
    InvalidOperation,
    RecordNotFound,
    UpstreamServiceError,
)
from assessrec.core.metrics import RECORD_OPERATIONS, SAVE_CONFLICTS, TRIES_RECORDED
from assessrec.models.attempt_data import (
    LATEST,
    AssessmentVersion,
    AttemptData,
    Autosave,
    QuestionSlot,
    QuestionVersion,
    Try,
    VersionSelector,
    VersionStatus,
)
from assessrec.models.record import AssessmentRecord, RecordStatus, ScoredState
from assessrec.models.settings import AssessmentSettings, QuestionSettings
from assessrec.repos.record_repo import RecordRepo
from assessrec.services.codec import decode_attempt_data, encode_attempt_data, stored_form
from assessrec.services.penalty import Penalty
from assessrec.services.providers import (
    AssessmentContext,
    RenderedQuestion,
    RenderRequest,
)
from assessrec.services.scoring import (
    PartScore,
    QuestionScore,
    Rescope,
    ScoringEngine,
    TryScope,
)

logger = logging.getLogger(__name__)

QuestionStatus = Literal["unattempted", "attempted", "correct", "incorrect", "partial"]


def _utc_now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


@dataclass(frozen=True, slots=True)
class SubmittedAttempt:
    date: int
    score: float | None = None


@dataclass(frozen=True, slots=True)
class ScoredAttempt:
    score: float
    kept: int | Literal["override"] | None


@dataclass(frozen=True, slots=True)
class PartReport:
    try_count: int
    points_possible: float
    score: float | None = None
    raw_score: float | None = None
    penalties: tuple[Penalty, ...] = ()


@dataclass(frozen=True, slots=True)
class QuestionReport:
    """What the UI layer gets for one question slot."""

    qn: int
    question_id: int
    settings: QuestionSettings
    try_count: int
    status: QuestionStatus
    regen: int | None = None  # by_question only
    gb_score: float | None = None  # by_question only: slot score in the gradebook
    gb_raw_score: float | None = None
    score: float | None = None
    parts: tuple[PartReport, ...] | None = None
    html: str | None = None
    answer_weights: tuple[float, ...] | None = None


class _Located(NamedTuple):
    av_index: int
    aver: AssessmentVersion
    slot: QuestionSlot
    qv_index: int
    qver: QuestionVersion


class AttemptRecord:
    def __init__(
        self,
        context: AssessmentContext,
        repo: RecordRepo,
        user_id: int,
        *,
        in_practice: bool = False,
        clock: Callable[[], int] = _utc_now,
    ) -> None:
        self._ctx = context
        self._repo = repo
        self._user_id = user_id
        self._clock = clock
        self.in_practice = in_practice

        self._row: AssessmentRecord | None = None
        self._status = RecordStatus()
        self._scored: AttemptData | None = None
        self._practice: AttemptData | None = None

        self._assessment_settings: AssessmentSettings | None = None
        self._question_settings: dict[int, QuestionSettings] = {}
        self._scoring: ScoringEngine | None = None

    # ------------------------------------------------------------------
    # Identity and collaborators
    # ------------------------------------------------------------------

    @property
    def assessment_id(self) -> int:
        return self._ctx.assessment_id

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def group_id(self) -> int:
        return self._row.group_id if self._row is not None else 0

    @property
    def now(self) -> int:
        return self._clock()

    @property
    def record(self) -> AssessmentRecord:
        """The row as it would be written by save() (minus re-encoded blobs)."""
        return replace(self._require_row(), status=self._status.to_bits())

    @property
    def score(self) -> float:
        return self._require_row().score

    @property
    def start_time(self) -> int:
        return self._require_row().start_time

    @property
    def status(self) -> RecordStatus:
        return self._status

    @property
    def assessment_settings(self) -> AssessmentSettings:
        if self._assessment_settings is None:
            raw = self._ctx.settings.get_assessment_settings()
            try:
                self._assessment_settings = AssessmentSettings.model_validate(raw)
            except ValidationError as exc:
                raise UpstreamServiceError(f"invalid assessment settings: {exc}") from exc
        return self._assessment_settings

    def question_settings(self, question_id: int) -> QuestionSettings:
        cached = self._question_settings.get(question_id)
        if cached is not None:
            return cached
        raw = self._ctx.settings.get_question_settings(question_id)
        if raw is None:
            raise UpstreamServiceError(f"no settings for question {question_id}")
        try:
            settings = QuestionSettings.model_validate(raw)
        except ValidationError as exc:
            raise UpstreamServiceError(
                f"invalid settings for question {question_id}: {exc}"
            ) from exc
        self._question_settings[question_id] = settings
        return settings

    @property
    def by_question(self) -> bool:
        return self.assessment_settings.submit_by == "by_question"

    @property
    def scoring(self) -> ScoringEngine:
        if self._scoring is None:
            self._scoring = ScoringEngine(self.assessment_settings, self.question_settings)
        return self._scoring

    def set_in_practice(self, in_practice: bool) -> None:
        self.in_practice = in_practice

    # ------------------------------------------------------------------
    # Load / create / save
    # ------------------------------------------------------------------

    async def load(self) -> bool:
        """Read the stored row; returns False when no record exists yet."""
        row = await self._repo.get(self.assessment_id, self._user_id)
        if row is None:
            self._row = None
            self._scored = None
            self._practice = None
            self._status = RecordStatus()
            RECORD_OPERATIONS.labels(operation="load", result="missing").inc()
            return False

        self._adopt(row)
        RECORD_OPERATIONS.labels(operation="load", result="ok").inc()
        return True

    def _adopt(self, row: AssessmentRecord) -> None:
        self._row = row
        self._status = RecordStatus.from_bits(row.status)
        self._scored = (
            decode_attempt_data(row.scored_data, label="scored") if row.scored_data else None
        )
        self._practice = (
            decode_attempt_data(row.practice_data, label="practice")
            if row.practice_data
            else None
        )

    def has_record(self) -> bool:
        return self._row is not None

    async def create_record(
        self,
        users: Sequence[int] | None = None,
        group_id: int = 0,
        record_start: bool = True,
        external_grade_ref: str = "",
        start_attempt: bool = True,
    ) -> AssessmentRecord:
        """Insert a fresh record, one row per user (group members share the data).

        Only the creating user's row carries the external grade reference.
        If the group already has rows, the new members join it instead: their
        rows copy the group's data and revision, and nothing is built.
        """
        if self._row is not None:
            raise InvalidOperation("record already exists")

        members = list(users) if users else [self._user_id]
        if self._user_id not in members:
            members.insert(0, self._user_id)

        if group_id > 0:
            existing = await self._repo.group_rows(self.assessment_id, group_id)
            if existing:
                return await self._join_group(existing, members, external_grade_ref)

        self._row = AssessmentRecord(
            assessment_id=self.assessment_id,
            user_id=self._user_id,
            group_id=group_id,
            external_grade_ref=external_grade_ref,
            start_time=self.now if record_start else 0,
        )
        self._status = RecordStatus()
        self._scored = None
        self._practice = None

        if start_attempt:
            try:
                self.build_assess_data(practice=False, record_start=record_start)
                if self.in_practice:
                    self.build_assess_data(practice=True, record_start=record_start)
            except Exception:
                self._row = None
                self._scored = None
                self._practice = None
                raise

        base = self._encoded_row()
        rows = [
            replace(
                base,
                user_id=uid,
                external_grade_ref=external_grade_ref if uid == self._user_id else "",
            )
            for uid in members
        ]
        try:
            await self._repo.insert(rows)
        except InvalidOperation:
            self._row = None
            RECORD_OPERATIONS.labels(operation="create", result="conflict").inc()
            raise

        self._row = replace(base, revision=0)
        RECORD_OPERATIONS.labels(operation="create", result="ok").inc()
        logger.info(
            "Created record for %d user(s), group=%d, start_attempt=%s",
            len(rows),
            group_id,
            start_attempt,
        )
        return self._row

    async def _join_group(
        self,
        existing: Sequence[AssessmentRecord],
        members: Sequence[int],
        external_grade_ref: str,
    ) -> AssessmentRecord:
        present = {r.user_id for r in existing}
        if self._user_id in present:
            raise InvalidOperation("record already exists")
        shared = existing[0]
        rows = [
            replace(
                shared,
                user_id=uid,
                external_grade_ref=external_grade_ref if uid == self._user_id else "",
            )
            for uid in members
            if uid not in present
        ]
        try:
            await self._repo.insert(rows)
        except InvalidOperation:
            RECORD_OPERATIONS.labels(operation="create", result="conflict").inc()
            raise

        self._adopt(replace(shared, user_id=self._user_id, external_grade_ref=external_grade_ref))
        RECORD_OPERATIONS.labels(operation="create", result="joined").inc()
        logger.info(
            "Joined %d user(s) to group=%d at revision %d",
            len(rows),
            shared.group_id,
            shared.revision,
        )
        return self._row

    async def save(self, *, scored: bool = True, practice: bool = True) -> AssessmentRecord:
        """Write the record back; raises ConcurrentModification if it changed since load."""
        row = self._require_row()
        pending = self._encoded_row(scored=scored, practice=practice)
        try:
            stored = await self._repo.update(pending, row.revision)
        except ConcurrentModification:
            SAVE_CONFLICTS.inc()
            RECORD_OPERATIONS.labels(operation="save", result="conflict").inc()
            logger.warning("Save rejected, record changed since revision %d", row.revision)
            raise
        self._row = stored
        RECORD_OPERATIONS.labels(operation="save", result="ok").inc()
        return stored

    def _encoded_row(self, *, scored: bool = True, practice: bool = True) -> AssessmentRecord:
        row = self._require_row()
        return replace(
            row,
            status=self._status.to_bits(),
            scored_data=(
                encode_attempt_data(self._scored)
                if scored and self._scored is not None
                else row.scored_data
            ),
            practice_data=(
                encode_attempt_data(self._practice)
                if practice and self._practice is not None
                else row.practice_data
            ),
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def set_status(self, active: bool, practice: bool = False) -> None:
        self._require_row()
        if practice:
            self._status = self._status.with_practice(active)
        else:
            self._status = self._status.with_scored(
                active, self.assessment_settings.submit_by
            )

    def has_active_attempt(self, practice: bool = False) -> bool:
        if self._row is None:
            return False
        if practice:
            return self._status.practice_active
        return self._status.scored_active

    @property
    def scored_state(self) -> ScoredState:
        if self._status.scored_active:
            return self._status.scored
        if self._scored is not None and any(
            v.is_submitted for v in self._scored.assess_versions
        ):
            return ScoredState.SUBMITTED
        return ScoredState.INACTIVE

    def has_unsubmitted_attempt(self, practice: bool = False) -> bool:
        """True when the newest version (opened or not) hasn't been submitted."""
        if self._row is None:
            return False
        data = self._scored_or_practice(practice)
        if data is None or data.latest is None:
            return False
        return data.latest.status == VersionStatus.IN_PROGRESS

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def can_make_new_attempt(self, practice: bool = False) -> bool:
        data = self._scored_or_practice(practice)
        count = data.version_count if data is not None else 0
        if practice:
            return count == 0
        if self.by_question:
            # One version holds every slot; later "attempts" are regenerations.
            return count == 0
        return count < self.assessment_settings.allowed_attempts

    def build_assess_data(self, practice: bool = False, record_start: bool = True) -> bool:
        """Create the scored/practice container and its first version.

        Returns False (and does nothing) if the container already exists.
        """
        self._require_row()
        if self._scored_or_practice(practice) is not None:
            return False
        self.build_new_assess_version(practice=practice, record_start=record_start)
        return True

    def build_new_assess_version(
        self, practice: bool = False, record_start: bool = True
    ) -> AssessmentVersion:
        if not self.can_make_new_attempt(practice):
            raise InvalidOperation(
                "no new attempt allowed"
                + (" in practice" if practice else f" ({self.assessment_settings.submit_by})")
            )
        data = self._ensure_data(practice)
        attempt = data.version_count
        now = self.now

        version = AssessmentVersion(start_time=now if record_start else 0)
        if record_start and self.assessment_settings.time_limit > 0:
            version.time_limit_end = now + self._ctx.settings.get_adjusted_time_limit()

        assignments = self._ctx.assigner.assign_questions_and_seeds(
            practice, attempt, self.get_old_questions(practice)
        )
        if not assignments:
            raise UpstreamServiceError("question assignment returned no questions")
        for assignment in assignments:
            version.questions.append(
                QuestionSlot(
                    question_versions=[
                        QuestionVersion(
                            question_id=assignment.question_id, seed=assignment.seed
                        )
                    ],
                    scored_version=0 if self.by_question else None,
                )
            )

        data.assess_versions.append(version)
        self.set_status(True, practice)
        logger.info(
            "Started %s attempt %d with %d questions",
            "practice" if practice else "scored",
            attempt,
            len(version.questions),
        )
        return version

    def get_old_questions(self, practice: bool = False) -> list[tuple[int, int]]:
        """Every (question_id, seed) handed out so far, across takes and regenerations."""
        data = self._scored_or_practice(practice)
        if data is None:
            return []
        return [
            (qver.question_id, qver.seed)
            for aver in data.assess_versions
            for slot in aver.questions
            for qver in slot.question_versions
        ]

    def can_regenerate_question(self, qn: int, practice: bool = False) -> bool:
        if not self.by_question:
            return False
        _, aver = self.resolve_assess_version(practice)
        slot = self._slot(aver, qn)
        limit = self.question_settings(slot.current.question_id).regens_max
        return len(slot.question_versions) < limit

    def regenerate_question(self, qn: int, practice: bool = False) -> QuestionVersion:
        """Append a new variant to slot `qn` (by_question mode only)."""
        if not self.by_question:
            raise InvalidOperation("questions regenerate individually only in by_question mode")
        if not self.can_regenerate_question(qn, practice):
            raise InvalidOperation(f"question {qn} has no regenerations left")

        data = self._data(practice)
        _, aver = self.resolve_assess_version(practice)
        slot = self._slot(aver, qn)
        assignment = self._ctx.assigner.assign_regeneration(
            qn, practice, self.get_old_questions(practice)
        )
        qver = QuestionVersion(question_id=assignment.question_id, seed=assignment.seed)
        slot.question_versions.append(qver)
        data.autosaves.pop(qn, None)
        aver.last_change = self.now
        self.set_status(True, practice)
        self._touch()
        logger.info("Regenerated question %d (version %d)", qn, len(slot.question_versions) - 1)
        return qver

    def submit_assess_version(
        self, time: int | None = None, practice: bool = False
    ) -> AssessmentVersion:
        """Close the in-progress version and clear the active state."""
        data = self._data(practice)
        aver = data.latest
        if aver is None or aver.is_submitted:
            raise InvalidOperation("no attempt in progress")
        aver.status = VersionStatus.SUBMITTED
        aver.last_change = time if time is not None else self.now
        self.set_status(False, practice)
        self._touch()
        return aver

    # ------------------------------------------------------------------
    # Resolution of "latest" vs explicit version
    # ------------------------------------------------------------------

    def resolve_assess_version(
        self, practice: bool = False, ver: VersionSelector = LATEST
    ) -> tuple[int, AssessmentVersion]:
        data = self._data(practice)
        if not data.assess_versions:
            raise InvalidOperation("no assessment versions yet")
        if practice or self.by_question:
            index = 0
        elif ver == LATEST:
            index = len(data.assess_versions) - 1
        else:
            index = self._check_index(ver, len(data.assess_versions), "assessment version")
        return index, data.assess_versions[index]

    def resolve_question_version(
        self, qn: int, practice: bool = False, ver: VersionSelector = LATEST
    ) -> tuple[int, QuestionVersion]:
        loc = self._locate(qn, practice, ver)
        return loc.qv_index, loc.qver

    def _locate(self, qn: int, practice: bool, ver: VersionSelector) -> _Located:
        av_index, aver = self.resolve_assess_version(practice, ver)
        slot = self._slot(aver, qn)
        if self.by_question and ver != LATEST:
            qv_index = self._check_index(ver, len(slot.question_versions), "question version")
        else:
            qv_index = len(slot.question_versions) - 1
        return _Located(av_index, aver, slot, qv_index, slot.question_versions[qv_index])

    @staticmethod
    def _check_index(ver: VersionSelector, count: int, what: str) -> int:
        if not isinstance(ver, int) or not 0 <= ver < count:
            raise InvalidOperation(f"no {what} {ver!r} (have {count})")
        return ver

    @staticmethod
    def _slot(aver: AssessmentVersion, qn: int) -> QuestionSlot:
        if not 0 <= qn < len(aver.questions):
            raise InvalidOperation(f"no question {qn} (have {len(aver.questions)})")
        return aver.questions[qn]

    # ------------------------------------------------------------------
    # Submissions, tries, autosaves
    # ------------------------------------------------------------------

    def add_submission(self, time: int, practice: bool = False) -> int:
        """Log one submission event; tries recorded for it reference the returned index."""
        data = self._data(practice)
        data.submissions.append(time - self.start_time)
        self._touch()
        return len(data.submissions) - 1

    def record_try(
        self,
        qn: int,
        part_tries: Mapping[int, Try],
        practice: bool = False,
        ver: VersionSelector = LATEST,
    ) -> dict[int, Try]:
        """Append one try per part; answers are stored in their JSON form.

        Returns the tries as stored.
        """
        data = self._data(practice)
        loc = self._locate(qn, practice, ver)

        # Validate everything before appending anything.
        stored: dict[int, Try] = {}
        for pn, part_try in part_tries.items():
            if pn < 0:
                raise InvalidOperation(f"invalid part number {pn}")
            if not 0 <= part_try.submission_index < len(data.submissions):
                raise InvalidOperation(
                    f"try references unknown submission {part_try.submission_index}"
                )
            if not 0 <= part_try.raw_score <= 1:
                raise InvalidOperation(f"raw score {part_try.raw_score} outside 0..1")
            stored[pn] = replace(
                part_try,
                student_answer=stored_form(part_try.student_answer),
                answer_value=stored_form(part_try.answer_value),
            )

        for pn in sorted(part_tries):
            while len(loc.qver.tries) <= pn:
                loc.qver.tries.append([])
            loc.qver.tries[pn].append(stored[pn])

        data.autosaves.pop(qn, None)
        loc.aver.last_change = self.now
        self._touch()
        TRIES_RECORDED.labels(mode="practice" if practice else "scored").inc(len(part_tries))
        return stored

    def score_question(
        self,
        qn: int,
        submission: int,
        answer: Any,
        parts_to_score: Collection[int] | None = None,
        practice: bool = False,
    ) -> dict[int, Try]:
        """Grade `answer` with the question engine and record the resulting tries.

        `answer` may be a per-part list/mapping or a single value shared by
        every part.  Returns the tries recorded, by part.
        """
        evaluator = self._ctx.evaluator
        if evaluator is None:
            raise UpstreamServiceError("no question evaluator configured")

        _, qver = self.resolve_question_version(qn, practice)
        attempt = min((len(part) for part in qver.tries), default=0)
        result = evaluator.evaluate(qver.question_id, qver.seed, attempt, answer)

        raws = [float(r) for r in result.raw_scores]
        if not raws or any(not 0 <= r <= 1 for r in raws):
            raise UpstreamServiceError(
                f"evaluator returned invalid part scores {list(result.raw_scores)!r}"
            )
        if result.answer_weights and qver.answer_weights is None:
            qver.answer_weights = [float(w) for w in result.answer_weights]

        values = list(result.answer_values or [])
        tries: dict[int, Try] = {}
        for pn, raw in enumerate(raws):
            if parts_to_score is not None and pn not in parts_to_score:
                continue
            tries[pn] = Try(
                submission_index=submission,
                raw_score=raw,
                student_answer=_part_answer(answer, pn, len(raws)),
                answer_value=values[pn] if pn < len(values) else None,
            )
        return self.record_try(qn, tries, practice=practice)

    def is_submission_allowed(
        self, qn: int, question_id: int, practice: bool = False
    ) -> bool | dict[int, bool]:
        """True if nothing has been tried yet, else per-part "has tries left"."""
        _, qver = self.resolve_question_version(qn, practice)
        if not qver.has_tries():
            return True
        tries_max = self.question_settings(question_id).tries_max
        return {pn: len(part) < tries_max for pn, part in enumerate(qver.tries)}

    def set_autosave(
        self,
        qn: int,
        answers: Mapping[int, Any],
        time: int | None = None,
        practice: bool = False,
    ) -> None:
        data = self._data(practice)
        self._slot(self.resolve_assess_version(practice)[1], qn)
        data.autosaves[qn] = Autosave(
            answers={pn: stored_form(a) for pn, a in answers.items()},
            time=time if time is not None else self.now,
        )

    def get_autosave(self, qn: int, practice: bool = False) -> Autosave | None:
        data = self._scored_or_practice(practice)
        if data is None:
            return None
        return data.autosaves.get(qn)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def get_question_part_scores(
        self,
        qn: int,
        practice: bool = False,
        ver: VersionSelector = LATEST,
        tries: TryScope = "last",
    ) -> QuestionScore:
        return self._score_located(self._locate(qn, practice, ver), practice, tries)

    def _score_located(self, loc: _Located, practice: bool, tries: TryScope) -> QuestionScore:
        return self.scoring.score_question_version(
            loc.qver,
            regen=self.scoring.regen_number(loc.av_index, loc.qv_index),
            start_time=self.start_time,
            submissions=self._data(practice).submissions,
            tries=tries,
        )

    def retotal(self, practice: bool = False, rescope: Rescope = "all") -> float:
        """Recompute part → question → version → record scores.

        Practice data is scored too but never touches the official score.
        """
        data = self._data(practice)
        result = self.scoring.retotal(data, start_time=self.start_time, rescope=rescope)
        if not practice:
            self._row = replace(self._require_row(), score=result.score)
        return result.score

    def override_question_score(
        self,
        qn: int,
        score: float | None,
        practice: bool = False,
        ver: VersionSelector = LATEST,
    ) -> None:
        """Instructor override for one question version; None clears it.

        Takes effect on the next retotal().
        """
        self._locate(qn, practice, ver).qver.score_override = score
        self._touch()

    def override_score(self, score: float | None) -> None:
        """Instructor override for the whole record; None clears it."""
        self._data(False).score_override = score
        self._touch()

    # ------------------------------------------------------------------
    # Queries for the UI / gradebook
    # ------------------------------------------------------------------

    def get_submitted_attempts(self, include_scores: bool = False) -> dict[int, SubmittedAttempt]:
        if self._row is None or self._scored is None:
            return {}
        return {
            k: SubmittedAttempt(
                date=ver.last_change, score=ver.score if include_scores else None
            )
            for k, ver in enumerate(self._scored.assess_versions)
            if ver.is_submitted
        }

    def get_scored_attempt(self) -> ScoredAttempt | None:
        if self._row is None:
            return None
        kept: int | Literal["override"] | None = None
        if self._scored is not None:
            if self._scored.score_override is not None:
                kept = "override"
            else:
                kept = self._scored.scored_version
        return ScoredAttempt(score=self._row.score, kept=kept)

    def get_group_members(self) -> list[str]:
        if self._row is None or not self._row.is_group:
            return []
        if self._ctx.groups is None:
            raise UpstreamServiceError("no group directory configured")
        return self._ctx.groups.member_names(self._row.group_id)

    def get_time_limit_expires(self) -> int | None:
        if self._row is None or self._scored is None or self._scored.latest is None:
            return None
        return self._scored.latest.time_limit_end

    def get_question_object(
        self,
        qn: int,
        practice: bool = False,
        include_scores: bool = False,
        include_parts: bool = False,
        generate_html: bool = False,
        ver: VersionSelector = LATEST,
    ) -> QuestionReport:
        loc = self._locate(qn, practice, ver)
        qsettings = self.question_settings(loc.qver.question_id)

        regen = gb_score = gb_raw = None
        if self.by_question:
            regen = loc.qv_index
            gb_score = loc.slot.score
            gb_raw = loc.slot.raw_score

        score: float | None = None
        parts: tuple[PartReport, ...] | None = None
        if not loc.qver.has_tries():
            try_count = 0
            status: QuestionStatus = "unattempted"
            if include_scores:
                score = 0.0
            if include_parts:
                parts = tuple(
                    PartReport(
                        try_count=0,
                        points_possible=points,
                        score=0.0 if include_scores else None,
                        raw_score=0.0 if include_scores else None,
                    )
                    for points in self._part_points(loc.qver, qsettings)
                )
        elif include_scores:
            qscore = self._score_located(loc, practice, "last")
            try_count = min(p.try_count for p in qscore.parts)
            score = qscore.score
            status = _classify(qscore.parts)
            if include_parts:
                parts = tuple(
                    PartReport(p.try_count, p.points_possible, p.score, p.raw_score, p.penalties)
                    for p in qscore.parts
                )
        else:
            points = self._part_points(loc.qver, qsettings)
            counts = [len(loc.qver.part_tries(pn)) for pn in range(len(points))]
            try_count = min(counts)
            status = "unattempted" if 0 in counts else "attempted"
            if include_parts:
                parts = tuple(PartReport(c, p) for c, p in zip(counts, points))

        html = None
        answer_weights = None
        if generate_html:
            rendered = self.get_question_html(qn, practice, ver)
            html = rendered.html
            answer_weights = tuple(rendered.answer_weights)

        return QuestionReport(
            qn=qn,
            question_id=loc.qver.question_id,
            settings=qsettings,
            try_count=try_count,
            status=status,
            regen=regen,
            gb_score=gb_score,
            gb_raw_score=gb_raw,
            score=score if include_scores else None,
            parts=parts,
            html=html,
            answer_weights=answer_weights,
        )

    def get_all_question_objects(
        self,
        practice: bool = False,
        include_scores: bool = False,
        include_parts: bool = False,
        generate_html: bool = False,
        ver: VersionSelector = LATEST,
    ) -> list[QuestionReport]:
        _, aver = self.resolve_assess_version(practice, ver)
        return [
            self.get_question_object(
                qn, practice, include_scores, include_parts, generate_html, ver
            )
            for qn in range(len(aver.questions))
        ]

    def get_question_html(
        self,
        qn: int,
        practice: bool = False,
        ver: VersionSelector = LATEST,
        clear_answers: bool = False,
        force_scores: bool = False,
        force_answers: bool = False,
    ) -> RenderedQuestion:
        renderer = self._ctx.renderer
        if renderer is None:
            raise UpstreamServiceError("no question renderer configured")

        loc = self._locate(qn, practice, ver)
        qver = loc.qver
        qsettings = self.question_settings(qver.question_id)
        show_scores = force_scores or self.assessment_settings.show_scores == "during"
        autosave = self.get_autosave(qn, practice)

        last_answers: dict[int, Any] = {}
        show_answers: dict[int, bool] = {}
        part_scores: dict[int, float] = {}
        for pn in range(qver.part_count):
            part = qver.part_tries(pn)
            if clear_answers:
                last_answers[pn] = ""
            elif autosave is not None and pn in autosave.answers:
                last_answers[pn] = autosave.answers[pn]
            elif part:
                last_answers[pn] = part[-1].student_answer
            else:
                last_answers[pn] = ""
            show_answers[pn] = force_answers or _answers_visible(
                qsettings, len(part), show_scores
            )
            if show_scores and part:
                part_scores[pn] = part[-1].raw_score

        request = RenderRequest(
            qn=qn,
            question_id=qver.question_id,
            seed=qver.seed,
            attempt=min((len(p) for p in qver.tries), default=0),
            last_answers=last_answers,
            show_answers=show_answers,
            part_scores=part_scores,
            show_hints=qsettings.show_hints,
            clear_answers=clear_answers,
        )
        return renderer.render(request)

    def get_student_answers(
        self, practice: bool = False, ver: VersionSelector = LATEST
    ) -> tuple[dict[int, Any], dict[int, Any]]:
        """Last answer (and answer value) per question; lists for multipart questions."""
        _, aver = self.resolve_assess_version(practice, ver)
        answers: dict[int, Any] = {}
        values: dict[int, Any] = {}
        for qn in range(len(aver.questions)):
            _, qver = self.resolve_question_version(qn, practice, ver)
            last = [part[-1] if part else None for part in qver.tries]
            part_answers = [t.student_answer if t else None for t in last]
            part_values = [t.answer_value if t else None for t in last]
            if len(last) > 1:
                answers[qn] = part_answers
                values[qn] = part_values
            else:
                answers[qn] = part_answers[0] if part_answers else None
                values[qn] = part_values[0] if part_values else None
        return answers, values

    def get_question_id(
        self, qn: int, practice: bool = False, ver: VersionSelector = LATEST
    ) -> int:
        return self.resolve_question_version(qn, practice, ver)[1].question_id

    def get_question_ids(
        self, qns: Iterable[int], practice: bool = False, ver: VersionSelector = LATEST
    ) -> dict[int, int]:
        return {qn: self.get_question_id(qn, practice, ver) for qn in qns}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_row(self) -> AssessmentRecord:
        if self._row is None:
            raise RecordNotFound(self.assessment_id, self._user_id)
        return self._row

    def _scored_or_practice(self, practice: bool) -> AttemptData | None:
        return self._practice if practice else self._scored

    def _data(self, practice: bool) -> AttemptData:
        self._require_row()
        data = self._scored_or_practice(practice)
        if data is None:
            raise InvalidOperation(
                f"no {'practice' if practice else 'scored'} attempt data yet"
            )
        return data

    def _ensure_data(self, practice: bool) -> AttemptData:
        self._require_row()
        data = self._scored_or_practice(practice)
        if data is None:
            data = AttemptData()
            if practice:
                self._practice = data
            else:
                self._scored = data
        return data

    def _touch(self) -> None:
        self._row = replace(self._require_row(), last_change=self.now)

    @staticmethod
    def _part_points(qver: QuestionVersion, qsettings: QuestionSettings) -> list[float]:
        weights = qver.weights()
        total = sum(weights) or 1.0
        return [qsettings.points_possible * w / total for w in weights]


def _part_answer(answer: Any, pn: int, part_count: int) -> Any:
    if isinstance(answer, Mapping):
        return answer.get(pn)
    if isinstance(answer, (list, tuple)) and len(answer) == part_count:
        return answer[pn]
    return answer


def _classify(parts: Sequence[PartScore]) -> QuestionStatus:
    if any(p.try_count == 0 for p in parts):
        return "unattempted"
    if all(p.raw_score > 0.99 for p in parts):
        return "correct"
    if all(p.raw_score < 0.01 for p in parts):
        return "incorrect"
    return "partial"


def _answers_visible(qsettings: QuestionSettings, tries: int, show_scores: bool) -> bool:
    policy = qsettings.show_answers
    if policy == "after_lastattempt":
        return tries >= qsettings.tries_max
    if policy == "with_score":
        return show_scores and tries > 0
    if policy == "after_n":
        return tries > qsettings.show_answers_after_n
    return False
