"""Demo: walk one by-question assessment through tries, a regeneration and grading.

Run with:
    python scripts/demo_attempt_flow.py

With DATABASE_URL and REDIS_URL unset everything stays in memory, so no
services are needed.
"""

from __future__ import annotations

import asyncio

from assessrec.models.attempt_data import Try
from assessrec.repos.provider import lifespan_backends, record_repo_scope
from assessrec.services.grade_queue import InMemoryGradeQueue
from assessrec.services.providers import (
    AssessmentContext,
    EvaluationResult,
    QuestionAssignment,
)
from assessrec.services.record_session import record_session

ASSESSMENT_ID = 1
STUDENT = 42


class DemoSettings:
    def get_assessment_settings(self):
        return {"submit_by": "by_question", "show_scores": "during"}

    def get_question_settings(self, question_id):
        return {"points_possible": 10, "tries_max": 2, "retry_penalty": 10, "regens_max": 3}

    def get_adjusted_time_limit(self):
        return 0


class DemoAssigner:
    def assign_questions_and_seeds(self, practice, attempt, old_questions):
        return [QuestionAssignment(question_id=200 + qn, seed=7 + qn) for qn in range(2)]

    def assign_regeneration(self, qn, practice, old_questions):
        return QuestionAssignment(question_id=200 + qn, seed=100 + len(old_questions))


class DemoEvaluator:
    def evaluate(self, question_id, seed, attempt, answer):
        return EvaluationResult(raw_scores=[1.0 if answer == "4" else 0.0])


async def main() -> None:
    queue = InMemoryGradeQueue()
    ctx = AssessmentContext(
        assessment_id=ASSESSMENT_ID,
        settings=DemoSettings(),
        assigner=DemoAssigner(),
        evaluator=DemoEvaluator(),
    )

    # ── Step 1: start the assessment ────────────────────────────────
    async with record_repo_scope() as repo, record_session(ctx, repo, STUDENT, queue=queue) as rec:
        await rec.create_record(external_grade_ref="demo-gradebook-line")
        print(f"1. created      → status={rec.status.scored}  questions={rec.get_question_ids([0, 1])}")

    # ── Step 2: wrong, then right on question 0 ─────────────────────
    async with record_repo_scope() as repo, record_session(ctx, repo, STUDENT, queue=queue) as rec:
        rec.score_question(0, rec.add_submission(rec.now), "5")
        rec.score_question(0, rec.add_submission(rec.now), "4")
        part = rec.get_question_part_scores(0).parts[0]
        print(f"2. two tries    → score={part.score}  penalties={list(part.penalties)}")
        rec.retotal()

    # ── Step 3: regenerate question 1 and answer partially ──────────
    async with record_repo_scope() as repo, record_session(ctx, repo, STUDENT, queue=queue) as rec:
        qver = rec.regenerate_question(1)
        rec.record_try(1, {0: Try(rec.add_submission(rec.now), 0.5, "x")})
        print(f"3. regenerated  → seed={qver.seed}  total={rec.retotal()}")

    # ── Step 4: what the gradebook worker would see ─────────────────
    while (update := await queue.pop()) is not None:
        print(f"4. grade update → ref={update.grade_ref}  score={update.score}")


async def run() -> None:
    async with lifespan_backends():
        await main()


if __name__ == "__main__":
    asyncio.run(run())
