from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal

from online_courses.core.errors import ExternalServiceError, NotFoundError
from online_courses.core.metrics import QUIZ_GRADES
from online_courses.db.gateway import catalog_repo, quiz_result_repo
from online_courses.models.quiz import (
    AnswerResult,
    GradedQuiz,
    QuizDefinition,
    QuizResult,
    QuizResultSummary,
)
from online_courses.repos.catalog_repo import CatalogRepo
from online_courses.repos.quiz_result_repo import QuizResultRepo
from online_courses.services.crm_sync import CRM_SYNC_ENABLED, CrmContact, enqueue_crm_sync
from online_courses.services.progress_ledger import ProgressLedger, progress_ledger
from online_courses.services.quiz_provider import QuizProvider, quiz_provider
from online_courses.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


def grade_quiz(definition: QuizDefinition, answers: Mapping[str, str]) -> GradedQuiz:
    """Grade submitted answers against the answer key.

    Answers to questions the quiz does not contain are ignored, so they
    count neither for nor against the learner.  The percentage is
    truncated to two places (43 of 90 -> 0.47).
    """
    results: list[AnswerResult] = []
    for question_id, selected in answers.items():
        if question_id not in definition.questions:
            continue
        correct = definition.questions[question_id] == selected
        results.append(AnswerResult(question_id, correct, selected))

    score = sum(1 for r in results if r.correct)
    graded = len(results)
    percentage = Decimal(score * 100 // graded) / 100 if graded else Decimal(0)
    return GradedQuiz(
        score=score,
        num_questions=graded,
        percentage_correct=percentage,
        results=tuple(results),
    )


def latest_result(results: Iterable[QuizResult]) -> QuizResult | None:
    return max(results, key=lambda r: (r.complete_time, r.id), default=None)


def summarize_attempts(results: list[QuizResult]) -> QuizResultSummary | None:
    latest = latest_result(results)
    if latest is None:
        return None
    best = max(r.percentage_correct for r in results)
    return QuizResultSummary(latest=latest, best_percentage_correct=best)


class QuizGradingService:
    def __init__(
        self,
        results: QuizResultRepo,
        ledger: ProgressLedger,
        provider: QuizProvider,
        catalog: CatalogRepo,
        queue: TaskQueue,
        *,
        crm_enabled: bool,
    ) -> None:
        self._results = results
        self._ledger = ledger
        self._provider = provider
        self._catalog = catalog
        self._queue = queue
        self._crm_enabled = crm_enabled

    async def submit_quiz(
        self,
        user_id: str,
        course_id: str,
        lecture_id: str,
        quiz_name: str,
        answers: Mapping[str, str],
        contact: CrmContact | None = None,
    ) -> QuizResultSummary:
        start_time = _now()
        was_complete = await self._ledger.is_course_complete(user_id, course_id)

        try:
            definition = await self._provider.get_quiz_definition(quiz_name)
        except NotFoundError:
            QUIZ_GRADES.labels(result="not_found").inc()
            logger.warning("Quiz %s not found  user=%s course=%s", quiz_name, user_id, course_id)
            raise
        except ExternalServiceError:
            QUIZ_GRADES.labels(result="provider_error").inc()
            logger.exception("Quiz provider failed for quiz=%s", quiz_name)
            raise

        graded = grade_quiz(definition, answers)
        await self._results.add(
            QuizResult(
                id=0,
                user_id=user_id,
                course_id=course_id,
                lecture_id=lecture_id,
                quiz_id=definition.id,
                score=graded.score,
                num_questions=graded.num_questions,
                percentage_correct=graded.percentage_correct,
                complete_time=_now(),
                results_json=graded.results_json(),
                start_time=start_time,
            )
        )
        await self._ledger.mark_quiz_progress(
            user_id, definition.id, int(graded.percentage_correct * 100)
        )
        QUIZ_GRADES.labels(result="graded").inc()
        logger.info(
            "Graded quiz=%s user=%s score=%d/%d",
            definition.id,
            user_id,
            graded.score,
            graded.num_questions,
        )

        if not was_complete and await self._ledger.is_course_complete(user_id, course_id):
            logger.info("Course %s completed by user=%s", course_id, user_id)
            if self._crm_enabled:
                course = await self._catalog.get_course(course_id)
                await enqueue_crm_sync(
                    self._queue,
                    "completed",
                    course.hubspot_key if course is not None else None,
                    contact,
                )

        return await self.get_quiz_result(user_id, course_id, lecture_id, definition.id)

    async def get_quiz_result(
        self, user_id: str, course_id: str, lecture_id: str, quiz_id: str
    ) -> QuizResultSummary:
        attempts = await self._results.list_for_quiz(user_id, course_id, lecture_id, quiz_id)
        summary = summarize_attempts(attempts)
        if summary is None:
            raise NotFoundError(f"no results for quiz {quiz_id}")
        return summary

    async def get_quiz_results(self, user_id: str, course_id: str) -> list[QuizResultSummary]:
        """Latest attempt and best score for every quiz taken in the course."""
        grouped: dict[tuple[str, str], list[QuizResult]] = {}
        for result in await self._results.list_for_course(user_id, course_id):
            grouped.setdefault((result.lecture_id, result.quiz_id), []).append(result)
        summaries = [summarize_attempts(attempts) for attempts in grouped.values()]
        return [s for s in summaries if s is not None]


quiz_grading_service = QuizGradingService(
    quiz_result_repo,
    progress_ledger,
    quiz_provider,
    catalog_repo,
    task_queue,
    crm_enabled=CRM_SYNC_ENABLED,
)
