"""PostgreSQL implementation of QuizResultRepo.  Append-only."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from online_courses.db.engine import transaction
from online_courses.db.tables import QuizResultRow
from online_courses.models.quiz import QuizResult


class PgQuizResultRepo:
    """Satisfies the QuizResultRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, result: QuizResult) -> QuizResult:
        row = QuizResultRow(
            user_id=result.user_id,
            course_id=result.course_id,
            lecture_id=result.lecture_id,
            quiz_id=result.quiz_id,
            score=result.score,
            num_questions=result.num_questions,
            percentage_correct=result.percentage_correct,
            start_time=result.start_time,
            complete_time=result.complete_time,
            results_json=result.results_json,
        )
        async with transaction(self._session_factory, "add_quiz_result") as session:
            session.add(row)
            await session.flush()
            return _row_to_result(row)

    async def list_for_quiz(
        self, user_id: str, course_id: str, lecture_id: str, quiz_id: str
    ) -> list[QuizResult]:
        stmt = (
            select(QuizResultRow)
            .where(
                QuizResultRow.user_id == user_id,
                QuizResultRow.course_id == course_id,
                QuizResultRow.lecture_id == lecture_id,
                QuizResultRow.quiz_id == quiz_id,
            )
            .order_by(QuizResultRow.id)
        )
        async with transaction(self._session_factory, "list_quiz_results") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_result(r) for r in rows]

    async def list_for_course(self, user_id: str, course_id: str) -> list[QuizResult]:
        stmt = (
            select(QuizResultRow)
            .where(
                QuizResultRow.user_id == user_id,
                QuizResultRow.course_id == course_id,
            )
            .order_by(QuizResultRow.id)
        )
        async with transaction(self._session_factory, "list_course_quiz_results") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_result(r) for r in rows]


def _row_to_result(row: QuizResultRow) -> QuizResult:
    return QuizResult(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        lecture_id=row.lecture_id,
        quiz_id=row.quiz_id,
        score=row.score,
        num_questions=row.num_questions,
        percentage_correct=row.percentage_correct,
        complete_time=row.complete_time,
        results_json=row.results_json,
        start_time=row.start_time,
    )
