from __future__ import annotations

import itertools
from dataclasses import replace
from typing import Protocol

from online_courses.models.quiz import QuizResult


class QuizResultRepo(Protocol):
    async def add(self, result: QuizResult) -> QuizResult: ...

    async def list_for_quiz(
        self, user_id: str, course_id: str, lecture_id: str, quiz_id: str
    ) -> list[QuizResult]: ...

    async def list_for_course(self, user_id: str, course_id: str) -> list[QuizResult]: ...


class InMemoryQuizResultRepo:
    def __init__(self) -> None:
        self._results: list[QuizResult] = []
        self._ids = itertools.count(1)

    def clear(self) -> None:
        self._results.clear()

    async def add(self, result: QuizResult) -> QuizResult:
        stored = replace(result, id=next(self._ids))
        self._results.append(stored)
        return stored

    async def list_for_quiz(
        self, user_id: str, course_id: str, lecture_id: str, quiz_id: str
    ) -> list[QuizResult]:
        return [
            r
            for r in self._results
            if r.user_id == user_id
            and r.course_id == course_id
            and r.lecture_id == lecture_id
            and r.quiz_id == quiz_id
        ]

    async def list_for_course(self, user_id: str, course_id: str) -> list[QuizResult]:
        return [
            r for r in self._results if r.user_id == user_id and r.course_id == course_id
        ]
