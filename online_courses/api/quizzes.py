"""Quiz submission and result endpoints."""

from __future__ import annotations

import json
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from online_courses.api.dependencies import CurrentUser, crm_contact
from online_courses.models.quiz import QuizResultSummary
from online_courses.services.crm_sync import CrmContact
from online_courses.services.quiz_grading import quiz_grading_service

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


class AnswerOut(BaseModel):
    question_id: str
    correct: bool
    selected_option: str


class QuizResultOut(BaseModel):
    id: int
    course_id: str
    lecture_id: str
    quiz_id: str
    score: int
    num_questions: int
    percentage_correct: float
    best_percentage_correct: float
    complete_time: int
    start_time: int | None = None
    answers: list[AnswerOut] = []

    @classmethod
    def from_model(cls, summary: QuizResultSummary) -> QuizResultOut:
        r = summary.latest
        return cls(
            id=r.id,
            course_id=r.course_id,
            lecture_id=r.lecture_id,
            quiz_id=r.quiz_id,
            score=r.score,
            num_questions=r.num_questions,
            percentage_correct=float(r.percentage_correct),
            best_percentage_correct=float(summary.best_percentage_correct),
            complete_time=r.complete_time,
            start_time=r.start_time,
            answers=[
                AnswerOut(
                    question_id=a["Id"],
                    correct=a["Correct"],
                    selected_option=a["SelectedOption"],
                )
                for a in json.loads(r.results_json or "[]")
            ],
        )


@router.put("/{course_id}/lectures/{lecture_id}/{quiz_name}", response_model=QuizResultOut)
async def submit_quiz(
    course_id: str,
    lecture_id: str,
    quiz_name: str,
    answers: dict[str, str],
    principal: CurrentUser,
    contact: Annotated[CrmContact, Depends(crm_contact)],
) -> QuizResultOut:
    """Grade the submitted answers (question id -> option codename)."""
    summary = await quiz_grading_service.submit_quiz(
        principal.user_id, course_id, lecture_id, quiz_name, answers, contact=contact
    )
    return QuizResultOut.from_model(summary)


@router.get("/{course_id}/lectures/{lecture_id}/{quiz_id}", response_model=QuizResultOut)
async def quiz_result(
    course_id: str, lecture_id: str, quiz_id: str, principal: CurrentUser
) -> QuizResultOut:
    summary = await quiz_grading_service.get_quiz_result(
        principal.user_id, course_id, lecture_id, quiz_id
    )
    return QuizResultOut.from_model(summary)


@router.get("/{course_id}", response_model=list[QuizResultOut])
async def course_quiz_results(course_id: str, principal: CurrentUser) -> list[QuizResultOut]:
    summaries = await quiz_grading_service.get_quiz_results(principal.user_id, course_id)
    return [QuizResultOut.from_model(s) for s in summaries]
