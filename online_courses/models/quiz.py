from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class QuizDefinition:
    """Answer key fetched from the content API.

    questions maps question id -> codename of the correct option (None when
    the content item has no answer set, which grades as incorrect).
    """

    id: str
    questions: dict[str, str | None] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AnswerResult:
    question_id: str
    correct: bool
    selected_option: str


@dataclass(frozen=True, slots=True)
class GradedQuiz:
    score: int
    num_questions: int
    percentage_correct: Decimal
    results: tuple[AnswerResult, ...] = ()

    def results_json(self) -> str:
        return json.dumps(
            [
                {"Id": r.question_id, "Correct": r.correct, "SelectedOption": r.selected_option}
                for r in self.results
            ]
        )


@dataclass(frozen=True, slots=True)
class QuizResult:
    """One grading attempt.  Rows are only ever appended."""

    id: int
    user_id: str
    course_id: str
    lecture_id: str
    quiz_id: str
    score: int
    num_questions: int
    percentage_correct: Decimal
    complete_time: int
    results_json: str = "[]"
    start_time: int | None = None


@dataclass(frozen=True, slots=True)
class QuizResultSummary:
    """Latest attempt at a quiz together with the learner's best score."""

    latest: QuizResult
    best_percentage_correct: Decimal
