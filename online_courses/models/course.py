from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

ItemType = Literal["course", "lecture", "quiz", "final-quiz"]
ITEM_TYPES: tuple[str, ...] = ("course", "lecture", "quiz", "final-quiz")

# Element types that make up a course's progress (the course row itself is
# only an "opened" marker).
ELEMENT_TYPES: tuple[str, ...] = ("lecture", "quiz", "final-quiz")


@dataclass(frozen=True, slots=True)
class Course:
    """Catalog entry.  Loaded by migrations/operators, read-only here."""

    id: str
    name: str
    hubspot_key: str | None = None
    instruction_hours: Decimal = Decimal(0)
    deactivated: bool = False


@dataclass(frozen=True, slots=True)
class CourseElement:
    """A lecture or quiz inside a course.

    Quizzes point at their lecture via lecture_id; lectures may carry the
    video_id of their main video.
    """

    item_id: str
    course_id: str
    item_type: str  # lecture|quiz|final-quiz
    name: str
    sequence: int = 0
    lecture_id: str | None = None
    video_id: str | None = None
    deactivated: bool = False


@dataclass(frozen=True, slots=True)
class MediaItem:
    video_id: str
    duration_seconds: int | None


@dataclass(frozen=True, slots=True)
class WithdrawalReason:
    id: int
    reason: str
