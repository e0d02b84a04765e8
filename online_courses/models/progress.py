"""Progress records and the rules that keep them monotonic.

The write rules live here as plain functions so the in-memory and
PostgreSQL repositories apply exactly the same logic:

  next_item_percentage()  : take-the-max upsert rule with explicit overwrite
  is_item_completed()     : per-type completion thresholds
  summarize_course()      : course summary derived from element progress
  watched_fraction()      : furthest position over video duration
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal

FINAL_QUIZ_PASSING_PERCENTAGE = 80
# A video lecture counts as watched before the credits roll.
VIDEO_LECTURE_COMPLETION_PERCENTAGE = 90

OPENED_PERCENTAGE = 1
_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class ItemProgress:
    user_id: str
    item_id: str
    item_type: str  # course|lecture|quiz|final-quiz
    progress_percentage: int
    last_activity_at: int
    completed: bool = False


@dataclass(frozen=True, slots=True)
class CourseSummary:
    """Pre-aggregated course-level progress, rewritten on every item write."""

    user_id: str
    course_id: str
    progress_percentage: int = 0
    completed: bool = False
    complete_date: int | None = None
    last_activity_at: int | None = None


@dataclass(frozen=True, slots=True)
class VideoWatchStatus:
    user_id: str
    course_id: str
    video_id: str
    last_position: int  # whole seconds
    last_activity_at: int
    lecture_id: str | None = None


@dataclass(frozen=True, slots=True)
class WatchPoint:
    position: float  # seconds into the video
    time: int  # epoch milliseconds on the client


@dataclass(frozen=True, slots=True)
class WatchInterval:
    start: WatchPoint
    end: WatchPoint


# ---------------------------------------------------------------------------
# Store results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProgressOk:
    progress: Decimal


@dataclass(frozen=True, slots=True)
class ProgressErr:
    reason: str


ProgressResult = ProgressOk | ProgressErr


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CourseSummaryView:
    """An enrolled course joined with its summary row (zeros when absent)."""

    course_id: str
    name: str
    instruction_hours: Decimal
    progress_percentage: int = 0
    completed: bool = False
    complete_date: int | None = None
    last_activity_at: int | None = None


@dataclass(frozen=True, slots=True)
class ItemProgressView:
    """A course element joined with the user's progress on it, if any."""

    course_id: str
    item_id: str
    item_type: str
    name: str
    sequence: int = 0
    lecture_id: str | None = None
    progress_percentage: int | None = None
    last_activity_at: int | None = None
    completed: bool = False


@dataclass(slots=True)
class ProgressNode:
    item_id: str
    item_type: str  # Course|Lecture|Quiz|FinalQuiz
    name: str
    progress_percentage: Decimal
    started: bool
    completed: bool
    last_activity_at: int | None = None
    complete_date: int | None = None
    instruction_hours: Decimal | None = None
    lecture_id: str | None = None
    children: list[ProgressNode] = field(default_factory=list)
    video_statuses: list[VideoWatchStatus] | None = None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def next_item_percentage(current: int | None, new: int, overwrite: bool) -> int | None:
    """Return the percentage to store, or None when the write must be skipped.

    A missing row always takes the new value.  An existing row only moves
    forward, unless overwrite is requested and the item is not yet at 100.
    """
    if current is None:
        return new
    if new > current:
        return new
    if overwrite and current < 100:
        return new
    return None


def is_item_completed(item_type: str, percentage: int, *, has_video: bool = False) -> bool:
    if item_type == "final-quiz":
        return percentage >= FINAL_QUIZ_PASSING_PERCENTAGE
    if item_type == "lecture" and has_video:
        return percentage >= VIDEO_LECTURE_COMPLETION_PERCENTAGE
    return percentage > 0


def as_fraction(percentage: int) -> Decimal:
    return (Decimal(percentage) / 100).quantize(_TWO_PLACES, rounding=ROUND_DOWN)


def watched_fraction(position: int, duration: int) -> Decimal:
    if position >= duration:
        return Decimal("1.00")
    return (Decimal(position) / Decimal(duration)).quantize(
        _TWO_PLACES, rounding=ROUND_DOWN
    )


def summarize_course(
    user_id: str,
    course_id: str,
    elements: Iterable[tuple[str, str, bool]],
    progress: Mapping[str, ItemProgress],
    *,
    previous: CourseSummary | None,
    now: int,
) -> CourseSummary:
    """Recompute a course summary.

    elements are (item_id, item_type, has_video) for every active element of
    the course; progress maps item ids (including the course id itself, for
    the "opened" marker) to the user's rows.
    """
    elements = list(elements)
    total = 0
    all_completed = bool(elements)
    for item_id, item_type, has_video in elements:
        row = progress.get(item_id)
        pct = row.progress_percentage if row is not None else 0
        total += min(pct, 100)
        if not is_item_completed(item_type, pct, has_video=has_video):
            all_completed = False

    element_pct = total // len(elements) if elements else 0
    opened = progress.get(course_id)
    opened_pct = opened.progress_percentage if opened is not None else 0
    percentage = max(element_pct, min(opened_pct, 100))

    complete_date = previous.complete_date if previous is not None else None
    if all_completed and complete_date is None:
        complete_date = now

    return CourseSummary(
        user_id=user_id,
        course_id=course_id,
        progress_percentage=percentage,
        completed=all_completed,
        complete_date=complete_date if all_completed else None,
        last_activity_at=now,
    )
