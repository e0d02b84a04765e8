"""Progress ledger: monotonic item and video progress, course summaries."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest

from online_courses.core.errors import ValidationError
from online_courses.db.gateway import enrollment_repo, progress_repo
from online_courses.models.progress import ItemProgressView, WatchInterval, WatchPoint
from online_courses.services.progress_ledger import (
    MAX_VIDEO_POSITION,
    VIDEO_NOT_RECORDED,
    ProgressLedger,
    is_valid_video_id,
    progress_ledger,
)
from tests.conftest import (
    COURSE_ID,
    FINAL_QUIZ_ID,
    LECTURE_ID,
    QUIZ_ID,
    UNTIMED_VIDEO_ID,
    VIDEO_ID,
)

USER = "learner-1"


def _video(position: float, lecture_type: str = "lecture", video_id: str = VIDEO_ID) -> Decimal:
    return asyncio.run(
        progress_ledger.record_video_progress(
            lecture_type, USER, COURSE_ID, video_id, LECTURE_ID, position, 1_700_000_000_000
        )
    )


def _interval(start: float, end: float, t: int = 1_700_000_000_000) -> WatchInterval:
    return WatchInterval(start=WatchPoint(start, t), end=WatchPoint(end, t + 1000))


def _item_pct(item_id: str) -> int | None:
    row = asyncio.run(progress_repo.get_item_progress(USER, item_id))
    return row.progress_percentage if row is not None else None


def _enroll() -> None:
    asyncio.run(enrollment_repo.record_enrollment(USER, COURSE_ID, True))


# ---- video id validation ----


@pytest.mark.parametrize(
    ("video_id", "valid"),
    [
        (VIDEO_ID, True),
        (VIDEO_ID.upper(), True),
        ("not-a-guid", False),
        ("", False),
        (VIDEO_ID + "0", False),
    ],
)
def test_is_valid_video_id(video_id: str, valid: bool) -> None:
    assert is_valid_video_id(video_id) is valid


# ---- single video events ----


def test_video_progress_is_fraction_of_duration() -> None:
    assert _video(45.2) == Decimal("0.45")


def test_video_progress_is_idempotent() -> None:
    first = _video(45.2)
    second = _video(45.2)
    assert first == second == Decimal("0.45")


def test_video_progress_never_regresses() -> None:
    _video(45.2)
    assert _video(30) == Decimal("0.45")
    status = asyncio.run(progress_repo.get_video_status(USER, VIDEO_ID))
    assert status is not None
    assert status.last_position == 45


def test_video_progress_caps_at_one() -> None:
    assert _video(250) == Decimal("1.00")


def test_uppercase_video_id_is_normalized() -> None:
    _video(20, video_id=VIDEO_ID.upper())
    assert asyncio.run(progress_repo.get_video_status(USER, VIDEO_ID)) is not None


def test_malformed_video_id_is_not_recorded() -> None:
    assert _video(10, video_id="not-a-guid") == VIDEO_NOT_RECORDED


def test_unknown_video_is_not_recorded() -> None:
    assert _video(10, video_id="11111111-2222-3333-4444-555555555555") == VIDEO_NOT_RECORDED


def test_video_without_duration_is_not_recorded() -> None:
    assert _video(10, video_id=UNTIMED_VIDEO_ID) == VIDEO_NOT_RECORDED


def test_negative_position_rejected() -> None:
    with pytest.raises(ValidationError):
        _video(-1)


@pytest.mark.parametrize(
    "position", [float("inf"), float("nan"), float(MAX_VIDEO_POSITION + 1)]
)
def test_out_of_range_position_rejected(position: float) -> None:
    with pytest.raises(ValidationError):
        _video(position)


def test_bulk_rejects_infinite_position() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(
            progress_ledger.record_bulk_video_progress(
                "lecture", USER, COURSE_ID, VIDEO_ID, LECTURE_ID, [_interval(0, float("inf"))]
            )
        )


def test_unknown_video_type_rejected() -> None:
    with pytest.raises(ValidationError):
        _video(10, lecture_type="podcast")


def test_lecture_video_updates_lecture_item() -> None:
    _video(60)
    assert _item_pct(LECTURE_ID) == 60


def test_qa_video_leaves_lecture_item_alone() -> None:
    _video(60, lecture_type="qa")
    assert _item_pct(LECTURE_ID) is None


def test_video_lecture_completes_at_ninety_percent() -> None:
    _video(89)
    assert not asyncio.run(progress_repo.get_item_progress(USER, LECTURE_ID)).completed
    _video(90)
    assert asyncio.run(progress_repo.get_item_progress(USER, LECTURE_ID)).completed


# ---- batches ----


def test_bulk_matches_single_event_at_furthest_point() -> None:
    bulk = asyncio.run(
        progress_ledger.record_bulk_video_progress(
            "lecture",
            USER,
            COURSE_ID,
            VIDEO_ID,
            LECTURE_ID,
            [_interval(0, 30), _interval(30, 60), _interval(10, 20)],
        )
    )
    assert bulk == Decimal("0.60")
    assert bulk == _video(60)


def test_bulk_rejects_empty_batch() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(
            progress_ledger.record_bulk_video_progress(
                "lecture", USER, COURSE_ID, VIDEO_ID, LECTURE_ID, []
            )
        )


def test_bulk_rejects_negative_position() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(
            progress_ledger.record_bulk_video_progress(
                "lecture", USER, COURSE_ID, VIDEO_ID, LECTURE_ID, [_interval(0, -5)]
            )
        )


def test_lecture_batch_returns_running_maximum() -> None:
    result = asyncio.run(
        progress_ledger.record_lecture_video_batch(
            "lecture",
            USER,
            COURSE_ID,
            VIDEO_ID,
            LECTURE_ID,
            [_interval(0, 40), _interval(40, 70), _interval(5, 15)],
        )
    )
    assert result == Decimal("0.70")


def test_lecture_batch_stops_at_first_failure() -> None:
    result = asyncio.run(
        progress_ledger.record_lecture_video_batch(
            "lecture", USER, COURSE_ID, UNTIMED_VIDEO_ID, LECTURE_ID, [_interval(0, 40)]
        )
    )
    assert result == VIDEO_NOT_RECORDED


# ---- item progress ----


def test_item_progress_only_moves_up() -> None:
    assert asyncio.run(progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", 50))
    assert not asyncio.run(progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", 30))
    assert _item_pct(LECTURE_ID) == 50


def test_item_progress_overwrite_below_complete() -> None:
    asyncio.run(progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", 50))
    assert asyncio.run(
        progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", 30, overwrite=True)
    )
    assert _item_pct(LECTURE_ID) == 30


def test_item_progress_overwrite_ignored_once_complete() -> None:
    asyncio.run(progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", 100))
    assert not asyncio.run(
        progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", 30, overwrite=True)
    )
    assert _item_pct(LECTURE_ID) == 100


def test_item_progress_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(progress_ledger.record_item_progress(USER, LECTURE_ID, "chapter", 10))


def test_item_progress_rejects_negative_percentage() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", -1))


def test_item_progress_rejects_percentage_over_100() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(progress_ledger.record_item_progress(USER, LECTURE_ID, "lecture", 150))
    assert _item_pct(LECTURE_ID) is None


def test_regular_quiz_counts_as_done_on_any_attempt() -> None:
    asyncio.run(progress_ledger.mark_quiz_progress(USER, QUIZ_ID, 10))
    assert _item_pct(QUIZ_ID) == 100


@pytest.mark.parametrize(("score", "completed"), [(79, False), (80, True)])
def test_final_quiz_passing_threshold(score: int, completed: bool) -> None:
    asyncio.run(progress_ledger.mark_quiz_progress(USER, FINAL_QUIZ_ID, score))
    row = asyncio.run(progress_repo.get_item_progress(USER, FINAL_QUIZ_ID))
    assert row is not None
    assert row.completed is completed


def test_final_quiz_keeps_best_score() -> None:
    asyncio.run(progress_ledger.mark_quiz_progress(USER, FINAL_QUIZ_ID, 85))
    assert not asyncio.run(progress_ledger.mark_quiz_progress(USER, FINAL_QUIZ_ID, 60))
    assert _item_pct(FINAL_QUIZ_ID) == 85


def test_mark_quiz_progress_ignores_non_quiz_items() -> None:
    assert not asyncio.run(progress_ledger.mark_quiz_progress(USER, LECTURE_ID, 100))


# ---- access and downloads ----


def test_course_open_logs_access_and_marks_started() -> None:
    _enroll()
    asyncio.run(progress_ledger.mark_course_open(USER, COURSE_ID))
    assert progress_repo.access_log[-1][:3] == (USER, COURSE_ID, None)
    (node,) = asyncio.run(progress_ledger.get_course_progress(USER, COURSE_ID))
    assert node.started is True
    assert node.progress_percentage == Decimal("0.01")


def test_lecture_open_marks_lecture_started() -> None:
    asyncio.run(progress_ledger.mark_lecture_open(USER, COURSE_ID, LECTURE_ID))
    assert progress_repo.access_log[-1][:3] == (USER, COURSE_ID, LECTURE_ID)
    assert _item_pct(LECTURE_ID) == 1


def test_file_download_recorded() -> None:
    asyncio.run(
        progress_ledger.record_file_download(
            USER, COURSE_ID, LECTURE_ID, "Study Guide", "https://cdn.example/guide.pdf"
        )
    )
    assert progress_repo.downloads[-1][3:5] == ("Study Guide", "https://cdn.example/guide.pdf")


@pytest.mark.parametrize(("file_type", "url"), [("Video", "https://x"), ("Reading", "")])
def test_file_download_validation(file_type: str, url: str) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(
            progress_ledger.record_file_download(USER, COURSE_ID, None, file_type, url)
        )


# ---- course progress tree ----


def test_course_progress_tree() -> None:
    _enroll()
    _video(60)
    asyncio.run(progress_ledger.mark_quiz_progress(USER, QUIZ_ID, 50))

    (node,) = asyncio.run(progress_ledger.get_course_progress(USER))
    assert node.item_type == "Course"
    assert node.name == "Intro to Testing"
    assert node.instruction_hours == Decimal("2.5")
    assert node.completed is False
    # (60 + 100 + 0) // 3
    assert node.progress_percentage == Decimal("0.53")
    assert [c.item_type for c in node.children] == ["Lecture", "Quiz", "FinalQuiz"]
    lecture, quiz, final = node.children
    assert lecture.progress_percentage == Decimal("0.60")
    assert quiz.completed is True
    assert quiz.lecture_id == LECTURE_ID
    assert final.started is False
    assert node.video_statuses is None


def test_course_progress_includes_video_detail_on_request() -> None:
    _enroll()
    _video(42)
    (node,) = asyncio.run(
        progress_ledger.get_course_progress(USER, COURSE_ID, include_video_detail=True)
    )
    assert node.video_statuses is not None
    (status,) = node.video_statuses
    assert status.video_id == VIDEO_ID
    assert status.last_position == 42


def test_course_progress_only_lists_enrolled_courses() -> None:
    _video(42)
    assert asyncio.run(progress_ledger.get_course_progress(USER)) == []


def test_course_completes_when_every_element_is_done() -> None:
    _enroll()
    _video(95)
    asyncio.run(progress_ledger.mark_quiz_progress(USER, QUIZ_ID, 40))
    assert not asyncio.run(progress_ledger.is_course_complete(USER, COURSE_ID))

    asyncio.run(progress_ledger.mark_quiz_progress(USER, FINAL_QUIZ_ID, 80))
    assert asyncio.run(progress_ledger.is_course_complete(USER, COURSE_ID))
    (node,) = asyncio.run(progress_ledger.get_course_progress(USER, COURSE_ID))
    assert node.completed is True
    assert node.complete_date is not None


class _DuplicatingRepo:
    """Returns every item row twice, as a fan-out join would.

    The second copy carries a different percentage so the test can tell
    which one survived.
    """

    def __init__(self) -> None:
        self._inner = progress_repo

    def __getattr__(self, name: str):
        return getattr(self._inner, name)

    async def list_item_progress(self, user_id: str, course_ids) -> list[ItemProgressView]:
        rows = await self._inner.list_item_progress(user_id, course_ids)
        return rows + [replace(r, progress_percentage=99, completed=True) for r in rows]


def test_course_progress_children_are_deduplicated() -> None:
    _enroll()
    _video(60)
    ledger = ProgressLedger(_DuplicatingRepo())  # type: ignore[arg-type]
    (node,) = asyncio.run(ledger.get_course_progress(USER, COURSE_ID))
    assert [c.item_id for c in node.children] == [LECTURE_ID, QUIZ_ID, FINAL_QUIZ_ID]
    lecture, quiz, final = node.children
    assert lecture.progress_percentage == Decimal("0.60")
    assert lecture.completed is False
    assert quiz.started is False
    assert final.progress_percentage == Decimal("0.00")
