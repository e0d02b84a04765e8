"""Progress ledger: records what a learner has opened, watched and passed.

All writes are monotonic.  An item's percentage only moves up (unless an
explicit overwrite is requested for an unfinished item), a video's
stored position only moves forward, and the per-course summary is
recomputed in the same transaction as the item write that changed it.

Video endpoints answer with the fraction watched, or VIDEO_NOT_RECORDED
(-1) when the submission was not stored.  The HTTP layer turns the
sentinel into a 400.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from decimal import Decimal

from online_courses.core.errors import ValidationError
from online_courses.core.metrics import VIDEO_PROGRESS_WRITES
from online_courses.db.gateway import progress_repo
from online_courses.models.course import ITEM_TYPES
from online_courses.models.progress import (
    FINAL_QUIZ_PASSING_PERCENTAGE,
    OPENED_PERCENTAGE,
    ItemProgressView,
    ProgressErr,
    ProgressNode,
    ProgressResult,
    WatchInterval,
    as_fraction,
)
from online_courses.repos.progress_repo import ProgressRepo

logger = logging.getLogger(__name__)

VIDEO_TYPES: tuple[str, ...] = ("lecture", "qa")
FILE_TYPES: tuple[str, ...] = ("Reading", "Study Guide", "Other", "Audio")
VIDEO_NOT_RECORDED = Decimal(-1)
# Largest position the video_watch_status.last_position column (INTEGER) holds.
MAX_VIDEO_POSITION = 2**31 - 1

_VIDEO_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

_TYPE_LABELS = {"lecture": "Lecture", "quiz": "Quiz", "final-quiz": "FinalQuiz"}


def is_valid_video_id(video_id: str) -> bool:
    return bool(_VIDEO_ID_RE.match(video_id))


def _check_video_type(lecture_type: str) -> None:
    if lecture_type not in VIDEO_TYPES:
        raise ValidationError(f"video type must be one of {VIDEO_TYPES} (got {lecture_type!r})")


def _whole_seconds(position: float) -> int:
    if not math.isfinite(position) or not 0 <= position <= MAX_VIDEO_POSITION:
        raise ValidationError(
            f"video position must be between 0 and {MAX_VIDEO_POSITION} (got {position!r})"
        )
    return math.floor(position)


def _item_node(item: ItemProgressView) -> ProgressNode:
    pct = item.progress_percentage or 0
    if item.item_type == "final-quiz":
        completed = pct >= FINAL_QUIZ_PASSING_PERCENTAGE
    elif item.item_type == "quiz":
        completed = pct > 0
    else:
        completed = item.completed
    return ProgressNode(
        item_id=item.item_id,
        item_type=_TYPE_LABELS.get(item.item_type, item.item_type),
        name=item.name,
        progress_percentage=as_fraction(pct),
        started=pct > 0,
        completed=completed,
        last_activity_at=item.last_activity_at,
        lecture_id=item.lecture_id,
    )


class ProgressLedger:
    def __init__(self, progress: ProgressRepo) -> None:
        self._progress = progress

    # --- item progress ---

    async def record_item_progress(
        self,
        user_id: str,
        item_id: str,
        item_type: str,
        percentage: int,
        overwrite: bool = False,
    ) -> bool:
        """Upsert one item's percentage.  Returns False when the write was a no-op."""
        if item_type not in ITEM_TYPES:
            raise ValidationError(f"unknown item type {item_type!r}")
        if not 0 <= percentage <= 100:
            raise ValidationError(f"percentage must be between 0 and 100 (got {percentage})")
        return await self._progress.upsert_item_progress(
            user_id, item_id, item_type, percentage, overwrite
        )

    async def mark_quiz_progress(self, user_id: str, quiz_item_id: str, percentage: int) -> bool:
        written = await self._progress.mark_quiz_progress(user_id, quiz_item_id, percentage)
        if not written:
            logger.debug(
                "Quiz progress unchanged  user=%s quiz=%s pct=%d",
                user_id,
                quiz_item_id,
                percentage,
            )
        return written

    async def mark_course_open(self, user_id: str, course_id: str) -> None:
        await self._progress.record_access(user_id, course_id)
        await self._progress.upsert_item_progress(
            user_id, course_id, "course", OPENED_PERCENTAGE
        )

    async def mark_lecture_open(self, user_id: str, course_id: str, lecture_id: str) -> None:
        await self._progress.record_access(user_id, course_id, lecture_id)
        await self._progress.upsert_item_progress(
            user_id, lecture_id, "lecture", OPENED_PERCENTAGE
        )

    async def record_file_download(
        self,
        user_id: str,
        course_id: str,
        lecture_id: str | None,
        file_type: str,
        url: str,
    ) -> None:
        if file_type not in FILE_TYPES:
            raise ValidationError(f"file type must be one of {FILE_TYPES} (got {file_type!r})")
        if not url:
            raise ValidationError("url is required")
        await self._progress.record_file_download(user_id, course_id, lecture_id, file_type, url)

    # --- video progress ---

    def _outcome(self, result: ProgressResult, user_id: str, video_id: str) -> Decimal:
        if isinstance(result, ProgressErr):
            VIDEO_PROGRESS_WRITES.labels(result="error").inc()
            logger.warning(
                "Video progress not recorded  user=%s video=%s reason=%s",
                user_id,
                video_id,
                result.reason,
            )
            return VIDEO_NOT_RECORDED
        VIDEO_PROGRESS_WRITES.labels(result="ok").inc()
        return result.progress

    def _reject_video_id(self, user_id: str, video_id: str) -> bool:
        if is_valid_video_id(video_id):
            return False
        VIDEO_PROGRESS_WRITES.labels(result="rejected").inc()
        logger.warning("Rejected malformed video id=%r user=%s", video_id, user_id)
        return True

    async def record_video_progress(
        self,
        lecture_type: str,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str | None,
        position: float,
        event_time_ms: int,
    ) -> Decimal:
        _check_video_type(lecture_type)
        if self._reject_video_id(user_id, video_id):
            return VIDEO_NOT_RECORDED
        result = await self._progress.record_video_progress(
            user_id,
            course_id,
            video_id.lower(),
            lecture_id,
            lecture_type,
            _whole_seconds(position),
            event_time_ms,
        )
        return self._outcome(result, user_id, video_id)

    async def record_lecture_video_batch(
        self,
        lecture_type: str,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str,
        intervals: Sequence[WatchInterval],
    ) -> Decimal:
        """Replay a batch through the single-event path, in submission order.

        Returns the running maximum, or the first negative result.
        """
        if not intervals:
            raise ValidationError("watch batch must not be empty")
        best = Decimal(0)
        for interval in intervals:
            progress = await self.record_video_progress(
                lecture_type,
                user_id,
                course_id,
                video_id,
                lecture_id,
                interval.end.position,
                interval.end.time,
            )
            if progress < 0:
                return progress
            best = max(best, progress)
        return best

    async def record_bulk_video_progress(
        self,
        lecture_type: str,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str | None,
        intervals: Sequence[WatchInterval],
    ) -> Decimal:
        _check_video_type(lecture_type)
        if not intervals:
            raise ValidationError("watch batch must not be empty")
        for interval in intervals:
            _whole_seconds(interval.end.position)
        if self._reject_video_id(user_id, video_id):
            return VIDEO_NOT_RECORDED
        result = await self._progress.record_bulk_video_progress(
            user_id, course_id, video_id.lower(), lecture_id, lecture_type, intervals
        )
        return self._outcome(result, user_id, video_id)

    # --- reads ---

    async def get_course_progress(
        self,
        user_id: str,
        course_id: str | None = None,
        include_video_detail: bool = False,
    ) -> list[ProgressNode]:
        summaries = await self._progress.list_course_summaries(user_id, course_id)
        course_ids = [s.course_id for s in summaries]
        items = await self._progress.list_item_progress(user_id, course_ids)
        videos = (
            await self._progress.list_video_statuses(user_id, course_ids)
            if include_video_detail
            else []
        )

        nodes: list[ProgressNode] = []
        for summary in summaries:
            node = ProgressNode(
                item_id=summary.course_id,
                item_type="Course",
                name=summary.name,
                progress_percentage=as_fraction(summary.progress_percentage),
                started=summary.progress_percentage > 0,
                completed=summary.completed,
                last_activity_at=summary.last_activity_at,
                complete_date=summary.complete_date,
                instruction_hours=summary.instruction_hours,
            )
            seen: set[str] = set()
            for item in items:
                if item.course_id != summary.course_id or item.item_id in seen:
                    continue
                seen.add(item.item_id)
                node.children.append(_item_node(item))
            if include_video_detail:
                node.video_statuses = [v for v in videos if v.course_id == summary.course_id]
            nodes.append(node)
        return nodes

    async def is_course_complete(self, user_id: str, course_id: str) -> bool:
        summary = await self._progress.get_course_summary(user_id, course_id)
        return summary is not None and summary.completed


progress_ledger = ProgressLedger(progress_repo)
