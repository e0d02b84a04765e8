from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Protocol

from online_courses.models.course import CourseElement
from online_courses.models.progress import (
    CourseSummary,
    CourseSummaryView,
    ItemProgress,
    ItemProgressView,
    ProgressErr,
    ProgressOk,
    ProgressResult,
    VideoWatchStatus,
    WatchInterval,
    is_item_completed,
    next_item_percentage,
    summarize_course,
    watched_fraction,
)
from online_courses.repos.catalog_repo import InMemoryCatalogRepo
from online_courses.repos.enrollment_repo import InMemoryEnrollmentRepo


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


def summary_course_id(
    item_id: str, item_type: str, element: CourseElement | None
) -> str | None:
    """Course whose summary an item write affects (None for unknown items)."""
    if item_type == "course":
        return item_id
    return element.course_id if element is not None else None


def fold_intervals(intervals: Sequence[WatchInterval]) -> tuple[int, int]:
    """Furthest end position (whole seconds) and latest end time of a batch."""
    position = max(int(i.end.position) for i in intervals)
    event_time = max(i.end.time for i in intervals)
    return position, event_time


class ProgressRepo(Protocol):
    async def upsert_item_progress(
        self,
        user_id: str,
        item_id: str,
        item_type: str,
        percentage: int,
        overwrite: bool = False,
    ) -> bool: ...

    async def mark_quiz_progress(
        self, user_id: str, quiz_item_id: str, percentage: int
    ) -> bool: ...

    async def record_video_progress(
        self,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str | None,
        lecture_type: str,
        position: int,
        event_time: int,
    ) -> ProgressResult: ...

    async def record_bulk_video_progress(
        self,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str | None,
        lecture_type: str,
        intervals: Sequence[WatchInterval],
    ) -> ProgressResult: ...

    async def get_item_progress(self, user_id: str, item_id: str) -> ItemProgress | None: ...
    async def get_video_status(self, user_id: str, video_id: str) -> VideoWatchStatus | None: ...
    async def get_course_summary(self, user_id: str, course_id: str) -> CourseSummary | None: ...

    async def list_course_summaries(
        self, user_id: str, course_id: str | None = None
    ) -> list[CourseSummaryView]: ...

    async def list_item_progress(
        self, user_id: str, course_ids: Sequence[str]
    ) -> list[ItemProgressView]: ...

    async def list_video_statuses(
        self, user_id: str, course_ids: Sequence[str]
    ) -> list[VideoWatchStatus]: ...

    async def record_access(
        self, user_id: str, course_id: str, lecture_id: str | None = None
    ) -> None: ...

    async def record_file_download(
        self,
        user_id: str,
        course_id: str,
        lecture_id: str | None,
        file_type: str,
        url: str,
    ) -> None: ...


class InMemoryProgressRepo:
    """Dict-backed ProgressRepo reading catalog and enrollments from their
    in-memory repos, the way the SQL joins do in PgProgressRepo."""

    def __init__(
        self, catalog: InMemoryCatalogRepo, enrollments: InMemoryEnrollmentRepo
    ) -> None:
        self._catalog = catalog
        self._enrollments = enrollments
        self._items: dict[tuple[str, str], ItemProgress] = {}
        self._summaries: dict[tuple[str, str], CourseSummary] = {}
        self._videos: dict[tuple[str, str], VideoWatchStatus] = {}
        self.access_log: list[tuple[str, str, str | None, int]] = []
        self.downloads: list[tuple[str, str, str | None, str, str, int]] = []

    def clear(self) -> None:
        self._items.clear()
        self._summaries.clear()
        self._videos.clear()
        self.access_log.clear()
        self.downloads.clear()

    # --- writes ---

    async def _write_item(
        self, user_id: str, item_id: str, item_type: str, percentage: int, now: int
    ) -> None:
        element = await self._catalog.get_element(item_id)
        has_video = element is not None and element.video_id is not None
        self._items[(user_id, item_id)] = ItemProgress(
            user_id=user_id,
            item_id=item_id,
            item_type=item_type,
            progress_percentage=percentage,
            last_activity_at=now,
            completed=is_item_completed(item_type, percentage, has_video=has_video),
        )
        course_id = summary_course_id(item_id, item_type, element)
        if course_id is not None:
            await self._refresh_summary(user_id, course_id, now)

    async def _refresh_summary(self, user_id: str, course_id: str, now: int) -> None:
        elements = await self._catalog.list_elements(course_id)
        progress = {
            item_id: row
            for (uid, item_id), row in self._items.items()
            if uid == user_id
        }
        self._summaries[(user_id, course_id)] = summarize_course(
            user_id,
            course_id,
            [(e.item_id, e.item_type, e.video_id is not None) for e in elements],
            progress,
            previous=self._summaries.get((user_id, course_id)),
            now=now,
        )

    async def upsert_item_progress(
        self,
        user_id: str,
        item_id: str,
        item_type: str,
        percentage: int,
        overwrite: bool = False,
    ) -> bool:
        current = self._items.get((user_id, item_id))
        value = next_item_percentage(
            current.progress_percentage if current is not None else None,
            percentage,
            overwrite,
        )
        if value is None:
            return False
        await self._write_item(user_id, item_id, item_type, value, _now())
        return True

    async def mark_quiz_progress(
        self, user_id: str, quiz_item_id: str, percentage: int
    ) -> bool:
        element = await self._catalog.get_element(quiz_item_id)
        if element is None or element.item_type not in ("quiz", "final-quiz"):
            return False
        if element.item_type == "final-quiz":
            current = self._items.get((user_id, quiz_item_id))
            if current is not None and percentage <= current.progress_percentage:
                return False
            value = percentage
        else:
            value = 100
        await self._write_item(user_id, quiz_item_id, element.item_type, value, _now())
        return True

    async def _advance_video(
        self,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str | None,
        lecture_type: str,
        position: int,
        event_time: int,
    ) -> ProgressResult:
        media = await self._catalog.get_media(video_id)
        if media is None:
            return ProgressErr(f"unknown video {video_id}")
        if not media.duration_seconds:
            return ProgressErr(f"no duration recorded for video {video_id}")

        key = (user_id, video_id.lower())
        current = self._videos.get(key)
        if current is None or position > current.last_position:
            self._videos[key] = VideoWatchStatus(
                user_id=user_id,
                course_id=course_id,
                video_id=video_id.lower(),
                last_position=position,
                last_activity_at=event_time // 1000,
                lecture_id=lecture_id or (current.lecture_id if current else None),
            )
            stored = position
        else:
            stored = current.last_position

        fraction = watched_fraction(stored, media.duration_seconds)
        if lecture_type == "lecture" and lecture_id:
            await self.upsert_item_progress(
                user_id, lecture_id, "lecture", int(fraction * 100)
            )
        return ProgressOk(fraction)

    async def record_video_progress(
        self,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str | None,
        lecture_type: str,
        position: int,
        event_time: int,
    ) -> ProgressResult:
        return await self._advance_video(
            user_id, course_id, video_id, lecture_id, lecture_type, position, event_time
        )

    async def record_bulk_video_progress(
        self,
        user_id: str,
        course_id: str,
        video_id: str,
        lecture_id: str | None,
        lecture_type: str,
        intervals: Sequence[WatchInterval],
    ) -> ProgressResult:
        if not intervals:
            return ProgressErr("empty watch batch")
        position, event_time = fold_intervals(intervals)
        return await self._advance_video(
            user_id, course_id, video_id, lecture_id, lecture_type, position, event_time
        )

    async def record_access(
        self, user_id: str, course_id: str, lecture_id: str | None = None
    ) -> None:
        self.access_log.append((user_id, course_id, lecture_id, _now()))

    async def record_file_download(
        self,
        user_id: str,
        course_id: str,
        lecture_id: str | None,
        file_type: str,
        url: str,
    ) -> None:
        self.downloads.append((user_id, course_id, lecture_id, file_type, url, _now()))

    # --- reads ---

    async def get_item_progress(self, user_id: str, item_id: str) -> ItemProgress | None:
        return self._items.get((user_id, item_id))

    async def get_video_status(self, user_id: str, video_id: str) -> VideoWatchStatus | None:
        return self._videos.get((user_id, video_id.lower()))

    async def get_course_summary(self, user_id: str, course_id: str) -> CourseSummary | None:
        return self._summaries.get((user_id, course_id))

    async def list_course_summaries(
        self, user_id: str, course_id: str | None = None
    ) -> list[CourseSummaryView]:
        views: list[CourseSummaryView] = []
        for enrollment in await self._enrollments.list_active(user_id):
            if course_id is not None and enrollment.course_id != course_id:
                continue
            course = await self._catalog.get_course(enrollment.course_id)
            if course is None or course.deactivated:
                continue
            summary = self._summaries.get((user_id, course.id))
            views.append(
                CourseSummaryView(
                    course_id=course.id,
                    name=course.name,
                    instruction_hours=course.instruction_hours,
                    progress_percentage=summary.progress_percentage if summary else 0,
                    completed=summary.completed if summary else False,
                    complete_date=summary.complete_date if summary else None,
                    last_activity_at=summary.last_activity_at if summary else None,
                )
            )
        return views

    async def list_item_progress(
        self, user_id: str, course_ids: Sequence[str]
    ) -> list[ItemProgressView]:
        views: list[ItemProgressView] = []
        for course_id in course_ids:
            for element in await self._catalog.list_elements(course_id):
                row = self._items.get((user_id, element.item_id))
                views.append(
                    ItemProgressView(
                        course_id=course_id,
                        item_id=element.item_id,
                        item_type=element.item_type,
                        name=element.name,
                        sequence=element.sequence,
                        lecture_id=element.lecture_id,
                        progress_percentage=row.progress_percentage if row else None,
                        last_activity_at=row.last_activity_at if row else None,
                        completed=row.completed if row else False,
                    )
                )
        return views

    async def list_video_statuses(
        self, user_id: str, course_ids: Sequence[str]
    ) -> list[VideoWatchStatus]:
        return [
            v
            for (uid, _), v in self._videos.items()
            if uid == user_id and v.course_id in course_ids
        ]
