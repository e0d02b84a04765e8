"""PostgreSQL implementation of ProgressRepo.

Every advance-only write is a single INSERT ... ON CONFLICT DO UPDATE ...
WHERE statement, so concurrent submissions for the same item or video can
only ever move the stored value forward.  The course summary is recomputed
in the same transaction as the item write that changed it.
"""

from __future__ import annotations

import datetime
from collections.abc import Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from online_courses.db.engine import transaction
from online_courses.db.tables import (
    AccessLogRow,
    CourseElementRow,
    CourseEnrollmentRow,
    CourseProgressRow,
    CourseRow,
    FileDownloadRow,
    ItemProgressRow,
    MediaItemRow,
    VideoWatchStatusRow,
)
from online_courses.models.course import ELEMENT_TYPES
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
    summarize_course,
    watched_fraction,
)
from online_courses.repos.progress_repo import fold_intervals, summary_course_id


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # --- writes ---

    async def upsert_item_progress(
        self,
        user_id: str,
        item_id: str,
        item_type: str,
        percentage: int,
        overwrite: bool = False,
    ) -> bool:
        async with transaction(self._session_factory, "upsert_item_progress") as session:
            return await _upsert_item(
                session, user_id, item_id, item_type, percentage, overwrite, _now()
            )

    async def mark_quiz_progress(
        self, user_id: str, quiz_item_id: str, percentage: int
    ) -> bool:
        now = _now()
        async with transaction(self._session_factory, "mark_quiz_progress") as session:
            element = await session.get(CourseElementRow, quiz_item_id)
            if element is None or element.item_type not in ("quiz", "final-quiz"):
                return False
            final = element.item_type == "final-quiz"
            value = percentage if final else 100

            stmt = pg_insert(ItemProgressRow).values(
                user_id=user_id,
                item_id=quiz_item_id,
                item_type=element.item_type,
                progress_percentage=value,
                last_activity_at=now,
                completed=is_item_completed(element.item_type, value),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[ItemProgressRow.user_id, ItemProgressRow.item_id],
                set_={
                    "progress_percentage": stmt.excluded.progress_percentage,
                    "last_activity_at": stmt.excluded.last_activity_at,
                    "completed": stmt.excluded.completed,
                },
                # Best score wins for final quizzes; any attempt completes a quiz.
                where=(
                    stmt.excluded.progress_percentage > ItemProgressRow.progress_percentage
                )
                if final
                else None,
            ).returning(ItemProgressRow.item_id)

            written = (await session.execute(stmt)).first() is not None
            if written:
                await _refresh_summary(session, user_id, element.course_id, now)
            return written

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
        async with transaction(self._session_factory, "record_video_progress") as session:
            return await _advance_video(
                session,
                user_id,
                course_id,
                video_id,
                lecture_id,
                lecture_type,
                position,
                event_time,
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
        async with transaction(
            self._session_factory, "record_bulk_video_progress"
        ) as session:
            return await _advance_video(
                session,
                user_id,
                course_id,
                video_id,
                lecture_id,
                lecture_type,
                position,
                event_time,
            )

    async def record_access(
        self, user_id: str, course_id: str, lecture_id: str | None = None
    ) -> None:
        async with transaction(self._session_factory, "record_access") as session:
            session.add(
                AccessLogRow(
                    user_id=user_id,
                    course_id=course_id,
                    lecture_id=lecture_id,
                    access_date=_now(),
                )
            )

    async def record_file_download(
        self,
        user_id: str,
        course_id: str,
        lecture_id: str | None,
        file_type: str,
        url: str,
    ) -> None:
        async with transaction(self._session_factory, "record_file_download") as session:
            session.add(
                FileDownloadRow(
                    user_id=user_id,
                    course_id=course_id,
                    lecture_id=lecture_id,
                    file_type=file_type,
                    url=url,
                    download_date=_now(),
                )
            )

    # --- reads ---

    async def get_item_progress(self, user_id: str, item_id: str) -> ItemProgress | None:
        async with transaction(self._session_factory, "get_item_progress") as session:
            row = await session.get(ItemProgressRow, (user_id, item_id))
            return _row_to_item(row) if row is not None else None

    async def get_video_status(self, user_id: str, video_id: str) -> VideoWatchStatus | None:
        async with transaction(self._session_factory, "get_video_status") as session:
            row = await session.get(VideoWatchStatusRow, (user_id, video_id.lower()))
            return _row_to_video(row) if row is not None else None

    async def get_course_summary(self, user_id: str, course_id: str) -> CourseSummary | None:
        async with transaction(self._session_factory, "get_course_summary") as session:
            row = await session.get(CourseProgressRow, (user_id, course_id))
            if row is None:
                return None
            return CourseSummary(
                user_id=row.user_id,
                course_id=row.course_id,
                progress_percentage=row.progress_percentage,
                completed=row.completed,
                complete_date=row.complete_date,
                last_activity_at=row.last_activity_at,
            )

    async def list_course_summaries(
        self, user_id: str, course_id: str | None = None
    ) -> list[CourseSummaryView]:
        stmt = (
            select(
                CourseRow.id,
                CourseRow.name,
                CourseRow.instruction_hours,
                CourseProgressRow.progress_percentage,
                CourseProgressRow.completed,
                CourseProgressRow.complete_date,
                CourseProgressRow.last_activity_at,
            )
            .select_from(CourseEnrollmentRow)
            .join(CourseRow, CourseRow.id == CourseEnrollmentRow.course_id)
            .outerjoin(
                CourseProgressRow,
                and_(
                    CourseProgressRow.user_id == CourseEnrollmentRow.user_id,
                    CourseProgressRow.course_id == CourseEnrollmentRow.course_id,
                ),
            )
            .where(
                CourseEnrollmentRow.user_id == user_id,
                CourseEnrollmentRow.withdrawal_date.is_(None),
                CourseRow.deactivated.is_(False),
            )
            .order_by(CourseEnrollmentRow.enrollment_date)
        )
        if course_id is not None:
            stmt = stmt.where(CourseEnrollmentRow.course_id == course_id)

        async with transaction(self._session_factory, "list_course_summaries") as session:
            rows = (await session.execute(stmt)).all()
            return [
                CourseSummaryView(
                    course_id=r[0],
                    name=r[1],
                    instruction_hours=r[2],
                    progress_percentage=r[3] or 0,
                    completed=bool(r[4]),
                    complete_date=r[5],
                    last_activity_at=r[6],
                )
                for r in rows
            ]

    async def list_item_progress(
        self, user_id: str, course_ids: Sequence[str]
    ) -> list[ItemProgressView]:
        if not course_ids:
            return []
        # The enrollment join is what can repeat an element; the ledger keeps
        # the first row per item.
        stmt = (
            select(CourseElementRow, ItemProgressRow)
            .join(
                CourseEnrollmentRow,
                and_(
                    CourseEnrollmentRow.course_id == CourseElementRow.course_id,
                    CourseEnrollmentRow.user_id == user_id,
                    CourseEnrollmentRow.withdrawal_date.is_(None),
                ),
            )
            .outerjoin(
                ItemProgressRow,
                and_(
                    ItemProgressRow.user_id == user_id,
                    ItemProgressRow.item_id == CourseElementRow.item_id,
                ),
            )
            .where(
                CourseElementRow.course_id.in_(list(course_ids)),
                CourseElementRow.deactivated.is_(False),
                CourseElementRow.item_type.in_(ELEMENT_TYPES),
            )
            .order_by(CourseElementRow.course_id, CourseElementRow.sequence)
        )
        async with transaction(self._session_factory, "list_item_progress") as session:
            rows = (await session.execute(stmt)).all()
            return [
                ItemProgressView(
                    course_id=element.course_id,
                    item_id=element.item_id,
                    item_type=element.item_type,
                    name=element.name,
                    sequence=element.sequence,
                    lecture_id=element.lecture_id,
                    progress_percentage=item.progress_percentage if item else None,
                    last_activity_at=item.last_activity_at if item else None,
                    completed=item.completed if item else False,
                )
                for element, item in rows
            ]

    async def list_video_statuses(
        self, user_id: str, course_ids: Sequence[str]
    ) -> list[VideoWatchStatus]:
        if not course_ids:
            return []
        stmt = select(VideoWatchStatusRow).where(
            VideoWatchStatusRow.user_id == user_id,
            VideoWatchStatusRow.course_id.in_(list(course_ids)),
        )
        async with transaction(self._session_factory, "list_video_statuses") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_video(r) for r in rows]


# ---------------------------------------------------------------------------
# Statement helpers (run inside the caller's transaction)
# ---------------------------------------------------------------------------


async def _upsert_item(
    session: AsyncSession,
    user_id: str,
    item_id: str,
    item_type: str,
    percentage: int,
    overwrite: bool,
    now: int,
) -> bool:
    element = await session.get(CourseElementRow, item_id)
    has_video = element is not None and element.video_id is not None

    stmt = pg_insert(ItemProgressRow).values(
        user_id=user_id,
        item_id=item_id,
        item_type=item_type,
        progress_percentage=percentage,
        last_activity_at=now,
        completed=is_item_completed(item_type, percentage, has_video=has_video),
    )
    advance = stmt.excluded.progress_percentage > ItemProgressRow.progress_percentage
    if overwrite:
        advance = or_(advance, ItemProgressRow.progress_percentage < 100)
    stmt = stmt.on_conflict_do_update(
        index_elements=[ItemProgressRow.user_id, ItemProgressRow.item_id],
        set_={
            "item_type": stmt.excluded.item_type,
            "progress_percentage": stmt.excluded.progress_percentage,
            "last_activity_at": stmt.excluded.last_activity_at,
            "completed": stmt.excluded.completed,
        },
        where=advance,
    ).returning(ItemProgressRow.item_id)

    written = (await session.execute(stmt)).first() is not None
    if written:
        course_id = summary_course_id(item_id, item_type, element)
        if course_id is not None:
            await _refresh_summary(session, user_id, course_id, now)
    return written


async def _advance_video(
    session: AsyncSession,
    user_id: str,
    course_id: str,
    video_id: str,
    lecture_id: str | None,
    lecture_type: str,
    position: int,
    event_time: int,
) -> ProgressResult:
    video_id = video_id.lower()
    duration = await session.scalar(
        select(MediaItemRow.duration_seconds).where(
            func.lower(MediaItemRow.video_id) == video_id
        )
    )
    if duration is None:
        return ProgressErr(f"unknown video or duration for {video_id}")
    if duration <= 0:
        return ProgressErr(f"no duration recorded for video {video_id}")

    stmt = pg_insert(VideoWatchStatusRow).values(
        user_id=user_id,
        video_id=video_id,
        course_id=course_id,
        lecture_id=lecture_id,
        last_position=position,
        last_activity_at=event_time // 1000,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[VideoWatchStatusRow.user_id, VideoWatchStatusRow.video_id],
        set_={
            "last_position": stmt.excluded.last_position,
            "last_activity_at": stmt.excluded.last_activity_at,
            "course_id": stmt.excluded.course_id,
            "lecture_id": func.coalesce(
                stmt.excluded.lecture_id, VideoWatchStatusRow.lecture_id
            ),
        },
        where=stmt.excluded.last_position > VideoWatchStatusRow.last_position,
    )
    await session.execute(stmt)

    stored = await session.scalar(
        select(VideoWatchStatusRow.last_position).where(
            VideoWatchStatusRow.user_id == user_id,
            VideoWatchStatusRow.video_id == video_id,
        )
    )
    fraction = watched_fraction(stored, duration)
    if lecture_type == "lecture" and lecture_id:
        await _upsert_item(
            session, user_id, lecture_id, "lecture", int(fraction * 100), False, _now()
        )
    return ProgressOk(fraction)


async def _refresh_summary(
    session: AsyncSession, user_id: str, course_id: str, now: int
) -> None:
    elements = (
        await session.execute(
            select(
                CourseElementRow.item_id,
                CourseElementRow.item_type,
                CourseElementRow.video_id,
            ).where(
                CourseElementRow.course_id == course_id,
                CourseElementRow.deactivated.is_(False),
                CourseElementRow.item_type.in_(ELEMENT_TYPES),
            )
        )
    ).all()
    item_ids = [e.item_id for e in elements] + [course_id]
    rows = (
        (
            await session.execute(
                select(ItemProgressRow)
                .where(
                    ItemProgressRow.user_id == user_id,
                    ItemProgressRow.item_id.in_(item_ids),
                )
                .execution_options(populate_existing=True)
            )
        )
        .scalars()
        .all()
    )
    previous_row = await session.get(CourseProgressRow, (user_id, course_id))
    previous = (
        CourseSummary(
            user_id=user_id,
            course_id=course_id,
            progress_percentage=previous_row.progress_percentage,
            completed=previous_row.completed,
            complete_date=previous_row.complete_date,
        )
        if previous_row is not None
        else None
    )
    summary = summarize_course(
        user_id,
        course_id,
        [(e.item_id, e.item_type, e.video_id is not None) for e in elements],
        {r.item_id: _row_to_item(r) for r in rows},
        previous=previous,
        now=now,
    )

    stmt = pg_insert(CourseProgressRow).values(
        user_id=user_id,
        course_id=course_id,
        progress_percentage=summary.progress_percentage,
        completed=summary.completed,
        complete_date=summary.complete_date,
        last_activity_at=summary.last_activity_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[CourseProgressRow.user_id, CourseProgressRow.course_id],
        set_={
            "progress_percentage": stmt.excluded.progress_percentage,
            "completed": stmt.excluded.completed,
            "complete_date": stmt.excluded.complete_date,
            "last_activity_at": stmt.excluded.last_activity_at,
        },
    )
    await session.execute(stmt)


def _row_to_item(row: ItemProgressRow) -> ItemProgress:
    return ItemProgress(
        user_id=row.user_id,
        item_id=row.item_id,
        item_type=row.item_type,
        progress_percentage=row.progress_percentage,
        last_activity_at=row.last_activity_at,
        completed=row.completed,
    )


def _row_to_video(row: VideoWatchStatusRow) -> VideoWatchStatus:
    return VideoWatchStatus(
        user_id=row.user_id,
        course_id=row.course_id,
        video_id=row.video_id,
        last_position=row.last_position,
        last_activity_at=row.last_activity_at,
        lecture_id=row.lecture_id,
    )
