"""PostgreSQL implementation of CatalogRepo."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from online_courses.db.engine import transaction
from online_courses.db.tables import (
    CourseElementRow,
    CourseRow,
    MediaItemRow,
    WithdrawalReasonRow,
)
from online_courses.models.course import (
    ELEMENT_TYPES,
    Course,
    CourseElement,
    MediaItem,
    WithdrawalReason,
)


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_course(self, course_id: str) -> Course | None:
        async with transaction(self._session_factory, "get_course") as session:
            row = await session.get(CourseRow, course_id)
            return _row_to_course(row) if row is not None else None

    async def courses_exist(self) -> bool:
        async with transaction(self._session_factory, "courses_exist") as session:
            return await session.scalar(select(CourseRow.id).limit(1)) is not None

    async def get_element(self, item_id: str) -> CourseElement | None:
        async with transaction(self._session_factory, "get_element") as session:
            row = await session.get(CourseElementRow, item_id)
            return _row_to_element(row) if row is not None else None

    async def list_elements(self, course_id: str) -> list[CourseElement]:
        stmt = (
            select(CourseElementRow)
            .where(
                CourseElementRow.course_id == course_id,
                CourseElementRow.deactivated.is_(False),
                CourseElementRow.item_type.in_(ELEMENT_TYPES),
            )
            .order_by(CourseElementRow.sequence)
        )
        async with transaction(self._session_factory, "list_elements") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_element(r) for r in rows]

    async def get_media(self, video_id: str) -> MediaItem | None:
        stmt = select(MediaItemRow).where(
            func.lower(MediaItemRow.video_id) == video_id.lower()
        )
        async with transaction(self._session_factory, "get_media") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            return MediaItem(video_id=row.video_id, duration_seconds=row.duration_seconds)

    async def list_withdrawal_reasons(self) -> list[WithdrawalReason]:
        stmt = (
            select(WithdrawalReasonRow)
            .where(WithdrawalReasonRow.deactivated.is_(False))
            .order_by(WithdrawalReasonRow.id)
        )
        async with transaction(self._session_factory, "list_withdrawal_reasons") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [WithdrawalReason(id=r.id, reason=r.reason) for r in rows]


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        name=row.name,
        hubspot_key=row.hubspot_key,
        instruction_hours=row.instruction_hours,
        deactivated=row.deactivated,
    )


def _row_to_element(row: CourseElementRow) -> CourseElement:
    return CourseElement(
        item_id=row.item_id,
        course_id=row.course_id,
        item_type=row.item_type,
        name=row.name,
        sequence=row.sequence,
        lecture_id=row.lecture_id,
        video_id=row.video_id,
        deactivated=row.deactivated,
    )
