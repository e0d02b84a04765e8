"""PostgreSQL implementation of EnrollmentRepo.

Each operation is one transaction.  The user's active rows for the course
are locked with SELECT ... FOR UPDATE before deciding what to insert, and
the partial unique indexes on course_enrollments / sub_enrollments reject
a second active row if two requests still race past the lock.  A losing
duplicate enroll rolls back to a savepoint and returns the winner's row.
"""

from __future__ import annotations

import datetime
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from online_courses.core.errors import NotFoundError
from online_courses.db.engine import transaction
from online_courses.db.tables import (
    CourseEnrollmentRow,
    CourseInquiryRow,
    SubEnrollmentRow,
)
from online_courses.models.enrollment import CourseInquiry, Enrollment

logger = logging.getLogger(__name__)


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record_enrollment(
        self,
        user_id: str,
        course_id: str,
        enrolled: bool,
        withdrawal_reason: int | None = None,
        early_access: bool = False,
        analytics_json: str | None = None,
        date_override: int | None = None,
    ) -> Enrollment:
        now = date_override if date_override is not None else _now()
        async with transaction(self._session_factory, "record_enrollment") as session:
            row = await _record_enrollment(
                session,
                user_id,
                course_id,
                enrolled,
                withdrawal_reason,
                early_access,
                analytics_json,
                now,
            )
            group = await _active_group(session, row)
            return _row_to_enrollment(row, group)

    async def record_sub_enrollment(
        self,
        user_id: str,
        course_id: str,
        study_group_id: str,
        enrolled: bool,
        withdrawal_reason: int | None = None,
        early_access: bool = False,
        analytics_json: str | None = None,
    ) -> Enrollment:
        now = _now()
        async with transaction(self._session_factory, "record_sub_enrollment") as session:
            if enrolled:
                course_row = await _record_enrollment(
                    session, user_id, course_id, True, None, early_access, analytics_json, now
                )
                current = await _lock_active_sub(session, course_row.id)
                if current is None or current.study_group_id != study_group_id:
                    if current is not None:
                        current.end_date = now
                        await session.flush()
                    session.add(
                        SubEnrollmentRow(
                            course_enrollment_id=course_row.id,
                            study_group_id=study_group_id,
                            start_date=now,
                            analytics_json=analytics_json,
                        )
                    )
                    await session.flush()
                return _row_to_enrollment(course_row, study_group_id)

            active = await _lock_active(session, user_id, course_id)
            if active is None:
                latest = await _latest(session, user_id, course_id)
                if latest is None:
                    raise NotFoundError(f"no enrollment for course {course_id}")
                return _row_to_enrollment(latest, None)
            current = await _lock_active_sub(session, active.id)
            if current is not None and current.study_group_id == study_group_id:
                current.end_date = now
                current.withdrawal_reason_id = withdrawal_reason
                await session.flush()
                return _row_to_enrollment(active, None)
            return _row_to_enrollment(
                active, current.study_group_id if current is not None else None
            )

    async def record_inquiry(
        self,
        email: str,
        course_id: str,
        early_access: bool = False,
        study_group_id: str | None = None,
        analytics_json: str | None = None,
    ) -> CourseInquiry:
        row = CourseInquiryRow(
            email=email,
            course_id=course_id,
            inquiry_date=_now(),
            early_access=early_access,
            study_group_id=study_group_id,
            analytics_json=analytics_json,
        )
        async with transaction(self._session_factory, "record_inquiry") as session:
            session.add(row)
            await session.flush()
            return CourseInquiry(
                id=row.id,
                email=row.email,
                course_id=row.course_id,
                inquiry_date=row.inquiry_date,
                early_access=row.early_access,
                study_group_id=row.study_group_id,
                analytics_json=row.analytics_json,
            )

    async def list_active(self, user_id: str) -> list[Enrollment]:
        stmt = (
            select(CourseEnrollmentRow, SubEnrollmentRow.study_group_id)
            .outerjoin(
                SubEnrollmentRow,
                (SubEnrollmentRow.course_enrollment_id == CourseEnrollmentRow.id)
                & SubEnrollmentRow.end_date.is_(None),
            )
            .where(
                CourseEnrollmentRow.user_id == user_id,
                CourseEnrollmentRow.withdrawal_date.is_(None),
            )
            .order_by(CourseEnrollmentRow.id)
        )
        async with transaction(self._session_factory, "list_active_enrollments") as session:
            rows = (await session.execute(stmt)).all()
            return [_row_to_enrollment(row, group) for row, group in rows]

    async def list_history(self, user_id: str, course_id: str) -> list[Enrollment]:
        stmt = (
            select(CourseEnrollmentRow)
            .where(
                CourseEnrollmentRow.user_id == user_id,
                CourseEnrollmentRow.course_id == course_id,
            )
            .order_by(CourseEnrollmentRow.id)
        )
        async with transaction(self._session_factory, "list_enrollment_history") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_enrollment(r, None) for r in rows]

    async def set_early_access(self, user_id: str, course_id: str) -> bool:
        stmt = (
            update(CourseEnrollmentRow)
            .where(
                CourseEnrollmentRow.user_id == user_id,
                CourseEnrollmentRow.course_id == course_id,
                CourseEnrollmentRow.withdrawal_date.is_(None),
            )
            .values(early_access=True)
        )
        async with transaction(self._session_factory, "set_early_access") as session:
            result = await session.execute(stmt)
            return result.rowcount > 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# Statement helpers (run inside the caller's transaction)
# ---------------------------------------------------------------------------


async def _lock_active(
    session: AsyncSession, user_id: str, course_id: str
) -> CourseEnrollmentRow | None:
    stmt = (
        select(CourseEnrollmentRow)
        .where(
            CourseEnrollmentRow.user_id == user_id,
            CourseEnrollmentRow.course_id == course_id,
            CourseEnrollmentRow.withdrawal_date.is_(None),
        )
        .with_for_update()
    )
    return (await session.execute(stmt)).scalars().first()


async def _lock_active_sub(
    session: AsyncSession, course_enrollment_id: int
) -> SubEnrollmentRow | None:
    stmt = (
        select(SubEnrollmentRow)
        .where(
            SubEnrollmentRow.course_enrollment_id == course_enrollment_id,
            SubEnrollmentRow.end_date.is_(None),
        )
        .with_for_update()
    )
    return (await session.execute(stmt)).scalars().first()


async def _latest(
    session: AsyncSession, user_id: str, course_id: str
) -> CourseEnrollmentRow | None:
    stmt = (
        select(CourseEnrollmentRow)
        .where(
            CourseEnrollmentRow.user_id == user_id,
            CourseEnrollmentRow.course_id == course_id,
        )
        .order_by(CourseEnrollmentRow.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


async def _active_group(session: AsyncSession, row: CourseEnrollmentRow) -> str | None:
    if row.withdrawal_date is not None:
        return None
    sub = await _lock_active_sub(session, row.id)
    return sub.study_group_id if sub is not None else None


async def _record_enrollment(
    session: AsyncSession,
    user_id: str,
    course_id: str,
    enrolled: bool,
    withdrawal_reason: int | None,
    early_access: bool,
    analytics_json: str | None,
    now: int,
) -> CourseEnrollmentRow:
    active = await _lock_active(session, user_id, course_id)

    if enrolled:
        if active is not None:
            return active
        row = CourseEnrollmentRow(
            user_id=user_id,
            course_id=course_id,
            enrollment_date=now,
            early_access=early_access,
            analytics_json=analytics_json,
        )
        try:
            async with session.begin_nested():
                session.add(row)
                await session.flush()
        except IntegrityError:
            # A concurrent enroll committed the active row after our lock saw none.
            winner = await _lock_active(session, user_id, course_id)
            if winner is None:
                raise
            logger.info(
                "Duplicate enroll resolved to active row id=%d user=%s course=%s",
                winner.id,
                user_id,
                course_id,
            )
            return winner
        return row

    if active is None:
        latest = await _latest(session, user_id, course_id)
        if latest is not None:
            return latest
        enrollment_date = now
    else:
        active.withdrawal_date = now
        active.withdrawal_reason_id = withdrawal_reason
        await session.execute(
            update(SubEnrollmentRow)
            .where(
                SubEnrollmentRow.course_enrollment_id == active.id,
                SubEnrollmentRow.end_date.is_(None),
            )
            .values(end_date=now, withdrawal_reason_id=withdrawal_reason)
        )
        await session.flush()
        enrollment_date = active.enrollment_date
        early_access = active.early_access

    row = CourseEnrollmentRow(
        user_id=user_id,
        course_id=course_id,
        enrollment_date=enrollment_date,
        withdrawal_date=now,
        withdrawal_reason_id=withdrawal_reason,
        early_access=early_access,
        analytics_json=analytics_json,
    )
    session.add(row)
    await session.flush()
    return row


def _row_to_enrollment(row: CourseEnrollmentRow, study_group_id: str | None) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        enrollment_date=row.enrollment_date,
        withdrawal_date=row.withdrawal_date,
        withdrawal_reason=row.withdrawal_reason_id,
        early_access=row.early_access,
        analytics_json=row.analytics_json,
        study_group_id=study_group_id,
    )
