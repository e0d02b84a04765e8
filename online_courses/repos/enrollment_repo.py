from __future__ import annotations

import datetime
import itertools
from dataclasses import replace
from typing import Protocol

from online_courses.core.errors import NotFoundError
from online_courses.models.enrollment import CourseInquiry, Enrollment, SubEnrollment


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class EnrollmentRepo(Protocol):
    async def record_enrollment(
        self,
        user_id: str,
        course_id: str,
        enrolled: bool,
        withdrawal_reason: int | None = None,
        early_access: bool = False,
        analytics_json: str | None = None,
        date_override: int | None = None,
    ) -> Enrollment: ...

    async def record_sub_enrollment(
        self,
        user_id: str,
        course_id: str,
        study_group_id: str,
        enrolled: bool,
        withdrawal_reason: int | None = None,
        early_access: bool = False,
        analytics_json: str | None = None,
    ) -> Enrollment: ...

    async def record_inquiry(
        self,
        email: str,
        course_id: str,
        early_access: bool = False,
        study_group_id: str | None = None,
        analytics_json: str | None = None,
    ) -> CourseInquiry: ...

    async def list_active(self, user_id: str) -> list[Enrollment]: ...
    async def list_history(self, user_id: str, course_id: str) -> list[Enrollment]: ...
    async def set_early_access(self, user_id: str, course_id: str) -> bool: ...


class InMemoryEnrollmentRepo:
    """Applies the same history rules as PgEnrollmentRepo, on dicts."""

    def __init__(self) -> None:
        self._rows: dict[int, Enrollment] = {}
        self._subs: dict[int, SubEnrollment] = {}
        self._inquiries: list[CourseInquiry] = []
        self._ids = itertools.count(1)
        self._sub_ids = itertools.count(1)

    def clear(self) -> None:
        self._rows.clear()
        self._subs.clear()
        self._inquiries.clear()

    # --- helpers ---

    def _history(self, user_id: str, course_id: str) -> list[Enrollment]:
        return [
            r
            for r in self._rows.values()
            if r.user_id == user_id and r.course_id == course_id
        ]

    def _active(self, user_id: str, course_id: str) -> Enrollment | None:
        for r in self._history(user_id, course_id):
            if r.is_active:
                return r
        return None

    def _active_sub(self, course_enrollment_id: int) -> SubEnrollment | None:
        for s in self._subs.values():
            if s.course_enrollment_id == course_enrollment_id and s.is_active:
                return s
        return None

    def _with_group(self, row: Enrollment) -> Enrollment:
        sub = self._active_sub(row.id) if row.is_active else None
        return replace(row, study_group_id=sub.study_group_id if sub else None)

    def _close_sub(self, sub: SubEnrollment, now: int, reason: int | None) -> None:
        self._subs[sub.id] = replace(sub, end_date=now, withdrawal_reason=reason)

    # --- EnrollmentRepo ---

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
        active = self._active(user_id, course_id)

        if enrolled:
            if active is not None:
                return self._with_group(active)
            row = Enrollment(
                id=next(self._ids),
                user_id=user_id,
                course_id=course_id,
                enrollment_date=now,
                early_access=early_access,
                analytics_json=analytics_json,
            )
            self._rows[row.id] = row
            return row

        if active is None:
            history = self._history(user_id, course_id)
            if history:
                return history[-1]
            enrollment_date = now
        else:
            self._rows[active.id] = replace(
                active, withdrawal_date=now, withdrawal_reason=withdrawal_reason
            )
            sub = self._active_sub(active.id)
            if sub is not None:
                self._close_sub(sub, now, withdrawal_reason)
            enrollment_date = active.enrollment_date
            early_access = active.early_access

        row = Enrollment(
            id=next(self._ids),
            user_id=user_id,
            course_id=course_id,
            enrollment_date=enrollment_date,
            withdrawal_date=now,
            withdrawal_reason=withdrawal_reason,
            early_access=early_access,
            analytics_json=analytics_json,
        )
        self._rows[row.id] = row
        return row

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
        if enrolled:
            course_row = await self.record_enrollment(
                user_id, course_id, True, None, early_access, analytics_json, now
            )
            current = self._active_sub(course_row.id)
            if current is not None and current.study_group_id == study_group_id:
                return self._with_group(course_row)
            if current is not None:
                self._close_sub(current, now, None)
            sub = SubEnrollment(
                id=next(self._sub_ids),
                course_enrollment_id=course_row.id,
                study_group_id=study_group_id,
                start_date=now,
                analytics_json=analytics_json,
            )
            self._subs[sub.id] = sub
            return self._with_group(course_row)

        active = self._active(user_id, course_id)
        if active is None:
            history = self._history(user_id, course_id)
            if not history:
                raise NotFoundError(f"no enrollment for course {course_id}")
            return history[-1]
        current = self._active_sub(active.id)
        if current is not None and current.study_group_id == study_group_id:
            self._close_sub(current, now, withdrawal_reason)
        return self._with_group(active)

    async def record_inquiry(
        self,
        email: str,
        course_id: str,
        early_access: bool = False,
        study_group_id: str | None = None,
        analytics_json: str | None = None,
    ) -> CourseInquiry:
        inquiry = CourseInquiry(
            id=len(self._inquiries) + 1,
            email=email,
            course_id=course_id,
            inquiry_date=_now(),
            early_access=early_access,
            study_group_id=study_group_id,
            analytics_json=analytics_json,
        )
        self._inquiries.append(inquiry)
        return inquiry

    async def list_active(self, user_id: str) -> list[Enrollment]:
        return [
            self._with_group(r)
            for r in self._rows.values()
            if r.user_id == user_id and r.is_active
        ]

    async def list_history(self, user_id: str, course_id: str) -> list[Enrollment]:
        return self._history(user_id, course_id)

    async def set_early_access(self, user_id: str, course_id: str) -> bool:
        active = self._active(user_id, course_id)
        if active is None:
            return False
        self._rows[active.id] = replace(active, early_access=True)
        return True
