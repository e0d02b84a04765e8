"""Enrollment manager.

Every enroll/withdraw is a single repository call that runs in one
transaction, so a learner can never end up with two active enrollments
in a course.  The history is kept: enrolling, withdrawing and enrolling
again leaves three rows, only the last of them active.

Once the write has committed, and outside dev, a CRM sync task is
queued for the worker (see crm_sync.py).  A failing CRM never fails the
enrollment.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import replace

from online_courses.core.config import SETTINGS
from online_courses.core.errors import EnrollmentError, PersistenceError, ValidationError
from online_courses.db.gateway import catalog_repo, enrollment_repo
from online_courses.models.course import WithdrawalReason
from online_courses.models.enrollment import CourseInquiry, Enrollment, UtmInfo
from online_courses.repos.catalog_repo import CatalogRepo
from online_courses.repos.enrollment_repo import EnrollmentRepo
from online_courses.services.crm_sync import CRM_SYNC_ENABLED, CrmContact, enqueue_crm_sync
from online_courses.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)

ENROLL_FAILED = "Unable to enroll in course. Please try again later."
WITHDRAW_FAILED = "Unable to withdraw from course. Please try again later."


class EnrollmentService:
    def __init__(
        self,
        enrollments: EnrollmentRepo,
        catalog: CatalogRepo,
        queue: TaskQueue,
        *,
        early_access_token: str | None,
        crm_enabled: bool,
    ) -> None:
        self._enrollments = enrollments
        self._catalog = catalog
        self._queue = queue
        self._early_access_token = early_access_token
        self._crm_enabled = crm_enabled

    def is_early_access(self, token: str | None) -> bool:
        """Constant-time check of an early-access token from the client."""
        if not token or not self._early_access_token:
            return False
        return secrets.compare_digest(token.encode(), self._early_access_token.encode())

    async def enroll(
        self,
        user_id: str,
        course_id: str,
        enroll: bool,
        withdrawal_reason: int | None = None,
        early_access_token: str | None = None,
        utm: UtmInfo | None = None,
        contact: CrmContact | None = None,
    ) -> Enrollment:
        if not course_id:
            raise ValidationError("course id is required")
        early_access = self.is_early_access(early_access_token)
        try:
            row = await self._enrollments.record_enrollment(
                user_id,
                course_id,
                enroll,
                withdrawal_reason=None if enroll else withdrawal_reason,
                early_access=early_access,
                analytics_json=utm.to_json() if utm is not None else None,
            )
        except PersistenceError:
            logger.exception(
                "Enrollment write failed  user=%s course=%s enroll=%s reason=%s early_access=%s",
                user_id,
                course_id,
                enroll,
                withdrawal_reason,
                early_access,
            )
            raise EnrollmentError(ENROLL_FAILED if enroll else WITHDRAW_FAILED) from None

        logger.info(
            "%s user=%s course=%s enrollment=%d",
            "Enrolled" if enroll else "Withdrew",
            user_id,
            course_id,
            row.id,
        )
        await self._queue_crm_sync(course_id, enroll, contact, utm)
        return row

    async def enroll_in_study_group(
        self,
        user_id: str,
        course_id: str,
        study_group_id: str,
        enroll: bool,
        withdrawal_reason: int | None = None,
        early_access_token: str | None = None,
        utm: UtmInfo | None = None,
        contact: CrmContact | None = None,
    ) -> Enrollment:
        if not study_group_id:
            raise ValidationError("study group id is required")
        early_access = self.is_early_access(early_access_token)
        try:
            row = await self._enrollments.record_sub_enrollment(
                user_id,
                course_id,
                study_group_id,
                enroll,
                withdrawal_reason=None if enroll else withdrawal_reason,
                early_access=early_access,
                analytics_json=utm.to_json() if utm is not None else None,
            )
        except PersistenceError:
            logger.exception(
                "Study group enrollment write failed  user=%s course=%s group=%s enroll=%s",
                user_id,
                course_id,
                study_group_id,
                enroll,
            )
            raise EnrollmentError(ENROLL_FAILED if enroll else WITHDRAW_FAILED) from None

        logger.info(
            "%s user=%s course=%s study_group=%s",
            "Joined" if enroll else "Left",
            user_id,
            course_id,
            study_group_id,
        )
        if enroll:
            await self._queue_crm_sync(course_id, True, contact, utm)
        return row

    async def mark_course_inquiry(
        self,
        email: str,
        course_id: str,
        early_access_token: str | None = None,
        study_group_id: str | None = None,
        utm: UtmInfo | None = None,
    ) -> CourseInquiry:
        email = email.strip().lower()
        if not email:
            logger.warning("Rejected course inquiry with blank email course=%s", course_id)
            raise ValidationError("email must be non-empty")
        inquiry = await self._enrollments.record_inquiry(
            email,
            course_id,
            early_access=self.is_early_access(early_access_token),
            study_group_id=study_group_id,
            analytics_json=utm.to_json() if utm is not None else None,
        )
        logger.info("Recorded inquiry id=%d course=%s", inquiry.id, course_id)
        return inquiry

    async def set_early_access(self, user_id: str, course_id: str, token: str) -> bool:
        if not self.is_early_access(token):
            logger.warning("Rejected early-access token user=%s course=%s", user_id, course_id)
            return False
        return await self._enrollments.set_early_access(user_id, course_id)

    async def get_user_courses(self, user_id: str) -> list[Enrollment]:
        return await self._enrollments.list_active(user_id)

    async def get_withdrawal_reasons(self) -> list[WithdrawalReason]:
        return await self._catalog.list_withdrawal_reasons()

    async def courses_exist(self) -> bool:
        return await self._catalog.courses_exist()

    async def _queue_crm_sync(
        self,
        course_id: str,
        enrolled: bool,
        contact: CrmContact | None,
        utm: UtmInfo | None,
    ) -> None:
        if not self._crm_enabled or contact is None:
            return
        if utm is not None and contact.utm is None:
            contact = replace(contact, utm=utm)
        course = await self._catalog.get_course(course_id)
        await enqueue_crm_sync(
            self._queue,
            "enrollment",
            course.hubspot_key if course is not None else None,
            contact,
            enrolled=enrolled,
        )


enrollment_service = EnrollmentService(
    enrollment_repo,
    catalog_repo,
    task_queue,
    early_access_token=SETTINGS.early_access_token,
    crm_enabled=CRM_SYNC_ENABLED,
)
