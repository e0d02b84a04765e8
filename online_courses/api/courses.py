"""Course catalog, enrollment and activity endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from online_courses.api.dependencies import CurrentUser, crm_contact
from online_courses.core.errors import PersistenceError
from online_courses.models.enrollment import Enrollment, UtmInfo
from online_courses.services.crm_sync import CrmContact
from online_courses.services.enrollment_service import enrollment_service
from online_courses.services.progress_ledger import progress_ledger

router = APIRouter(prefix="/courses", tags=["courses"])


class UtmIn(BaseModel):
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_content: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    appeal_code: str | None = None
    sc: str | None = None
    source_partner: str | None = None
    gclid: str | None = None

    def to_model(self) -> UtmInfo:
        return UtmInfo(**self.model_dump())


class EnrollmentIn(BaseModel):
    enroll: bool = True
    withdrawal_reason: int | None = None
    early_access_token: str | None = None
    study_group_id: str | None = None
    utm: UtmIn | None = None


class EnrollmentOut(BaseModel):
    id: int
    course_id: str
    enrollment_date: int
    withdrawal_date: int | None = None
    withdrawal_reason: int | None = None
    early_access: bool = False
    study_group_id: str | None = None

    @classmethod
    def from_model(cls, e: Enrollment) -> EnrollmentOut:
        return cls(
            id=e.id,
            course_id=e.course_id,
            enrollment_date=e.enrollment_date,
            withdrawal_date=e.withdrawal_date,
            withdrawal_reason=e.withdrawal_reason,
            early_access=e.early_access,
            study_group_id=e.study_group_id,
        )


class InquiryIn(BaseModel):
    email: str
    early_access_token: str | None = None
    study_group_id: str | None = None
    utm: UtmIn | None = None


class InquiryOut(BaseModel):
    id: int
    course_id: str
    inquiry_date: int
    early_access: bool


class WithdrawalReasonOut(BaseModel):
    id: int
    reason: str


class DownloadIn(BaseModel):
    lecture_id: str | None = None
    file_type: str
    url: str


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@router.get("/health", response_class=PlainTextResponse)
async def courses_health() -> PlainTextResponse:
    """Unauthenticated check: the database is reachable and has courses."""
    try:
        if await enrollment_service.courses_exist():
            return PlainTextResponse("Running")
    except PersistenceError:
        pass  # already logged by the repository
    return PlainTextResponse(
        "Cannot connect to DB or missing courses",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@router.get("/withdrawal-reasons", response_model=list[WithdrawalReasonOut])
async def withdrawal_reasons(_principal: CurrentUser) -> list[WithdrawalReasonOut]:
    reasons = await enrollment_service.get_withdrawal_reasons()
    return [WithdrawalReasonOut(id=r.id, reason=r.reason) for r in reasons]


@router.get("", response_model=list[EnrollmentOut])
async def user_courses(principal: CurrentUser) -> list[EnrollmentOut]:
    rows = await enrollment_service.get_user_courses(principal.user_id)
    return [EnrollmentOut.from_model(r) for r in rows]


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------


@router.put("/{course_id}/enrollment", response_model=EnrollmentOut)
async def enroll(
    course_id: str,
    body: EnrollmentIn,
    principal: CurrentUser,
    contact: Annotated[CrmContact, Depends(crm_contact)],
) -> EnrollmentOut:
    utm = body.utm.to_model() if body.utm is not None else None
    if body.study_group_id is None:
        row = await enrollment_service.enroll(
            principal.user_id,
            course_id,
            body.enroll,
            withdrawal_reason=body.withdrawal_reason,
            early_access_token=body.early_access_token,
            utm=utm,
            contact=contact,
        )
    else:
        row = await enrollment_service.enroll_in_study_group(
            principal.user_id,
            course_id,
            body.study_group_id,
            body.enroll,
            withdrawal_reason=body.withdrawal_reason,
            early_access_token=body.early_access_token,
            utm=utm,
            contact=contact,
        )
    return EnrollmentOut.from_model(row)


@router.post("/{course_id}/inquiry", response_model=InquiryOut)
async def inquire(course_id: str, body: InquiryIn) -> InquiryOut:
    """Anonymous interest in a course, keyed by email."""
    inquiry = await enrollment_service.mark_course_inquiry(
        body.email,
        course_id,
        early_access_token=body.early_access_token,
        study_group_id=body.study_group_id,
        utm=body.utm.to_model() if body.utm is not None else None,
    )
    return InquiryOut(
        id=inquiry.id,
        course_id=inquiry.course_id,
        inquiry_date=inquiry.inquiry_date,
        early_access=inquiry.early_access,
    )


@router.put("/{course_id}/early-access/{token}")
async def early_access(course_id: str, token: str, principal: CurrentUser) -> dict:
    granted = await enrollment_service.set_early_access(principal.user_id, course_id, token)
    return {"early_access": granted}


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


@router.post("/{course_id}/open", status_code=status.HTTP_204_NO_CONTENT)
async def open_course(course_id: str, principal: CurrentUser) -> None:
    await progress_ledger.mark_course_open(principal.user_id, course_id)


@router.post("/{course_id}/lectures/{lecture_id}/open", status_code=status.HTTP_204_NO_CONTENT)
async def open_lecture(course_id: str, lecture_id: str, principal: CurrentUser) -> None:
    await progress_ledger.mark_lecture_open(principal.user_id, course_id, lecture_id)


@router.post("/{course_id}/downloads", status_code=status.HTTP_204_NO_CONTENT)
async def record_download(course_id: str, body: DownloadIn, principal: CurrentUser) -> None:
    await progress_ledger.record_file_download(
        principal.user_id, course_id, body.lecture_id, body.file_type, body.url
    )
