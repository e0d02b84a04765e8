from __future__ import annotations

import json
from dataclasses import asdict, dataclass


@dataclass(frozen=True, slots=True)
class UtmInfo:
    """Marketing attribution carried from the landing page to enrollment."""

    utm_source: str | None = None
    utm_medium: str | None = None
    utm_content: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    appeal_code: str | None = None
    sc: str | None = None
    source_partner: str | None = None
    gclid: str | None = None

    def to_json(self) -> str | None:
        """Serialize with null fields dropped; None when nothing is set."""
        fields = {k: v for k, v in asdict(self).items() if v is not None}
        if not fields:
            return None
        return json.dumps(fields)


@dataclass(frozen=True, slots=True)
class Enrollment:
    """One row of a user's enrollment history for a course.

    Active while withdrawal_date is None.  study_group_id is filled from the
    active sub-enrollment when the row is read for display.
    """

    id: int
    user_id: str
    course_id: str
    enrollment_date: int
    withdrawal_date: int | None = None
    withdrawal_reason: int | None = None
    early_access: bool = False
    analytics_json: str | None = None
    study_group_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.withdrawal_date is None


@dataclass(frozen=True, slots=True)
class SubEnrollment:
    """Study-group membership under a course enrollment."""

    id: int
    course_enrollment_id: int
    study_group_id: str
    start_date: int
    end_date: int | None = None
    withdrawal_reason: int | None = None
    analytics_json: str | None = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None


@dataclass(frozen=True, slots=True)
class CourseInquiry:
    id: int
    email: str
    course_id: str
    inquiry_date: int
    early_access: bool = False
    study_group_id: str | None = None
    analytics_json: str | None = None
