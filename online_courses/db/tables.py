"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in online_courses/models/.
Repos convert between rows and dataclasses.  Timestamps are epoch seconds.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from online_courses.db.engine import Base

# --- Catalog (read-only for this service) ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hubspot_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    instruction_hours: Mapped[Decimal] = mapped_column(
        Numeric(5, 1), nullable=False, default=Decimal(0)
    )
    deactivated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CourseElementRow(Base):
    __tablename__ = "course_elements"

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("courses.id"), nullable=False, index=True
    )
    item_type: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lecture_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deactivated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class MediaItemRow(Base):
    __tablename__ = "media_items"

    video_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)


class WithdrawalReasonRow(Base):
    __tablename__ = "withdrawal_reasons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    deactivated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# --- Enrollment ---


class CourseEnrollmentRow(Base):
    __tablename__ = "course_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    enrollment_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    withdrawal_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    withdrawal_reason_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("withdrawal_reasons.id"), nullable=True
    )
    early_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    analytics_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_course_enrollments_user_course", "user_id", "course_id"),
        # At most one active enrollment per user and course.
        Index(
            "uq_course_enrollments_active",
            "user_id",
            "course_id",
            unique=True,
            postgresql_where=text("withdrawal_date IS NULL"),
        ),
    )


class SubEnrollmentRow(Base):
    __tablename__ = "sub_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_enrollment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("course_enrollments.id"), nullable=False, index=True
    )
    study_group_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    withdrawal_reason_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    analytics_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index(
            "uq_sub_enrollments_active",
            "course_enrollment_id",
            unique=True,
            postgresql_where=text("end_date IS NULL"),
        ),
    )


class CourseInquiryRow(Base):
    __tablename__ = "course_inquiries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    inquiry_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    early_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    study_group_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    analytics_json: Mapped[str | None] = mapped_column(Text, nullable=True)


# --- Progress ---


class ItemProgressRow(Base):
    __tablename__ = "item_progress"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_type: Mapped[str] = mapped_column(String(16), nullable=False)
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    last_activity_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CourseProgressRow(Base):
    """Pre-aggregated course summary, rewritten with every item write."""

    __tablename__ = "course_progress"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    complete_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_activity_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


class VideoWatchStatusRow(Base):
    __tablename__ = "video_watch_status"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    video_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lecture_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_position: Mapped[int] = mapped_column(Integer, nullable=False)
    last_activity_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class AccessLogRow(Base):
    """Course and lecture opens; lecture_id is NULL for a course open."""

    __tablename__ = "access_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lecture_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    access_date: Mapped[int] = mapped_column(BigInteger, nullable=False)


class FileDownloadRow(Base):
    __tablename__ = "file_downloads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lecture_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    file_type: Mapped[str] = mapped_column(String(32), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    download_date: Mapped[int] = mapped_column(BigInteger, nullable=False)


# --- Quizzes and notes ---


class QuizResultRow(Base):
    __tablename__ = "quiz_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lecture_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quiz_id: Mapped[str] = mapped_column(String(64), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    num_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    percentage_correct: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False)
    start_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    complete_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    results_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    __table_args__ = (Index("ix_quiz_results_user_course", "user_id", "course_id"),)


class NoteRow(Base):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lecture_id: Mapped[str] = mapped_column(String(64), nullable=False)
    encrypted_text: Mapped[str] = mapped_column(Text, nullable=False)
    create_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    update_date: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", "lecture_id", name="uq_notes_lecture"),
    )


# --- Learner settings ---


class UserPreferenceRow(Base):
    __tablename__ = "user_preferences"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    progress_report_frequency: Mapped[str] = mapped_column(String(32), nullable=False)
    email_status: Mapped[str] = mapped_column(String(32), nullable=False)
    prefer_audio_lectures: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data_saver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subject_preference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_update: Mapped[int] = mapped_column(BigInteger, nullable=False)
