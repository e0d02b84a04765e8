"""initial schema

Revision ID: 3b9e1c7a52d0
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c7a52d0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- catalog ---
    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("hubspot_key", sa.String(length=128), nullable=True),
        sa.Column("instruction_hours", sa.Numeric(5, 1), nullable=False, server_default="0"),
        sa.Column("deactivated", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_table(
        "course_elements",
        sa.Column("item_id", sa.String(length=64), primary_key=True),
        sa.Column("course_id", sa.String(length=64), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("item_type", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lecture_id", sa.String(length=64), nullable=True),
        sa.Column("video_id", sa.String(length=64), nullable=True),
        sa.Column("deactivated", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_course_elements_course_id", "course_elements", ["course_id"])
    op.create_table(
        "media_items",
        sa.Column("video_id", sa.String(length=64), primary_key=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
    )
    op.create_table(
        "withdrawal_reasons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("deactivated", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    # --- enrollment ---
    op.create_table(
        "course_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("enrollment_date", sa.BigInteger(), nullable=False),
        sa.Column("withdrawal_date", sa.BigInteger(), nullable=True),
        sa.Column(
            "withdrawal_reason_id",
            sa.Integer(),
            sa.ForeignKey("withdrawal_reasons.id"),
            nullable=True,
        ),
        sa.Column("early_access", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("analytics_json", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_course_enrollments_user_course", "course_enrollments", ["user_id", "course_id"]
    )
    op.create_index(
        "uq_course_enrollments_active",
        "course_enrollments",
        ["user_id", "course_id"],
        unique=True,
        postgresql_where=sa.text("withdrawal_date IS NULL"),
    )
    op.create_table(
        "sub_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "course_enrollment_id",
            sa.Integer(),
            sa.ForeignKey("course_enrollments.id"),
            nullable=False,
        ),
        sa.Column("study_group_id", sa.String(length=64), nullable=False),
        sa.Column("start_date", sa.BigInteger(), nullable=False),
        sa.Column("end_date", sa.BigInteger(), nullable=True),
        sa.Column("withdrawal_reason_id", sa.Integer(), nullable=True),
        sa.Column("analytics_json", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_sub_enrollments_course_enrollment_id", "sub_enrollments", ["course_enrollment_id"]
    )
    op.create_index(
        "uq_sub_enrollments_active",
        "sub_enrollments",
        ["course_enrollment_id"],
        unique=True,
        postgresql_where=sa.text("end_date IS NULL"),
    )
    op.create_table(
        "course_inquiries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("inquiry_date", sa.BigInteger(), nullable=False),
        sa.Column("early_access", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("study_group_id", sa.String(length=64), nullable=True),
        sa.Column("analytics_json", sa.Text(), nullable=True),
    )
    op.create_index("ix_course_inquiries_email", "course_inquiries", ["email"])

    # --- progress ---
    op.create_table(
        "item_progress",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("item_id", sa.String(length=64), primary_key=True),
        sa.Column("item_type", sa.String(length=16), nullable=False),
        sa.Column("progress_percentage", sa.Integer(), nullable=False),
        sa.Column("last_activity_at", sa.BigInteger(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_table(
        "course_progress",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("course_id", sa.String(length=64), primary_key=True),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("complete_date", sa.BigInteger(), nullable=True),
        sa.Column("last_activity_at", sa.BigInteger(), nullable=True),
    )
    op.create_table(
        "video_watch_status",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("video_id", sa.String(length=64), primary_key=True),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("lecture_id", sa.String(length=64), nullable=True),
        sa.Column("last_position", sa.Integer(), nullable=False),
        sa.Column("last_activity_at", sa.BigInteger(), nullable=False),
    )
    op.create_table(
        "access_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("lecture_id", sa.String(length=64), nullable=True),
        sa.Column("access_date", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_access_log_user_id", "access_log", ["user_id"])
    op.create_table(
        "file_downloads",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("lecture_id", sa.String(length=64), nullable=True),
        sa.Column("file_type", sa.String(length=32), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("download_date", sa.BigInteger(), nullable=False),
    )
    op.create_index("ix_file_downloads_user_id", "file_downloads", ["user_id"])

    # --- quizzes and notes ---
    op.create_table(
        "quiz_results",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("lecture_id", sa.String(length=64), nullable=False),
        sa.Column("quiz_id", sa.String(length=64), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("num_questions", sa.Integer(), nullable=False),
        sa.Column("percentage_correct", sa.Numeric(3, 2), nullable=False),
        sa.Column("start_time", sa.BigInteger(), nullable=True),
        sa.Column("complete_time", sa.BigInteger(), nullable=False),
        sa.Column("results_json", sa.Text(), nullable=False, server_default="[]"),
    )
    op.create_index("ix_quiz_results_user_course", "quiz_results", ["user_id", "course_id"])
    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("lecture_id", sa.String(length=64), nullable=False),
        sa.Column("encrypted_text", sa.Text(), nullable=False),
        sa.Column("create_date", sa.BigInteger(), nullable=False),
        sa.Column("update_date", sa.BigInteger(), nullable=False),
        sa.UniqueConstraint("user_id", "course_id", "lecture_id", name="uq_notes_lecture"),
    )


def downgrade() -> None:
    op.drop_table("notes")
    op.drop_index("ix_quiz_results_user_course", table_name="quiz_results")
    op.drop_table("quiz_results")
    op.drop_index("ix_file_downloads_user_id", table_name="file_downloads")
    op.drop_table("file_downloads")
    op.drop_index("ix_access_log_user_id", table_name="access_log")
    op.drop_table("access_log")
    op.drop_table("video_watch_status")
    op.drop_table("course_progress")
    op.drop_table("item_progress")
    op.drop_index("ix_course_inquiries_email", table_name="course_inquiries")
    op.drop_table("course_inquiries")
    op.drop_index("uq_sub_enrollments_active", table_name="sub_enrollments")
    op.drop_index("ix_sub_enrollments_course_enrollment_id", table_name="sub_enrollments")
    op.drop_table("sub_enrollments")
    op.drop_index("uq_course_enrollments_active", table_name="course_enrollments")
    op.drop_index("ix_course_enrollments_user_course", table_name="course_enrollments")
    op.drop_table("course_enrollments")
    op.drop_table("withdrawal_reasons")
    op.drop_table("media_items")
    op.drop_index("ix_course_elements_course_id", table_name="course_elements")
    op.drop_table("course_elements")
    op.drop_table("courses")
