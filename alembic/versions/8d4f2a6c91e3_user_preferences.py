"""user preferences

Revision ID: 8d4f2a6c91e3
Revises: 3b9e1c7a52d0
Create Date: 2026-10-18 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8d4f2a6c91e3"
down_revision: str | Sequence[str] | None = "3b9e1c7a52d0"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "user_preferences",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("progress_report_frequency", sa.String(length=32), nullable=False),
        sa.Column("email_status", sa.String(length=32), nullable=False),
        sa.Column(
            "prefer_audio_lectures", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("data_saver", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("subject_preference", sa.String(length=255), nullable=True),
        sa.Column("last_update", sa.BigInteger(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("user_preferences")
