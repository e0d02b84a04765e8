"""PostgreSQL implementation of PreferenceRepo."""

from __future__ import annotations

import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from online_courses.db.engine import transaction
from online_courses.db.tables import UserPreferenceRow
from online_courses.models.preference import UserPreferences


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class PgPreferenceRepo:
    """Satisfies the PreferenceRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str) -> UserPreferences | None:
        stmt = select(UserPreferenceRow).where(UserPreferenceRow.user_id == user_id)
        async with transaction(self._session_factory, "get_preferences") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_preferences(row) if row is not None else None

    async def save(self, preferences: UserPreferences) -> UserPreferences:
        stmt = pg_insert(UserPreferenceRow).values(
            user_id=preferences.user_id,
            progress_report_frequency=preferences.progress_report_frequency,
            email_status=preferences.email_status,
            prefer_audio_lectures=preferences.prefer_audio_lectures,
            data_saver=preferences.data_saver,
            subject_preference=preferences.subject_preference,
            last_update=_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserPreferenceRow.user_id],
            set_={
                "progress_report_frequency": stmt.excluded.progress_report_frequency,
                "email_status": stmt.excluded.email_status,
                "prefer_audio_lectures": stmt.excluded.prefer_audio_lectures,
                "data_saver": stmt.excluded.data_saver,
                "subject_preference": stmt.excluded.subject_preference,
                "last_update": stmt.excluded.last_update,
            },
        ).returning(UserPreferenceRow)
        async with transaction(self._session_factory, "save_preferences") as session:
            row = (await session.execute(stmt)).scalar_one()
            return _row_to_preferences(row)


def _row_to_preferences(row: UserPreferenceRow) -> UserPreferences:
    return UserPreferences(
        user_id=row.user_id,
        progress_report_frequency=row.progress_report_frequency,
        email_status=row.email_status,
        prefer_audio_lectures=row.prefer_audio_lectures,
        data_saver=row.data_saver,
        subject_preference=row.subject_preference,
        last_update=row.last_update,
    )
