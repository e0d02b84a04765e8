"""PostgreSQL implementation of NoteRepo."""

from __future__ import annotations

import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from online_courses.db.engine import transaction
from online_courses.db.tables import NoteRow
from online_courses.models.note import Note


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class PgNoteRepo:
    """Satisfies the NoteRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(
        self, user_id: str, course_id: str, lecture_id: str, encrypted_text: str
    ) -> Note:
        now = _now()
        where = (
            NoteRow.user_id == user_id,
            NoteRow.course_id == course_id,
            NoteRow.lecture_id == lecture_id,
        )
        async with transaction(self._session_factory, "save_note") as session:
            # Update first; insert only when no row matched.
            result = await session.execute(
                update(NoteRow)
                .where(*where)
                .values(encrypted_text=encrypted_text, update_date=now)
            )
            if result.rowcount == 0:  # type: ignore[attr-defined]
                session.add(
                    NoteRow(
                        user_id=user_id,
                        course_id=course_id,
                        lecture_id=lecture_id,
                        encrypted_text=encrypted_text,
                        create_date=now,
                        update_date=now,
                    )
                )
                await session.flush()
            row = (
                await session.execute(
                    select(NoteRow).where(*where).execution_options(populate_existing=True)
                )
            ).scalar_one()
            return _row_to_note(row)

    async def get(self, user_id: str, course_id: str, lecture_id: str) -> Note | None:
        stmt = select(NoteRow).where(
            NoteRow.user_id == user_id,
            NoteRow.course_id == course_id,
            NoteRow.lecture_id == lecture_id,
        )
        async with transaction(self._session_factory, "get_note") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_note(row) if row is not None else None

    async def list_for_user(self, user_id: str, course_id: str | None = None) -> list[Note]:
        stmt = select(NoteRow).where(NoteRow.user_id == user_id).order_by(NoteRow.id)
        if course_id is not None:
            stmt = stmt.where(NoteRow.course_id == course_id)
        async with transaction(self._session_factory, "list_notes") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_note(r) for r in rows]


def _row_to_note(row: NoteRow) -> Note:
    return Note(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        lecture_id=row.lecture_id,
        create_date=row.create_date,
        update_date=row.update_date,
        encrypted_text=row.encrypted_text,
    )
