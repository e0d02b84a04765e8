from __future__ import annotations

import datetime
import itertools
from dataclasses import replace
from typing import Protocol

from online_courses.models.note import Note


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class NoteRepo(Protocol):
    async def save(
        self, user_id: str, course_id: str, lecture_id: str, encrypted_text: str
    ) -> Note: ...

    async def get(self, user_id: str, course_id: str, lecture_id: str) -> Note | None: ...
    async def list_for_user(self, user_id: str, course_id: str | None = None) -> list[Note]: ...


class InMemoryNoteRepo:
    """Stores ciphertext only, like the table does."""

    def __init__(self) -> None:
        self._notes: dict[tuple[str, str, str], Note] = {}
        self._ids = itertools.count(1)

    def clear(self) -> None:
        self._notes.clear()

    async def save(
        self, user_id: str, course_id: str, lecture_id: str, encrypted_text: str
    ) -> Note:
        now = _now()
        key = (user_id, course_id, lecture_id)
        existing = self._notes.get(key)
        if existing is not None:
            note = replace(existing, encrypted_text=encrypted_text, update_date=now)
        else:
            note = Note(
                id=next(self._ids),
                user_id=user_id,
                course_id=course_id,
                lecture_id=lecture_id,
                create_date=now,
                update_date=now,
                encrypted_text=encrypted_text,
            )
        self._notes[key] = note
        return note

    async def get(self, user_id: str, course_id: str, lecture_id: str) -> Note | None:
        return self._notes.get((user_id, course_id, lecture_id))

    async def list_for_user(self, user_id: str, course_id: str | None = None) -> list[Note]:
        return [
            n
            for (uid, cid, _), n in self._notes.items()
            if uid == user_id and (course_id is None or cid == course_id)
        ]
