"""Lecture note endpoints.  Notes are stored encrypted; see notes_vault."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from online_courses.api.dependencies import CurrentUser
from online_courses.core.errors import NotFoundError
from online_courses.models.note import Note
from online_courses.services.notes_vault import notes_vault

router = APIRouter(prefix="/notes", tags=["notes"])


class NoteIn(BaseModel):
    text: str


class NoteOut(BaseModel):
    id: int
    course_id: str
    lecture_id: str
    create_date: int
    update_date: int
    text: str | None = None
    lecture_name: str | None = None

    @classmethod
    def from_model(cls, note: Note) -> NoteOut:
        return cls(
            id=note.id,
            course_id=note.course_id,
            lecture_id=note.lecture_id,
            create_date=note.create_date,
            update_date=note.update_date,
            text=note.text,
            lecture_name=note.lecture_name,
        )


@router.get("", response_model=list[NoteOut])
async def all_notes(principal: CurrentUser) -> list[NoteOut]:
    return [NoteOut.from_model(n) for n in await notes_vault.get_notes(principal.user_id)]


@router.get("/headers", response_model=list[NoteOut])
async def all_note_headers(principal: CurrentUser) -> list[NoteOut]:
    """Note metadata without the (decrypted) text."""
    notes = await notes_vault.get_note_headers(principal.user_id)
    return [NoteOut.from_model(n) for n in notes]


@router.get("/{course_id}", response_model=list[NoteOut])
async def course_notes(course_id: str, principal: CurrentUser) -> list[NoteOut]:
    notes = await notes_vault.get_notes(principal.user_id, course_id)
    return [NoteOut.from_model(n) for n in notes]


@router.get("/{course_id}/headers", response_model=list[NoteOut])
async def course_note_headers(course_id: str, principal: CurrentUser) -> list[NoteOut]:
    notes = await notes_vault.get_note_headers(principal.user_id, course_id)
    return [NoteOut.from_model(n) for n in notes]


@router.get("/{course_id}/lectures/{lecture_id}", response_model=NoteOut)
async def lecture_note(course_id: str, lecture_id: str, principal: CurrentUser) -> NoteOut:
    note = await notes_vault.get_note(principal.user_id, course_id, lecture_id)
    if note is None:
        raise NotFoundError(f"no note for lecture {lecture_id}")
    return NoteOut.from_model(note)


@router.put("/{course_id}/lectures/{lecture_id}", response_model=NoteOut)
async def save_lecture_note(
    course_id: str, lecture_id: str, body: NoteIn, principal: CurrentUser
) -> NoteOut:
    note = await notes_vault.save_note(principal.user_id, course_id, lecture_id, body.text)
    return NoteOut.from_model(note)
