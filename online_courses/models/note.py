from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Note:
    """A learner's note on a lecture.

    text holds the plaintext after decryption; the repositories only ever
    see encrypted_text.  Header listings carry text=None.  lecture_name is
    joined from the catalog for listings and is None elsewhere.
    """

    id: int
    user_id: str
    course_id: str
    lecture_id: str
    create_date: int
    update_date: int
    encrypted_text: str = ""
    text: str | None = None
    lecture_name: str | None = None
