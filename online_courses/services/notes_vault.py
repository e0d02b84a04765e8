"""Encrypted lecture notes.

Notes are encrypted at rest with AES-256-CBC.  The key is derived once
from NOTES_KEY with PBKDF2-HMAC-SHA1 and a fixed salt, and every note
gets a fresh random IV stored in front of its ciphertext:

    stored = base64(iv[16] || AES-CBC(key, iv, utf8(text) space-padded))

There is no PKCS#7 padding.  The plaintext is padded with spaces to the
block size and stripped after decryption, which also strips whitespace
the learner typed at either end of the note.  Existing notes depend on
this exact format, so it must not change.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import replace

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from online_courses.core.config import SETTINGS
from online_courses.core.errors import NoteDecryptionError
from online_courses.db.gateway import catalog_repo, note_repo
from online_courses.models.note import Note
from online_courses.repos.catalog_repo import CatalogRepo
from online_courses.repos.note_repo import NoteRepo

logger = logging.getLogger(__name__)

_SALT = bytes([5, 15, 195, 12, 83, 32, 44, 44, 91, 174])
_ITERATIONS = 1000
_KEY_BYTES = 32
_BLOCK = 16


def derive_key(secret: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA1(),
        length=_KEY_BYTES,
        salt=_SALT,
        iterations=_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


class NoteCipher:
    def __init__(self, secret: str) -> None:
        self._key = derive_key(secret)

    def encrypt(self, text: str) -> str:
        data = text.encode("utf-8")
        if len(data) % _BLOCK:
            data += b" " * (_BLOCK - len(data) % _BLOCK)
        iv = os.urandom(_BLOCK)
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()
        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, stored: str) -> str:
        try:
            raw = base64.b64decode(stored, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise NoteDecryptionError("note is not valid base64") from exc
        if len(raw) < _BLOCK or len(raw) % _BLOCK:
            raise NoteDecryptionError(f"note ciphertext has invalid length {len(raw)}")

        iv, ciphertext = raw[:_BLOCK], raw[_BLOCK:]
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        data = decryptor.update(ciphertext) + decryptor.finalize()
        try:
            return data.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise NoteDecryptionError("note did not decrypt to UTF-8 text") from exc


class NotesVault:
    def __init__(self, repo: NoteRepo, catalog: CatalogRepo, cipher: NoteCipher) -> None:
        self._repo = repo
        self._catalog = catalog
        self._cipher = cipher

    def _open(self, note: Note) -> Note:
        return replace(note, encrypted_text="", text=self._cipher.decrypt(note.encrypted_text))

    async def _lecture_names(self, notes: list[Note]) -> dict[str, str]:
        names: dict[str, str] = {}
        for course_id in {n.course_id for n in notes}:
            for element in await self._catalog.list_elements(course_id):
                names[element.item_id] = element.name
        return names

    @staticmethod
    def _header(note: Note) -> Note:
        return replace(note, encrypted_text="", text=None)

    async def save_note(self, user_id: str, course_id: str, lecture_id: str, text: str) -> Note:
        stored = await self._repo.save(user_id, course_id, lecture_id, self._cipher.encrypt(text))
        logger.info("Saved note id=%d user=%s lecture=%s", stored.id, user_id, lecture_id)
        return self._open(stored)

    async def get_note(self, user_id: str, course_id: str, lecture_id: str) -> Note | None:
        note = await self._repo.get(user_id, course_id, lecture_id)
        return self._open(note) if note is not None else None

    async def get_notes(self, user_id: str, course_id: str | None = None) -> list[Note]:
        notes = await self._repo.list_for_user(user_id, course_id)
        names = await self._lecture_names(notes)
        return [replace(self._open(n), lecture_name=names.get(n.lecture_id)) for n in notes]

    async def get_note_headers(self, user_id: str, course_id: str | None = None) -> list[Note]:
        notes = await self._repo.list_for_user(user_id, course_id)
        names = await self._lecture_names(notes)
        return [replace(self._header(n), lecture_name=names.get(n.lecture_id)) for n in notes]


notes_vault = NotesVault(note_repo, catalog_repo, NoteCipher(SETTINGS.notes_key))
