from __future__ import annotations

import datetime
from dataclasses import replace
from typing import Protocol

from online_courses.models.preference import UserPreferences


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


class PreferenceRepo(Protocol):
    async def get(self, user_id: str) -> UserPreferences | None: ...
    async def save(self, preferences: UserPreferences) -> UserPreferences: ...


class InMemoryPreferenceRepo:
    def __init__(self) -> None:
        self._rows: dict[str, UserPreferences] = {}

    def clear(self) -> None:
        self._rows.clear()

    async def get(self, user_id: str) -> UserPreferences | None:
        return self._rows.get(user_id)

    async def save(self, preferences: UserPreferences) -> UserPreferences:
        stored = replace(preferences, last_update=_now())
        self._rows[preferences.user_id] = stored
        return stored
