"""Learner preferences: read with defaults, full replace and single-field updates."""

from __future__ import annotations

import logging
from dataclasses import replace

from online_courses.db.gateway import preference_repo
from online_courses.models.preference import UserPreferences
from online_courses.repos.preference_repo import PreferenceRepo

logger = logging.getLogger(__name__)


class PreferenceService:
    def __init__(self, repo: PreferenceRepo) -> None:
        self._repo = repo

    async def get_preferences(self, user_id: str) -> UserPreferences:
        stored = await self._repo.get(user_id)
        return stored if stored is not None else UserPreferences(user_id=user_id)

    async def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        saved = await self._repo.save(preferences)
        logger.info("Saved preferences user=%s", saved.user_id)
        return saved

    async def set_subject(self, user_id: str, subject: str | None) -> UserPreferences:
        current = await self.get_preferences(user_id)
        return await self.save_preferences(replace(current, subject_preference=subject))

    async def set_prefer_audio(self, user_id: str, prefer_audio: bool) -> UserPreferences:
        current = await self.get_preferences(user_id)
        return await self.save_preferences(replace(current, prefer_audio_lectures=prefer_audio))


preference_service = PreferenceService(preference_repo)
