"""The caller's own account settings."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body
from pydantic import BaseModel, Field

from online_courses.api.dependencies import CurrentUser
from online_courses.models.preference import (
    DEFAULT_EMAIL_STATUS,
    DEFAULT_REPORT_FREQUENCY,
    UserPreferences,
)
from online_courses.services.preferences import preference_service

router = APIRouter(prefix="/users", tags=["users"])


class PreferencesIn(BaseModel):
    progress_report_frequency: str = Field(default=DEFAULT_REPORT_FREQUENCY, max_length=32)
    email_status: str = Field(default=DEFAULT_EMAIL_STATUS, max_length=32)
    prefer_audio_lectures: bool = False
    data_saver: bool = False
    subject_preference: str | None = Field(default=None, max_length=255)


class PreferencesOut(BaseModel):
    progress_report_frequency: str
    email_status: str
    prefer_audio_lectures: bool
    data_saver: bool
    subject_preference: str | None = None
    last_update: int | None = None

    @classmethod
    def from_model(cls, preferences: UserPreferences) -> PreferencesOut:
        return cls(
            progress_report_frequency=preferences.progress_report_frequency,
            email_status=preferences.email_status,
            prefer_audio_lectures=preferences.prefer_audio_lectures,
            data_saver=preferences.data_saver,
            subject_preference=preferences.subject_preference,
            last_update=preferences.last_update,
        )


@router.get("/me/preferences", response_model=PreferencesOut)
async def get_preferences(principal: CurrentUser) -> PreferencesOut:
    """Stored preferences, or the defaults if the caller never saved any."""
    return PreferencesOut.from_model(await preference_service.get_preferences(principal.user_id))


@router.put("/me/preferences", response_model=PreferencesOut)
async def save_preferences(body: PreferencesIn, principal: CurrentUser) -> PreferencesOut:
    preferences = UserPreferences(user_id=principal.user_id, **body.model_dump())
    return PreferencesOut.from_model(await preference_service.save_preferences(preferences))


@router.put("/me/preferences/subject", response_model=PreferencesOut)
async def save_subject(
    subject: Annotated[str | None, Body(max_length=255)], principal: CurrentUser
) -> PreferencesOut:
    """Body is a bare JSON string (or null to clear)."""
    return PreferencesOut.from_model(
        await preference_service.set_subject(principal.user_id, subject)
    )


@router.put("/me/preferences/prefer-audio", response_model=PreferencesOut)
async def save_prefer_audio(
    prefer_audio: Annotated[bool, Body()], principal: CurrentUser
) -> PreferencesOut:
    """Body is a bare JSON boolean."""
    return PreferencesOut.from_model(
        await preference_service.set_prefer_audio(principal.user_id, prefer_audio)
    )
