from __future__ import annotations

from dataclasses import dataclass

DEFAULT_REPORT_FREQUENCY = "Monthly"
DEFAULT_EMAIL_STATUS = "Active"


@dataclass(frozen=True, slots=True)
class UserPreferences:
    """Per-learner settings.

    Learners have no stored row until they first save; until then they
    read these defaults.  last_update is None for unsaved defaults.
    """

    user_id: str
    progress_report_frequency: str = DEFAULT_REPORT_FREQUENCY
    email_status: str = DEFAULT_EMAIL_STATUS
    prefer_audio_lectures: bool = False
    data_saver: bool = False
    subject_preference: str | None = None
    last_update: int | None = None
