from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from online_courses.db.gateway import (
    catalog_repo,
    enrollment_repo,
    note_repo,
    preference_repo,
    progress_repo,
    quiz_result_repo,
)
from online_courses.main import app
from online_courses.models.course import Course, CourseElement, MediaItem, WithdrawalReason
from online_courses.services.cache import InMemoryCacheService, cache_service
from online_courses.services.task_queue import InMemoryTaskQueue, task_queue

COURSE_ID = "course-1"
LECTURE_ID = "lecture-1"
QUIZ_ID = "quiz-1"
FINAL_QUIZ_ID = "final-quiz-1"
VIDEO_ID = "0b6a2c1e-8f3d-4a57-9c21-5e7d9f0a1b2c"
UNTIMED_VIDEO_ID = "7c1d3e5f-2a4b-4c6d-8e0f-1a2b3c4d5e6f"
VIDEO_DURATION = 100


def seed_catalog() -> None:
    """One course: a video lecture, a quiz on it and a final quiz."""
    catalog_repo.add_course(
        Course(
            id=COURSE_ID,
            name="Intro to Testing",
            hubspot_key="INTRO-TESTING",
            instruction_hours=Decimal("2.5"),
        )
    )
    catalog_repo.add_element(
        CourseElement(
            item_id=LECTURE_ID,
            course_id=COURSE_ID,
            item_type="lecture",
            name="Lecture 1",
            sequence=1,
            video_id=VIDEO_ID,
        )
    )
    catalog_repo.add_element(
        CourseElement(
            item_id=QUIZ_ID,
            course_id=COURSE_ID,
            item_type="quiz",
            name="Lecture 1 Quiz",
            sequence=2,
            lecture_id=LECTURE_ID,
        )
    )
    catalog_repo.add_element(
        CourseElement(
            item_id=FINAL_QUIZ_ID,
            course_id=COURSE_ID,
            item_type="final-quiz",
            name="Final Quiz",
            sequence=3,
        )
    )
    catalog_repo.add_media(MediaItem(video_id=VIDEO_ID, duration_seconds=VIDEO_DURATION))
    catalog_repo.add_media(MediaItem(video_id=UNTIMED_VIDEO_ID, duration_seconds=None))
    catalog_repo.add_withdrawal_reason(WithdrawalReason(id=1, reason="No time"))
    catalog_repo.add_withdrawal_reason(WithdrawalReason(id=2, reason="Not what I expected"))


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Fresh in-memory repositories and a seeded catalog for every test."""
    for repo in (
        catalog_repo,
        enrollment_repo,
        progress_repo,
        quiz_result_repo,
        note_repo,
        preference_repo,
    ):
        repo.clear()  # type: ignore[union-attr]
    seed_catalog()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    if isinstance(cache_service, InMemoryCacheService):
        cache_service.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    if isinstance(task_queue, InMemoryTaskQueue):
        task_queue.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    sub: str = "learner-1",
    email: str | None = "learner@example.com",
    roles: list[str] | None = None,
    ttl_minutes: int = 60,
) -> str:
    """Create a valid ES256 JWT signed by the app's dev key."""
    return app.state.signing_keys.mint(
        sub=sub,
        email=email,
        given_name="Ada",
        family_name="Lovelace",
        roles=roles,
        ttl_minutes=ttl_minutes,
    )


def auth_header(token: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token or mint_token()}"}


@pytest.fixture
def token() -> str:
    return mint_token()
