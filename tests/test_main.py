"""Service-layer errors map onto HTTP responses in one place."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from online_courses.core.errors import PersistenceError
from online_courses.db.gateway import enrollment_repo, note_repo
from online_courses.main import app
from online_courses.services.enrollment_service import ENROLL_FAILED
from tests.conftest import COURSE_ID, LECTURE_ID, auth_header

client = TestClient(app)


async def _fail(*args, **kwargs):
    raise PersistenceError("database unavailable")


def test_app_metadata() -> None:
    assert app.title == "online-courses"
    paths = {route.path for route in app.routes}
    assert {"/health", "/ready", "/metrics", "/courses", "/progress", "/notes"} <= paths


def test_validation_error_is_400_with_message() -> None:
    resp = client.post(f"/courses/{COURSE_ID}/inquiry", json={"email": ""})
    assert resp.status_code == 400
    assert resp.json()["detail"]


def test_not_found_is_404_with_message() -> None:
    resp = client.get(f"/notes/{COURSE_ID}/lectures/{LECTURE_ID}", headers=auth_header())
    assert resp.status_code == 404
    assert resp.json() == {"detail": f"no note for lecture {LECTURE_ID}"}


def test_enrollment_failure_is_500_with_friendly_message(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(enrollment_repo, "record_enrollment", _fail)
    resp = client.put(f"/courses/{COURSE_ID}/enrollment", json={}, headers=auth_header())
    assert resp.status_code == 500
    assert resp.json() == {"detail": ENROLL_FAILED}


def test_persistence_failure_hides_details(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(note_repo, "get", _fail)
    resp = client.get(f"/notes/{COURSE_ID}/lectures/{LECTURE_ID}", headers=auth_header())
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error"}
    assert "database unavailable" not in resp.text


def test_request_id_echoed() -> None:
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["x-request-id"] == "req-123"
