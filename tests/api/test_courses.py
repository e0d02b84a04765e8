from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from online_courses.db.gateway import catalog_repo, progress_repo
from tests.conftest import COURSE_ID, LECTURE_ID, auth_header

# ---- health ----


def test_courses_health_running(client: TestClient) -> None:
    resp = client.get("/courses/health")
    assert resp.status_code == 200
    assert resp.text == "Running"


def test_courses_health_without_courses(client: TestClient) -> None:
    catalog_repo.clear()
    resp = client.get("/courses/health")
    assert resp.status_code == 500
    assert resp.text == "Cannot connect to DB or missing courses"


# ---- catalog ----


def test_withdrawal_reasons(client: TestClient) -> None:
    resp = client.get("/courses/withdrawal-reasons", headers=auth_header())
    assert resp.status_code == 200
    assert resp.json() == [
        {"id": 1, "reason": "No time"},
        {"id": 2, "reason": "Not what I expected"},
    ]


# ---- enrollment ----


def test_enroll_and_list(client: TestClient) -> None:
    resp = client.put(
        f"/courses/{COURSE_ID}/enrollment",
        json={"enroll": True, "utm": {"utm_source": "newsletter"}},
        headers=auth_header(),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["course_id"] == COURSE_ID
    assert body["withdrawal_date"] is None

    courses = client.get("/courses", headers=auth_header()).json()
    assert [c["course_id"] for c in courses] == [COURSE_ID]


def test_withdraw(client: TestClient) -> None:
    client.put(f"/courses/{COURSE_ID}/enrollment", json={}, headers=auth_header())
    resp = client.put(
        f"/courses/{COURSE_ID}/enrollment",
        json={"enroll": False, "withdrawal_reason": 1},
        headers=auth_header(),
    )
    assert resp.status_code == 200
    assert resp.json()["withdrawal_reason"] == 1
    assert client.get("/courses", headers=auth_header()).json() == []


def test_enroll_in_study_group(client: TestClient) -> None:
    resp = client.put(
        f"/courses/{COURSE_ID}/enrollment",
        json={"study_group_id": "spring-cohort"},
        headers=auth_header(),
    )
    assert resp.status_code == 200
    assert resp.json()["study_group_id"] == "spring-cohort"


def test_enroll_rejects_bad_body(client: TestClient) -> None:
    resp = client.put(
        f"/courses/{COURSE_ID}/enrollment",
        json={"enroll": "sometimes"},
        headers=auth_header(),
    )
    assert resp.status_code == 422


# ---- inquiries and early access ----


def test_inquiry_needs_no_token(client: TestClient) -> None:
    resp = client.post(f"/courses/{COURSE_ID}/inquiry", json={"email": "Visitor@Example.com"})
    assert resp.status_code == 200
    assert resp.json()["course_id"] == COURSE_ID
    assert resp.json()["early_access"] is False


def test_inquiry_blank_email_is_400(client: TestClient) -> None:
    resp = client.post(f"/courses/{COURSE_ID}/inquiry", json={"email": "  "})
    assert resp.status_code == 400


def test_early_access_with_wrong_token(client: TestClient) -> None:
    client.put(f"/courses/{COURSE_ID}/enrollment", json={}, headers=auth_header())
    resp = client.put(f"/courses/{COURSE_ID}/early-access/guess", headers=auth_header())
    assert resp.status_code == 200
    assert resp.json() == {"early_access": False}


# ---- activity ----


def test_open_course(client: TestClient) -> None:
    resp = client.post(f"/courses/{COURSE_ID}/open", headers=auth_header())
    assert resp.status_code == 204
    assert progress_repo.access_log[-1][:3] == ("learner-1", COURSE_ID, None)


def test_open_lecture(client: TestClient) -> None:
    resp = client.post(f"/courses/{COURSE_ID}/lectures/{LECTURE_ID}/open", headers=auth_header())
    assert resp.status_code == 204
    assert progress_repo.access_log[-1][2] == LECTURE_ID


def test_record_download(client: TestClient) -> None:
    resp = client.post(
        f"/courses/{COURSE_ID}/downloads",
        json={"lecture_id": LECTURE_ID, "file_type": "Reading", "url": "https://cdn.example/r"},
        headers=auth_header(),
    )
    assert resp.status_code == 204
    assert progress_repo.downloads[-1][3] == "Reading"


@pytest.mark.parametrize("file_type", ["Video", "reading"])
def test_record_download_rejects_unknown_type(client: TestClient, file_type: str) -> None:
    resp = client.post(
        f"/courses/{COURSE_ID}/downloads",
        json={"file_type": file_type, "url": "https://cdn.example/r"},
        headers=auth_header(),
    )
    assert resp.status_code == 400
