"""Bearer token enforcement on learner endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from online_courses.services.token_service import SigningKeyStore
from tests.conftest import auth_header, mint_token

PROTECTED = [
    ("get", "/courses"),
    ("get", "/courses/withdrawal-reasons"),
    ("get", "/progress"),
    ("get", "/quizzes/course-1"),
    ("get", "/notes"),
    ("get", "/multimedia/vimeo/123"),
]


@pytest.mark.parametrize(("method", "path"), PROTECTED)
def test_missing_token_is_401(client: TestClient, method: str, path: str) -> None:
    resp = getattr(client, method)(path)
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_garbage_token_is_401(client: TestClient) -> None:
    resp = client.get("/courses", headers=auth_header("not.a.jwt"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


def test_expired_token_is_401(client: TestClient) -> None:
    resp = client.get("/courses", headers=auth_header(mint_token(ttl_minutes=-1)))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_token_from_foreign_key_is_401(client: TestClient) -> None:
    foreign = SigningKeyStore().mint(sub="intruder")
    resp = client.get("/courses", headers=auth_header(foreign))
    assert resp.status_code == 401


def test_valid_token_is_accepted(client: TestClient) -> None:
    resp = client.get("/courses", headers=auth_header())
    assert resp.status_code == 200
    assert resp.json() == []


def test_users_only_see_their_own_enrollments(client: TestClient) -> None:
    client.put(
        "/courses/course-1/enrollment",
        json={"enroll": True},
        headers=auth_header(mint_token(sub="learner-a")),
    )
    resp = client.get("/courses", headers=auth_header(mint_token(sub="learner-b")))
    assert resp.json() == []
