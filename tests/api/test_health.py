from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from online_courses.core.errors import PersistenceError
from online_courses.db.gateway import catalog_repo


async def _broken_courses_exist() -> bool:
    raise PersistenceError("courses_exist failed")


def test_health_in_memory(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "checks": {"database": "in_memory", "redis": "not_configured"},
    }


def test_ready_in_memory(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_health_degraded_when_database_fails(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(catalog_repo, "courses_exist", _broken_courses_exist)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["checks"]["database"] == "degraded"


def test_not_ready_when_database_fails(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(catalog_repo, "courses_exist", _broken_courses_exist)
    assert client.get("/ready").status_code == 503


def test_courses_health_when_database_fails(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(catalog_repo, "courses_exist", _broken_courses_exist)
    resp = client.get("/courses/health")
    assert resp.status_code == 500
    assert resp.text == "Cannot connect to DB or missing courses"
