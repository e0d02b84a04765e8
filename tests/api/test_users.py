from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import auth_header, mint_token

URL = "/users/me/preferences"


def test_preferences_require_auth(client: TestClient) -> None:
    assert client.get(URL).status_code == 401


def test_defaults_before_first_save(client: TestClient) -> None:
    resp = client.get(URL, headers=auth_header())
    assert resp.status_code == 200
    assert resp.json() == {
        "progress_report_frequency": "Monthly",
        "email_status": "Active",
        "prefer_audio_lectures": False,
        "data_saver": False,
        "subject_preference": None,
        "last_update": None,
    }


def test_put_then_get(client: TestClient) -> None:
    body = {"progress_report_frequency": "Weekly", "data_saver": True, "subject_preference": "Art"}
    resp = client.put(URL, json=body, headers=auth_header())
    assert resp.status_code == 200
    assert resp.json()["last_update"] is not None

    got = client.get(URL, headers=auth_header()).json()
    assert got["progress_report_frequency"] == "Weekly"
    assert got["data_saver"] is True
    assert got["subject_preference"] == "Art"
    assert got["email_status"] == "Active"


def test_subject_and_prefer_audio_take_bare_values(client: TestClient) -> None:
    client.put(URL, json={"progress_report_frequency": "Weekly"}, headers=auth_header())

    resp = client.put(f"{URL}/subject", json="Literature", headers=auth_header())
    assert resp.status_code == 200
    assert resp.json()["subject_preference"] == "Literature"

    resp = client.put(f"{URL}/prefer-audio", json=True, headers=auth_header())
    assert resp.status_code == 200
    prefs = resp.json()
    assert prefs["prefer_audio_lectures"] is True
    assert prefs["subject_preference"] == "Literature"
    assert prefs["progress_report_frequency"] == "Weekly"


def test_prefer_audio_rejects_non_boolean(client: TestClient) -> None:
    resp = client.put(f"{URL}/prefer-audio", json={"on": "maybe"}, headers=auth_header())
    assert resp.status_code == 422


def test_preferences_are_per_caller(client: TestClient) -> None:
    client.put(f"{URL}/subject", json="Music", headers=auth_header())
    other = auth_header(mint_token(sub="learner-2"))
    assert client.get(URL, headers=other).json()["subject_preference"] is None
