"""HubSpot course-list sync against a mocked HubSpot (httpx.MockTransport)."""

from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest
from redis.exceptions import RedisError

from online_courses.core.config import Settings
from online_courses.db.gateway import catalog_repo, enrollment_repo
from online_courses.models.enrollment import UtmInfo
from online_courses.services.crm_sync import (
    EMPTY_LIST_SENTINEL,
    CrmContact,
    HubSpotClient,
    crm_sync_enabled,
    enqueue_crm_sync,
    split_course_list,
    sync_completion,
    sync_enrollment,
)
from online_courses.services.enrollment_service import EnrollmentService
from online_courses.services.task_queue import CRM_SYNC_QUEUE, InMemoryTaskQueue, RedisTaskQueue
from tests.conftest import COURSE_ID

ENROLL_FORM = "https://forms.example/enroll"
COMPLETE_FORM = "https://forms.example/complete"
CONTACT = CrmContact(
    email="learner@example.com",
    first_name="Ada",
    last_name="Lovelace",
    hutk="tracking-cookie",
    ip_address="203.0.113.9",
)


class FakeHubSpot:
    """Holds one contact's lists and records every form submission."""

    def __init__(self, lists: dict[str, str] | None = None, *, contact_exists: bool = True):
        self.lists = lists or {}
        self.contact_exists = contact_exists
        self.forms: list[tuple[str, dict[str, str]]] = []
        self.form_status = 204

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            if not self.contact_exists:
                return httpx.Response(404)
            prop = request.url.params["property"]
            properties = {prop: {"value": self.lists[prop]}} if prop in self.lists else {}
            return httpx.Response(200, json={"properties": properties})
        fields = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.forms.append((str(request.url), fields))
        return httpx.Response(self.form_status)


def _client(fake: FakeHubSpot) -> HubSpotClient:
    return HubSpotClient(
        api_root="https://api.hubapi.example",
        access_token="secret-token",
        enroll_form_url=ENROLL_FORM,
        complete_form_url=COMPLETE_FORM,
        transport=httpx.MockTransport(fake),
    )


# ---- helpers ----


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, []), ("", []), (";", []), ("A;B", ["A", "B"]), ("A;;B;", ["A", "B"])],
)
def test_split_course_list(value: str | None, expected: list[str]) -> None:
    assert split_course_list(value) == expected


def test_contact_payload_round_trips_with_utm() -> None:
    contact = CrmContact(email="x@example.com", utm=UtmInfo(utm_source="ads"))
    assert CrmContact.from_payload(contact.to_payload()) == contact


# ---- enrollment list ----


def test_add_course_appends_to_existing_list() -> None:
    fake = FakeHubSpot({"online_courses_enrollment": "A;B"})
    result = asyncio.run(sync_enrollment(_client(fake), "C", True, CONTACT))
    assert result == "updated"
    ((url, fields),) = fake.forms
    assert url == ENROLL_FORM
    assert fields["online_courses_enrollment"] == "A;B;C"
    assert fields["email"] == "learner@example.com"
    assert fields["firstname"] == "Ada"
    assert fields["lastname"] == "Lovelace"
    assert json.loads(fields["hs_context"]) == {
        "hutk": "tracking-cookie",
        "ipAddress": "203.0.113.9",
    }


def test_add_course_already_listed_is_skipped() -> None:
    fake = FakeHubSpot({"online_courses_enrollment": "A;C"})
    assert asyncio.run(sync_enrollment(_client(fake), "C", True, CONTACT)) == "skipped"
    assert fake.forms == []


def test_add_course_for_new_contact_creates_list() -> None:
    fake = FakeHubSpot(contact_exists=False)
    assert asyncio.run(sync_enrollment(_client(fake), "C", True, CONTACT)) == "updated"
    assert fake.forms[0][1]["online_courses_enrollment"] == "C"


def test_removing_last_course_sends_sentinel() -> None:
    fake = FakeHubSpot({"online_courses_enrollment": "C"})
    assert asyncio.run(sync_enrollment(_client(fake), "C", False, CONTACT)) == "updated"
    assert fake.forms[0][1]["online_courses_enrollment"] == EMPTY_LIST_SENTINEL


def test_remove_for_unknown_contact_is_skipped() -> None:
    fake = FakeHubSpot(contact_exists=False)
    assert asyncio.run(sync_enrollment(_client(fake), "C", False, CONTACT)) == "skipped"


def test_utm_fields_forwarded_when_present() -> None:
    fake = FakeHubSpot()
    contact = CrmContact(
        email="learner@example.com", utm=UtmInfo(utm_source="ads", utm_medium="  ")
    )
    asyncio.run(sync_enrollment(_client(fake), "C", True, contact))
    fields = fake.forms[0][1]
    assert fields["utm_source"] == "ads"
    assert "utm_medium" not in fields
    assert "hs_context" not in fields


# ---- completed list ----


def test_completion_posts_to_completion_form_without_names() -> None:
    fake = FakeHubSpot({"online_courses_completed": "A"})
    assert asyncio.run(sync_completion(_client(fake), "C", CONTACT)) == "updated"
    ((url, fields),) = fake.forms
    assert url == COMPLETE_FORM
    assert fields["online_courses_completed"] == "A;C"
    assert "firstname" not in fields


# ---- failures ----


def test_rejected_form_post_counts_as_failed() -> None:
    fake = FakeHubSpot()
    fake.form_status = 400
    assert asyncio.run(sync_enrollment(_client(fake), "C", True, CONTACT)) == "failed"


def test_contact_lookup_error_counts_as_failed() -> None:
    def broken(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    client = HubSpotClient(
        api_root="https://api.hubapi.example",
        access_token=None,
        enroll_form_url=ENROLL_FORM,
        complete_form_url=COMPLETE_FORM,
        transport=httpx.MockTransport(broken),
    )
    assert asyncio.run(sync_enrollment(client, "C", True, CONTACT)) == "failed"


def test_missing_form_url_does_not_post() -> None:
    fake = FakeHubSpot()
    client = HubSpotClient(
        api_root="https://api.hubapi.example",
        access_token=None,
        enroll_form_url=None,
        complete_form_url=None,
        transport=httpx.MockTransport(fake),
    )
    assert asyncio.run(sync_enrollment(client, "C", True, CONTACT)) == "failed"
    assert fake.forms == []


# ---- enqueue ----


def test_enqueue_crm_sync_pushes_task() -> None:
    queue = InMemoryTaskQueue()
    assert asyncio.run(enqueue_crm_sync(queue, "enrollment", "C", CONTACT, enrolled=False))
    task = asyncio.run(queue.dequeue(CRM_SYNC_QUEUE))
    assert task is not None
    assert task.payload == {
        "kind": "enrollment",
        "course_key": "C",
        "enrolled": False,
        "contact": CONTACT.to_payload(),
    }


@pytest.mark.parametrize(
    ("course_key", "contact"),
    [(None, CONTACT), ("", CONTACT), ("C", None), ("C", CrmContact(email=None))],
)
def test_enqueue_crm_sync_skips_incomplete(
    course_key: str | None, contact: CrmContact | None
) -> None:
    queue = InMemoryTaskQueue()
    assert not asyncio.run(enqueue_crm_sync(queue, "enrollment", course_key, contact))
    assert asyncio.run(queue.queue_length(CRM_SYNC_QUEUE)) == 0


class _DownQueue(InMemoryTaskQueue):
    async def enqueue(self, queue: str, payload: dict):
        raise RedisError("connection refused")


def test_enqueue_crm_sync_survives_redis_outage() -> None:
    assert not asyncio.run(enqueue_crm_sync(_DownQueue(), "completed", "C", CONTACT))


# ---- enablement ----


def _settings(app_env: str) -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


@pytest.mark.parametrize(
    ("app_env", "queue", "enabled"),
    [
        ("dev", RedisTaskQueue(redis_client=None), False),
        ("prod", InMemoryTaskQueue(), False),
        ("test", InMemoryTaskQueue(), False),
        ("prod", RedisTaskQueue(redis_client=None), True),
    ],
)
def test_crm_sync_needs_a_drainable_queue(app_env: str, queue, enabled: bool) -> None:
    assert crm_sync_enabled(_settings(app_env), queue) is enabled


def test_prod_without_redis_queues_nothing() -> None:
    queue = InMemoryTaskQueue()
    service = EnrollmentService(
        enrollment_repo,
        catalog_repo,
        queue,
        early_access_token=None,
        crm_enabled=crm_sync_enabled(_settings("prod"), queue),
    )
    for _ in range(3):
        asyncio.run(service.enroll("learner-1", COURSE_ID, True, contact=CONTACT))
        asyncio.run(service.enroll("learner-1", COURSE_ID, False, contact=CONTACT))
    assert asyncio.run(queue.queue_length(CRM_SYNC_QUEUE)) == 0
