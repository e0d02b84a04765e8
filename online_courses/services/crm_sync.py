"""HubSpot course-list sync.

Each contact carries two multi-value properties listing course keys,
separated by ";":

  online_courses_enrollment  : courses the learner is enrolled in
  online_courses_completed   : courses the learner has completed

Updates are read-modify-write: read the contact's current list, add or
remove one key, then submit the whole list through a HubSpot form (the
form creates the contact if it does not exist yet).  HubSpot ignores an
empty value, so an emptied list is sent as ";".

Nothing here runs inside a request.  Services enqueue a task on the
crm_sync queue after their database write commits and the worker calls
sync_enrollment() / sync_completion().  Failures are logged and counted
in crm_sync_total; there is no retry.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Literal
from urllib.parse import quote

import httpx
from redis.exceptions import RedisError

from online_courses.core.config import SETTINGS, Settings
from online_courses.core.errors import ExternalServiceError, NotFoundError
from online_courses.core.metrics import CRM_SYNC
from online_courses.models.enrollment import UtmInfo
from online_courses.services.task_queue import (
    CRM_SYNC_QUEUE,
    InMemoryTaskQueue,
    TaskQueue,
    task_queue,
)

logger = logging.getLogger(__name__)

ListKind = Literal["enrollment", "completed"]
SyncResult = Literal["updated", "skipped", "failed"]

LIST_PROPERTIES: dict[str, str] = {
    "enrollment": "online_courses_enrollment",
    "completed": "online_courses_completed",
}
EMPTY_LIST_SENTINEL = ";"

_SERVICE = "hubspot"
_FORM_UTM_FIELDS = ("utm_source", "utm_medium", "utm_content", "utm_campaign", "utm_term")


@dataclass(frozen=True, slots=True)
class CrmContact:
    """Who to sync, plus the request context HubSpot uses for attribution."""

    email: str | None
    first_name: str | None = None
    last_name: str | None = None
    hutk: str | None = None  # hubspotutk tracking cookie
    ip_address: str | None = None
    utm: UtmInfo | None = None

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["utm"] = asdict(self.utm) if self.utm is not None else None
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> CrmContact:
        utm = payload.get("utm")
        return cls(
            email=payload.get("email"),
            first_name=payload.get("first_name"),
            last_name=payload.get("last_name"),
            hutk=payload.get("hutk"),
            ip_address=payload.get("ip_address"),
            utm=UtmInfo(**utm) if utm else None,
        )


def split_course_list(value: str | None) -> list[str]:
    return [c for c in (value or "").split(";") if c]


def _form_fields(kind: str, courses: list[str], contact: CrmContact) -> dict[str, str]:
    fields: dict[str, str] = {"email": contact.email or ""}
    if kind == "enrollment":
        if contact.first_name and contact.first_name.strip():
            fields["firstname"] = contact.first_name
        if contact.last_name and contact.last_name.strip():
            fields["lastname"] = contact.last_name
    if contact.utm is not None:
        for name in _FORM_UTM_FIELDS:
            value = getattr(contact.utm, name)
            if value and value.strip():
                fields[name] = value
    fields[LIST_PROPERTIES[kind]] = ";".join(courses) or EMPTY_LIST_SENTINEL
    if contact.hutk is not None:
        context = {"hutk": contact.hutk}
        if contact.ip_address is not None:
            context["ipAddress"] = contact.ip_address
        fields["hs_context"] = json.dumps(context)
    return fields


class HubSpotClient:
    def __init__(
        self,
        *,
        api_root: str,
        access_token: str | None,
        enroll_form_url: str | None,
        complete_form_url: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_root = api_root.rstrip("/")
        self._access_token = access_token
        self._form_urls = {"enrollment": enroll_form_url, "completed": complete_form_url}
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def get_course_list(self, email: str, kind: ListKind) -> list[str]:
        """Current course keys on the contact.

        Raises NotFoundError when HubSpot has no contact for the email.
        """
        prop = LIST_PROPERTIES[kind]
        url = f"{self._api_root}/contacts/v1/contact/email/{quote(email, safe='')}/profile"
        headers = (
            {"Authorization": f"Bearer {self._access_token}"} if self._access_token else {}
        )
        try:
            async with self._client() as client:
                response = await client.get(url, params={"property": prop}, headers=headers)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(_SERVICE, "contact lookup failed") from exc

        if response.status_code == 404:
            raise NotFoundError(f"no HubSpot contact for {email}")
        if response.is_error:
            raise ExternalServiceError(
                _SERVICE, f"contact lookup returned HTTP {response.status_code}"
            )
        try:
            body = response.json()
            value = ((body.get("properties") or {}).get(prop) or {}).get("value")
        except (ValueError, AttributeError) as exc:
            raise ExternalServiceError(_SERVICE, "invalid contact JSON") from exc
        return split_course_list(value)

    async def set_course_list_and_contact_fields(
        self, kind: ListKind, courses: list[str], contact: CrmContact
    ) -> bool:
        if not contact.email or not contact.email.strip():
            return False
        form_url = self._form_urls[kind]
        if not form_url:
            logger.warning("No HubSpot form configured for %s list; not syncing", kind)
            return False

        fields = _form_fields(kind, courses, contact)
        logger.debug(
            "Posting HubSpot %s list for %s: %s",
            kind,
            contact.email,
            fields[LIST_PROPERTIES[kind]],
        )
        try:
            async with self._client() as client:
                response = await client.post(form_url, data=fields)
        except httpx.HTTPError:
            logger.exception("HubSpot form post failed  kind=%s email=%s", kind, contact.email)
            return False
        if response.is_error:
            logger.error(
                "HubSpot form post rejected  kind=%s email=%s status=%d body=%s",
                kind,
                contact.email,
                response.status_code,
                response.text,
            )
            return False
        return True

    async def add_course(
        self, kind: ListKind, course_key: str, contact: CrmContact
    ) -> SyncResult:
        try:
            current = await self.get_course_list(contact.email or "", kind)
        except NotFoundError:
            current = []
        if course_key in current:
            return "skipped"
        courses = [*current, course_key]
        ok = await self.set_course_list_and_contact_fields(kind, courses, contact)
        return "updated" if ok else "failed"

    async def remove_course(
        self, kind: ListKind, course_key: str, contact: CrmContact
    ) -> SyncResult:
        try:
            current = await self.get_course_list(contact.email or "", kind)
        except NotFoundError:
            return "skipped"
        if course_key not in current:
            return "skipped"
        remaining = [c for c in current if c != course_key]
        ok = await self.set_course_list_and_contact_fields(kind, remaining, contact)
        return "updated" if ok else "failed"


# ---------------------------------------------------------------------------
# Worker entry points
# ---------------------------------------------------------------------------


async def _run(kind: ListKind, course_key: str, contact: CrmContact, coro) -> SyncResult:
    try:
        result: SyncResult = await coro
    except ExternalServiceError:
        logger.exception(
            "CRM %s sync failed  course=%s email=%s", kind, course_key, contact.email
        )
        result = "failed"
    CRM_SYNC.labels(kind=kind, result=result).inc()
    logger.info("CRM %s sync %s  course=%s email=%s", kind, result, course_key, contact.email)
    return result


async def sync_enrollment(
    client: HubSpotClient, course_key: str, enrolled: bool, contact: CrmContact
) -> SyncResult:
    if enrolled:
        coro = client.add_course("enrollment", course_key, contact)
    else:
        coro = client.remove_course("enrollment", course_key, contact)
    return await _run("enrollment", course_key, contact, coro)


async def sync_completion(
    client: HubSpotClient, course_key: str, contact: CrmContact
) -> SyncResult:
    coro = client.add_course("completed", course_key, contact)
    return await _run("completed", course_key, contact, coro)


def crm_sync_enabled(settings: Settings, queue: TaskQueue) -> bool:
    """CRM sync runs outside dev, and only on a queue the worker process can drain."""
    if settings.is_dev:
        return False
    if isinstance(queue, InMemoryTaskQueue):
        logger.warning(
            "CRM sync disabled: no REDIS_URL, so no worker can drain the %s queue",
            CRM_SYNC_QUEUE,
        )
        return False
    return True


async def enqueue_crm_sync(
    queue: TaskQueue,
    kind: ListKind,
    course_key: str | None,
    contact: CrmContact | None,
    *,
    enrolled: bool = True,
) -> bool:
    """Queue a sync for the worker.  Skipped without a course key or email."""
    if not course_key or contact is None or not contact.email:
        logger.debug(
            "CRM %s sync skipped  course_key=%s email=%s",
            kind,
            course_key,
            contact.email if contact else None,
        )
        return False
    payload = {
        "kind": kind,
        "course_key": course_key,
        "enrolled": enrolled,
        "contact": contact.to_payload(),
    }
    try:
        await queue.enqueue(CRM_SYNC_QUEUE, payload)
    except RedisError:
        logger.exception("Could not queue CRM %s sync  course=%s", kind, course_key)
        CRM_SYNC.labels(kind=kind, result="failed").inc()
        return False
    return True


hubspot_client = HubSpotClient(
    api_root=SETTINGS.hubspot_api_root,
    access_token=SETTINGS.hubspot_access_token,
    enroll_form_url=SETTINGS.hubspot_form_url_enroll,
    complete_form_url=SETTINGS.hubspot_form_url_complete,
)

CRM_SYNC_ENABLED = crm_sync_enabled(SETTINGS, task_queue)
