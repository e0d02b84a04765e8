"""Quiz answer keys from the headless CMS delivery API.

GET {CONTENT_API_ROOT}/items/{quiz name} returns the quiz item plus its
linked question items:

    {
      "item": {"system": {"id": "<quiz id>", ...}, ...},
      "modular_content": {
        "<question codename>": {
          "system": {"id": "<question id>"},
          "elements": {"answer": {"value": [{"codename": "<option>"}]}}
        },
        ...
      }
    }
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from online_courses.core.config import SETTINGS
from online_courses.core.errors import ExternalServiceError, NotFoundError
from online_courses.models.quiz import QuizDefinition

logger = logging.getLogger(__name__)

_SERVICE = "content-api"


class QuizProvider(Protocol):
    async def get_quiz_definition(self, name: str) -> QuizDefinition: ...


def _answer_codename(question: dict[str, Any]) -> str | None:
    values = ((question.get("elements") or {}).get("answer") or {}).get("value") or []
    if not values or not isinstance(values[0], dict):
        return None
    return values[0].get("codename")


def parse_quiz_definition(data: Any, name: str) -> QuizDefinition:
    """Build a QuizDefinition from a delivery API response body."""
    if not isinstance(data, dict):
        raise ExternalServiceError(_SERVICE, f"unexpected body for quiz {name!r}")

    quiz_id = ((data.get("item") or {}).get("system") or {}).get("id")
    if not quiz_id:
        raise NotFoundError(f"quiz {name!r} not found")

    linked = data.get("modular_content") or {}
    if not isinstance(linked, dict):
        raise ExternalServiceError(_SERVICE, f"malformed modular_content for quiz {name!r}")

    questions: dict[str, str | None] = {}
    for question in linked.values():
        if not isinstance(question, dict):
            continue
        question_id = (question.get("system") or {}).get("id")
        if question_id:
            questions[question_id] = _answer_codename(question)
    return QuizDefinition(id=quiz_id, questions=questions)


class ContentApiQuizProvider:
    def __init__(
        self,
        api_root: str,
        api_key: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_root = api_root.rstrip("/")
        self._api_key = api_key
        self._transport = transport
        self._timeout = timeout

    async def get_quiz_definition(self, name: str) -> QuizDefinition:
        url = f"{self._api_root}/items/{quote(name, safe='')}"
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        logger.debug("Fetching quiz definition %s", url)
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(_SERVICE, f"request for quiz {name!r} failed") from exc

        if response.status_code == 404:
            raise NotFoundError(f"quiz {name!r} not found")
        if response.is_error:
            raise ExternalServiceError(
                _SERVICE, f"quiz {name!r} returned HTTP {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalServiceError(_SERVICE, f"quiz {name!r} returned invalid JSON") from exc
        return parse_quiz_definition(body, name)


quiz_provider: QuizProvider = ContentApiQuizProvider(
    SETTINGS.content_api_root, SETTINGS.content_api_key
)
