from __future__ import annotations

import asyncio

import httpx
import pytest

from online_courses.core.errors import ExternalServiceError, NotFoundError, ValidationError
from online_courses.services.cache import InMemoryCacheService
from online_courses.services.media_service import (
    VimeoMediaService,
    parse_video_id,
    renditions_from_files,
)

FILES = [
    {"height": 240, "link": "https://player.example/v/240.mp4?s=sig240&oauth2_token_id=tok"},
    {"height": 360, "link": "https://player.example/v/360.mp4?s=sig360&oauth2_token_id=tok360"},
    {"height": 720, "link": "https://player.example/v/720.mp4?signature=sig720&oauth2_token_id=t7"},
    {"height": 720, "link": "https://player.example/v/720b.mp4?s=other&oauth2_token_id=t8"},
    {"height": 1024, "link": "https://player.example/v/1024.mp4"},
]


class FakeVimeo:
    def __init__(self, status: int = 200, files: list[dict] | None = None) -> None:
        self.status = status
        self.files = FILES if files is None else files
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if self.status != 200:
            return httpx.Response(self.status)
        return httpx.Response(200, json={"files": self.files})


def _service(fake: FakeVimeo, cache: InMemoryCacheService | None = None) -> VimeoMediaService:
    return VimeoMediaService(
        "https://api.vimeo.example",
        "vimeo-token",
        cache or InMemoryCacheService(),
        transport=httpx.MockTransport(fake),
    )


# ---- parsing ----


@pytest.mark.parametrize(("raw", "expected"), [("123", 123), (456, 456), (" 7 ", 7)])
def test_parse_video_id(raw: str | int, expected: int) -> None:
    assert parse_video_id(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "", "0", "-5", "1.5"])
def test_parse_video_id_rejects(raw: str) -> None:
    with pytest.raises(ValidationError):
        parse_video_id(raw)


def test_renditions_from_files() -> None:
    renditions = renditions_from_files(FILES)
    assert set(renditions) == {"360p", "720p", "1024p"}
    assert renditions["360p"].signature == "sig360"
    assert renditions["360p"].token == "tok360"
    # first 720p file wins; "signature=" spelled out also matches
    assert renditions["720p"].signature == "sig720"
    assert renditions["720p"].token == "t7"
    assert renditions["1024p"].signature is None
    assert renditions["1024p"].token is None


# ---- service ----


def test_get_video_renditions_fetches_and_caches() -> None:
    fake = FakeVimeo()
    cache = InMemoryCacheService()
    service = _service(fake, cache)

    first = asyncio.run(service.get_video_renditions(42))
    second = asyncio.run(service.get_video_renditions(42))

    assert first == second
    assert fake.calls == ["/videos/42"]
    assert asyncio.run(cache.get("vimeo:42")) is not None


def test_get_many_keeps_request_order() -> None:
    fake = FakeVimeo()
    results = asyncio.run(_service(fake).get_many([3, 1, 2]))
    assert [vid for vid, _ in results] == [3, 1, 2]
    assert fake.calls == ["/videos/3", "/videos/1", "/videos/2"]


def test_unknown_video_is_not_found() -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(_service(FakeVimeo(status=404)).get_video_renditions(42))


def test_upstream_failure_is_external_error_and_not_cached() -> None:
    cache = InMemoryCacheService()
    with pytest.raises(ExternalServiceError):
        asyncio.run(_service(FakeVimeo(status=503), cache).get_video_renditions(42))
    assert asyncio.run(cache.get("vimeo:42")) is None


def test_video_without_files_yields_no_renditions() -> None:
    assert asyncio.run(_service(FakeVimeo(files=[])).get_video_renditions(42)) == {}
