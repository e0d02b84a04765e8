"""Alternate video resolutions from the Vimeo API.

The player needs signed links for the 360p/720p/1024p files of a video.
Vimeo returns full file URLs; only the signature and token query
parameters are handed to the client.  Results are cached per video id
without expiry, read-through.
"""

from __future__ import annotations

import json
import logging
import re

import httpx

from online_courses.core.config import SETTINGS
from online_courses.core.errors import ExternalServiceError, NotFoundError, ValidationError
from online_courses.models.media import RENDITION_HEIGHTS, VideoRendition
from online_courses.services.cache import CacheService, cache_service

logger = logging.getLogger(__name__)

_SERVICE = "vimeo"
_SIGNATURE_RE = re.compile(r"[?&]s(ignature)?=([^&]+)")
_TOKEN_RE = re.compile(r"[?&]oauth2_token_id?=([^&]+)")


def _cache_key(video_id: int) -> str:
    return f"vimeo:{video_id}"


def parse_video_id(raw: str | int) -> int:
    try:
        video_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Vimeo id must be numeric (got {raw!r})") from None
    if video_id <= 0:
        raise ValidationError(f"Vimeo id must be positive (got {raw!r})")
    return video_id


def renditions_from_files(files: list[dict]) -> dict[str, VideoRendition]:
    """Map "<height>p" to signed link parameters.  First file per height wins."""
    renditions: dict[str, VideoRendition] = {}
    for f in files:
        height = f.get("height")
        if height not in RENDITION_HEIGHTS:
            continue
        label = f"{height}p"
        if label in renditions:
            continue
        link = f.get("link") or ""
        signature = _SIGNATURE_RE.search(link)
        token = _TOKEN_RE.search(link)
        renditions[label] = VideoRendition(
            resolution=label,
            signature=signature.group(2) if signature else None,
            token=token.group(1) if token else None,
        )
    return renditions


class VimeoMediaService:
    def __init__(
        self,
        api_root: str,
        access_token: str | None,
        cache: CacheService,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_root = api_root.rstrip("/")
        self._access_token = access_token
        self._cache = cache
        self._transport = transport
        self._timeout = timeout

    async def _fetch_files(self, client: httpx.AsyncClient, video_id: int) -> list[dict]:
        headers = (
            {"Authorization": f"Bearer {self._access_token}"} if self._access_token else {}
        )
        try:
            response = await client.get(f"{self._api_root}/videos/{video_id}", headers=headers)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(_SERVICE, f"request for video {video_id} failed") from exc
        if response.status_code == 404:
            raise NotFoundError(f"Vimeo video {video_id} not found")
        if response.is_error:
            raise ExternalServiceError(
                _SERVICE, f"video {video_id} returned HTTP {response.status_code}"
            )
        try:
            files = response.json().get("files") or []
        except (ValueError, AttributeError) as exc:
            raise ExternalServiceError(_SERVICE, f"video {video_id} returned invalid JSON") from exc
        return [f for f in files if isinstance(f, dict)]

    async def _renditions(
        self, client: httpx.AsyncClient, video_id: int
    ) -> dict[str, VideoRendition]:
        cached = await self._cache.get(_cache_key(video_id))
        if cached is not None:
            return {label: VideoRendition(**r) for label, r in json.loads(cached).items()}

        renditions = renditions_from_files(await self._fetch_files(client, video_id))
        logger.debug("Fetched %d renditions for video=%d", len(renditions), video_id)
        await self._cache.set(
            _cache_key(video_id),
            json.dumps({label: r.to_dict() for label, r in renditions.items()}),
        )
        return renditions

    async def get_video_renditions(self, video_id: int) -> dict[str, VideoRendition]:
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            return await self._renditions(client, video_id)

    async def get_many(self, video_ids: list[int]) -> list[tuple[int, dict[str, VideoRendition]]]:
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            return [(vid, await self._renditions(client, vid)) for vid in video_ids]


media_service = VimeoMediaService(
    SETTINGS.vimeo_api_root, SETTINGS.vimeo_access_token, cache_service
)
