"""Alternate video resolutions for the player."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from online_courses.api.dependencies import CurrentUser
from online_courses.models.media import VideoRendition
from online_courses.services.media_service import media_service, parse_video_id

router = APIRouter(prefix="/multimedia", tags=["multimedia"])


class RenditionOut(BaseModel):
    resolution: str
    signature: str | None = None
    token: str | None = None


class VideoRenditionsOut(BaseModel):
    vimeo_id: int
    resolutions: dict[str, RenditionOut]


def _resolutions(renditions: dict[str, VideoRendition]) -> dict[str, RenditionOut]:
    return {label: RenditionOut(**r.to_dict()) for label, r in renditions.items()}


@router.get("/vimeo/{video_id}", response_model=dict[str, RenditionOut])
async def video_renditions(video_id: str, _principal: CurrentUser) -> dict[str, RenditionOut]:
    renditions = await media_service.get_video_renditions(parse_video_id(video_id))
    return _resolutions(renditions)


@router.post("/vimeo", response_model=list[VideoRenditionsOut])
async def many_video_renditions(
    video_ids: list[str], _principal: CurrentUser
) -> list[VideoRenditionsOut]:
    """Renditions for several videos, in request order."""
    ids = [parse_video_id(v) for v in video_ids]
    return [
        VideoRenditionsOut(vimeo_id=vid, resolutions=_resolutions(renditions))
        for vid, renditions in await media_service.get_many(ids)
    ]
