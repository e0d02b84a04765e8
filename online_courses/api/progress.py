"""Learner progress endpoints.

Reads return one node per enrolled course with its lectures and quizzes
as children.  Video writes answer with the fraction of the video
watched; a submission that could not be stored (malformed video id,
unknown video, no duration on record) is a 400.
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from online_courses.api.dependencies import CurrentUser
from online_courses.models.progress import ProgressNode, WatchInterval, WatchPoint
from online_courses.services.progress_ledger import MAX_VIDEO_POSITION, progress_ledger

router = APIRouter(prefix="/progress", tags=["progress"])


class WatchPointIn(BaseModel):
    # seconds into the video
    position: float = Field(ge=0, le=MAX_VIDEO_POSITION, allow_inf_nan=False)
    time: int  # client epoch milliseconds


class WatchIntervalIn(BaseModel):
    start: WatchPointIn
    end: WatchPointIn

    def to_model(self) -> WatchInterval:
        return WatchInterval(
            start=WatchPoint(self.start.position, self.start.time),
            end=WatchPoint(self.end.position, self.end.time),
        )


class VideoProgressIn(BaseModel):
    type: str = "lecture"
    lecture_id: str | None = None
    position: float = Field(ge=0, le=MAX_VIDEO_POSITION, allow_inf_nan=False)
    time: int


class WatchBatchIn(BaseModel):
    type: str = "lecture"
    lecture_id: str | None = None
    intervals: list[WatchIntervalIn]


class VideoProgressOut(BaseModel):
    progress: float


class VideoStatusOut(BaseModel):
    video_id: str
    lecture_id: str | None = None
    position: int
    last_activity_at: int


class ProgressNodeOut(BaseModel):
    item_id: str
    item_type: str
    name: str
    progress_percentage: float
    started: bool
    completed: bool
    last_activity_at: int | None = None
    complete_date: int | None = None
    instruction_hours: float | None = None
    lecture_id: str | None = None
    children: list[ProgressNodeOut] = []
    video_statuses: list[VideoStatusOut] | None = None

    @classmethod
    def from_model(cls, node: ProgressNode) -> ProgressNodeOut:
        return cls(
            item_id=node.item_id,
            item_type=node.item_type,
            name=node.name,
            progress_percentage=float(node.progress_percentage),
            started=node.started,
            completed=node.completed,
            last_activity_at=node.last_activity_at,
            complete_date=node.complete_date,
            instruction_hours=(
                float(node.instruction_hours) if node.instruction_hours is not None else None
            ),
            lecture_id=node.lecture_id,
            children=[cls.from_model(c) for c in node.children],
            video_statuses=(
                [
                    VideoStatusOut(
                        video_id=v.video_id,
                        lecture_id=v.lecture_id,
                        position=v.last_position,
                        last_activity_at=v.last_activity_at,
                    )
                    for v in node.video_statuses
                ]
                if node.video_statuses is not None
                else None
            ),
        )


def _video_response(progress: Decimal) -> VideoProgressOut:
    if progress < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Video progress not recorded",
        )
    return VideoProgressOut(progress=float(progress))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("", response_model=list[ProgressNodeOut])
async def all_progress(
    principal: CurrentUser, include_video_detail: bool = False
) -> list[ProgressNodeOut]:
    nodes = await progress_ledger.get_course_progress(
        principal.user_id, include_video_detail=include_video_detail
    )
    return [ProgressNodeOut.from_model(n) for n in nodes]


@router.get("/{course_id}", response_model=list[ProgressNodeOut])
async def course_progress(
    course_id: str, principal: CurrentUser, include_video_detail: bool = False
) -> list[ProgressNodeOut]:
    nodes = await progress_ledger.get_course_progress(
        principal.user_id, course_id, include_video_detail=include_video_detail
    )
    return [ProgressNodeOut.from_model(n) for n in nodes]


# ---------------------------------------------------------------------------
# Video writes
# ---------------------------------------------------------------------------


@router.post("/{course_id}/videos/{video_id}", response_model=VideoProgressOut)
async def video_progress(
    course_id: str, video_id: str, body: VideoProgressIn, principal: CurrentUser
) -> VideoProgressOut:
    progress = await progress_ledger.record_video_progress(
        body.type,
        principal.user_id,
        course_id,
        video_id,
        body.lecture_id,
        body.position,
        body.time,
    )
    return _video_response(progress)


@router.post(
    "/{course_id}/lectures/{lecture_id}/videos/{video_id}",
    response_model=VideoProgressOut,
)
async def lecture_video_batch(
    course_id: str,
    lecture_id: str,
    video_id: str,
    body: WatchBatchIn,
    principal: CurrentUser,
) -> VideoProgressOut:
    """Replays each interval in order; answers with the furthest progress."""
    progress = await progress_ledger.record_lecture_video_batch(
        body.type,
        principal.user_id,
        course_id,
        video_id,
        lecture_id,
        [i.to_model() for i in body.intervals],
    )
    return _video_response(progress)


@router.post("/{course_id}/videos/{video_id}/bulk", response_model=VideoProgressOut)
async def bulk_video_progress(
    course_id: str, video_id: str, body: WatchBatchIn, principal: CurrentUser
) -> VideoProgressOut:
    progress = await progress_ledger.record_bulk_video_progress(
        body.type,
        principal.user_id,
        course_id,
        video_id,
        body.lecture_id,
        [i.to_model() for i in body.intervals],
    )
    return _video_response(progress)
