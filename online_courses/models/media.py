from __future__ import annotations

from dataclasses import asdict, dataclass

# Vimeo file heights offered to the player as alternate resolutions.
RENDITION_HEIGHTS: tuple[int, ...] = (360, 720, 1024)


@dataclass(frozen=True, slots=True)
class VideoRendition:
    """Signed playback parameters for one resolution of a Vimeo video."""

    resolution: str  # e.g. "720p"
    signature: str | None = None
    token: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)
