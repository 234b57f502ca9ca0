"""
Request and Result Models
=========================

Types exchanged between the HTTP layer and the request resolver.

Example:
    from timelapse_server.models.frame import TimeWindow
    from timelapse_server.models.request import OutputFormat, TimelapseRequest

    request = TimelapseRequest(
        folder="garden",
        window=TimeWindow.trailing_days(1),
        fps=20,
        output_format=OutputFormat.MP4,
    )
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from timelapse_server.models.frame import TimeWindow


class OutputFormat(str, Enum):
    """Media produced for a request."""

    MP4 = "mp4"
    GIF = "gif"
    ZIP = "zip"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @classmethod
    def from_query(cls, value: Optional[str]) -> "OutputFormat":
        """
        Map the ``format`` query parameter to an output format.

        ``zip`` selects archival packaging, ``gif`` selects a GIF, and
        anything else (including no value) selects MP4.
        """
        if value is not None:
            normalized = value.strip().lower()
            if normalized == "zip":
                return cls.ZIP
            if normalized == "gif":
                return cls.GIF
        return cls.MP4


_MEDIA_TYPES = {
    OutputFormat.MP4: "video/mp4",
    OutputFormat.GIF: "image/gif",
    OutputFormat.ZIP: "application/zip",
}


@dataclass(frozen=True)
class TimelapseRequest:
    """
    A parsed timelapse request.

    Attributes:
        folder: Camera folder name (single path component)
        window: Frames strictly inside this window are selected
        fps: Output frame rate
        output_format: MP4, GIF or ZIP
        encoder_args: Replacement for the default encoder arguments
    """

    folder: str
    window: TimeWindow
    fps: int
    output_format: OutputFormat = OutputFormat.MP4
    encoder_args: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class TimelapseResult:
    """
    Encoded media ready to be returned.

    Attributes:
        body: Encoded bytes
        media_type: Content type of body
        cache_hit: True/False for cacheable formats, None for archives
    """

    body: bytes
    media_type: str
    cache_hit: Optional[bool] = None

    def __repr__(self) -> str:
        return (
            f"TimelapseResult(media_type={self.media_type}, "
            f"size={len(self.body)}, cache_hit={self.cache_hit})"
        )


@dataclass(frozen=True)
class CacheKey:
    """
    Fingerprint of an encode result.

    Built from the frames actually selected rather than the requested
    bounds, so trailing windows that resolve to the same frames share an
    entry. The frame count separates sets that share both endpoints.
    """

    folder: str
    first_timestamp: int
    last_timestamp: int
    frame_count: int
    fps: int
    encoder_args: Optional[Tuple[str, ...]]
    output_format: OutputFormat
