"""
Data Models
===========

Value types for the timelapse server.

Models:
    Frames:
        - Frame: One timestamped image file
        - TimeWindow: Exclusive selection interval

    Requests:
        - OutputFormat: MP4, GIF or ZIP
        - TimelapseRequest: Parsed request handed to the resolver
        - TimelapseResult: Encoded bytes + media type + cache indicator
        - CacheKey: Fingerprint of an encode result
"""

from timelapse_server.models.frame import Frame, TimeWindow
from timelapse_server.models.request import (
    CacheKey,
    OutputFormat,
    TimelapseRequest,
    TimelapseResult,
)

__all__ = [
    # Frames
    "Frame",
    "TimeWindow",
    # Requests
    "OutputFormat",
    "TimelapseRequest",
    "TimelapseResult",
    "CacheKey",
]
