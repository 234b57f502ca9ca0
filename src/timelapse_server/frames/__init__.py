"""
Frames Module
=============

Frame discovery and time-window selection.

    - build_frame_index: list timestamp-named files of a camera folder
    - select: frames strictly inside a TimeWindow, oldest first
    - trailing_days: select over the last N days

Example:
    from timelapse_server.frames import build_frame_index, trailing_days

    frames = build_frame_index("/data/garden")
    last_day = trailing_days(frames, 1)
"""

from timelapse_server.frames.index import build_frame_index, parse_frame_timestamp
from timelapse_server.frames.selector import select, trailing_days


__all__ = [
    "build_frame_index",
    "parse_frame_timestamp",
    "select",
    "trailing_days",
]
