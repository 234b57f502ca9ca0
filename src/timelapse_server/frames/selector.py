"""
Range Selector
==============

Selects the frames of a time window in playback order.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from timelapse_server.models.frame import Frame, TimeWindow


def select(frames: Iterable[Frame], window: TimeWindow) -> List[Frame]:
    """
    Return the frames strictly inside ``window``, oldest first.

    The sort is stable, so frames sharing a timestamp keep their input
    order.
    """
    start = window.start_ts
    end = window.end_ts
    selected = [frame for frame in frames if start < frame.timestamp < end]
    selected.sort(key=lambda frame: frame.timestamp)
    return selected


def trailing_days(
    frames: Iterable[Frame],
    days: float,
    now: Optional[datetime] = None,
) -> List[Frame]:
    """Frames captured during the last ``days`` days."""
    return select(frames, TimeWindow.trailing_days(days, now=now))
