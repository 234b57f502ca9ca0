"""
Frame Data Model
================

Value types for frame selection.

Design Rules:
    - A Frame is identified solely by the timestamp in its file name
    - Frames are immutable and never decoded by the selection layer
    - TimeWindow bounds are timezone-aware and exclusive on both ends
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Optional


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One timestamped still image on disk.

    Attributes:
        path: Location of the image file
        timestamp: UNIX epoch seconds parsed from the file name
    """

    path: Path
    timestamp: int

    def __repr__(self) -> str:
        return f"Frame(timestamp={self.timestamp}, path={self.path.name})"


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """
    Interval used to select frames.

    A frame matches when ``start < timestamp < end``; frames exactly on
    either boundary are excluded.

    Attributes:
        start: Lower bound (timezone-aware)
        end: Upper bound (timezone-aware)
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeWindow bounds must be timezone-aware")
        if self.start > self.end:
            raise ValueError(
                f"TimeWindow start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    @property
    def start_ts(self) -> float:
        return self.start.timestamp()

    @property
    def end_ts(self) -> float:
        return self.end.timestamp()

    def contains(self, timestamp: int) -> bool:
        """Whether a frame timestamp lies strictly inside the window."""
        return self.start_ts < timestamp < self.end_ts

    @classmethod
    def trailing_days(cls, days: float, now: Optional[datetime] = None) -> "TimeWindow":
        """Window covering the last ``days`` days up to ``now``."""
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return cls(start=now - timedelta(days=days), end=now)

    @classmethod
    def calendar_day(cls, day: date, utc_offset: tzinfo = timezone.utc) -> "TimeWindow":
        """
        Full calendar day in a fixed UTC offset.

        No daylight-saving correction is applied; the same offset is used
        for both midnights.
        """
        start = datetime.combine(day, time.min, tzinfo=utc_offset)
        return cls(start=start, end=start + timedelta(days=1))

    @classmethod
    def between(cls, start: datetime, end: datetime) -> "TimeWindow":
        """Explicit window. Naive datetimes are taken as UTC."""
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        return cls(start=start, end=end)

    def __repr__(self) -> str:
        return f"TimeWindow({self.start.isoformat()} .. {self.end.isoformat()})"
