"""
Test Configuration
==================

Pytest fixtures and test configuration for the timelapse server.
"""

import threading
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pytest


class StubEncoder:
    """Records encode calls and returns bytes derived from the frames."""

    def __init__(
        self,
        label: bytes = b"video",
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.label = label
        self.error = error
        self.gate = gate
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def encode(self, frames: Sequence, fps: int, args_override=None) -> bytes:
        with self._lock:
            self.calls.append((list(frames), fps, args_override))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        stamps = ",".join(str(frame.timestamp) for frame in frames)
        return self.label + f":{stamps}@{fps}".encode()


@pytest.fixture
def write_frames():
    """Write placeholder frame files named by timestamp."""

    def _write(folder: Path, timestamps: Iterable[int], extension: str = ".jpg") -> List[Path]:
        folder.mkdir(parents=True, exist_ok=True)
        paths = []
        for timestamp in timestamps:
            path = folder / f"{timestamp}{extension}"
            path.write_bytes(f"frame-{timestamp}".encode())
            paths.append(path)
        return paths

    return _write


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Create an executable shell script standing in for ffmpeg."""

    def _make(body: str, name: str = "fake-ffmpeg") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(0o755)
        return str(path)

    return _make


@pytest.fixture
def video_stub():
    return StubEncoder(label=b"video")


@pytest.fixture
def gif_stub():
    return StubEncoder(label=b"gif")
