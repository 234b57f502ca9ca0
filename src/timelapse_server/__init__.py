"""
Timelapse Server
================

Serves timelapses (MP4, GIF or a ZIP of raw frames) compiled on demand
from folders of timestamp-named still images.

Components:
    - frames: Frame index and time-window selection
    - encoder: ffmpeg pipeline, GIF rendering and ZIP packaging
    - cache: Bounded FIFO result cache and single-flight encodes
    - resolver: Request -> frames -> cached or fresh media
    - main: FastAPI application

Example:
    OUTPUT_FOLDER=/data/cameras python -m timelapse_server.main
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
