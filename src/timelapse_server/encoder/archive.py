"""
Frame Archive
=============

Packages raw frame files into an uncompressed ZIP, bypassing the encoder.
"""

import io
import logging
import zipfile
from typing import Sequence

from timelapse_server.errors import FrameIOError, FramesNotFoundError
from timelapse_server.models.frame import Frame


logger = logging.getLogger(__name__)


def encode_to_archive(frames: Sequence[Frame], extension: str = ".jpg") -> bytes:
    """
    Store each frame as ``<timestamp><extension>`` in a ZIP archive.

    Entry order is not part of the contract. Frames whose entry name is
    already taken are skipped.

    Raises:
        FramesNotFoundError: If frames is empty
        FrameIOError: If any frame cannot be read; no partial archive is returned
    """
    if not frames:
        raise FramesNotFoundError("No frames to archive")

    buffer = io.BytesIO()
    names = set()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
        for frame in frames:
            name = f"{frame.timestamp}{extension}"
            if name in names:
                logger.debug(f"Skipping duplicate archive entry {name} ({frame.path})")
                continue

            try:
                data = frame.path.read_bytes()
            except OSError as e:
                raise FrameIOError(f"Cannot read frame {frame.path}: {e}") from e

            archive.writestr(name, data)
            names.add(name)

    logger.info(f"Archived {len(names)} frames ({buffer.tell()} bytes)")
    return buffer.getvalue()
