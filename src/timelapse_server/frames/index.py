"""
Frame Index
===========

Scans a camera folder and turns timestamp-named files into Frames.

Design Rules:
    - Non-recursive: only immediate children are considered
    - The timestamp comes from the file name alone (extension stripped)
    - Names that do not parse are skipped, never reported
    - A missing or unreadable folder is an error, not an empty result
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Union

from timelapse_server.errors import FrameIOError
from timelapse_server.models.frame import Frame


logger = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(r"^[0-9]+$")


def parse_frame_timestamp(name: str, extension: str = ".jpg") -> Optional[int]:
    """
    Parse the timestamp encoded in a frame file name.

    Args:
        name: Base name of the file, e.g. ``1700000000.jpg``
        extension: Suffix stripped before parsing

    Returns:
        Epoch seconds, or None if the name is not a timestamp
    """
    stem = name[: -len(extension)] if extension and name.endswith(extension) else name
    if not _TIMESTAMP_RE.match(stem):
        return None
    return int(stem)


def build_frame_index(folder: Union[str, Path], extension: str = ".jpg") -> List[Frame]:
    """
    List the frames stored directly in ``folder``.

    Args:
        folder: Camera folder
        extension: Frame file extension

    Returns:
        Unordered list of Frames

    Raises:
        FrameIOError: If the folder does not exist or cannot be listed
    """
    folder = Path(folder)
    frames: List[Frame] = []
    skipped = 0

    try:
        with os.scandir(folder) as entries:
            for entry in entries:
                try:
                    if not entry.is_file():
                        continue
                except OSError:
                    skipped += 1
                    continue

                timestamp = parse_frame_timestamp(entry.name, extension)
                if timestamp is None:
                    skipped += 1
                    continue

                frames.append(Frame(path=Path(entry.path), timestamp=timestamp))
    except OSError as e:
        raise FrameIOError(f"Cannot list frame folder {folder}: {e}") from e

    logger.debug(f"Indexed {len(frames)} frames in {folder} (skipped {skipped})")
    return frames
