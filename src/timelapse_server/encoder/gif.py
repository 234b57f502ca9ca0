"""
GIF Encoder
===========

In-process GIF rendering for short previews.

Design Rules:
    - This is the ONLY place in the codebase that decodes images
    - Fails fast on corrupt frames
    - All frames are resized to the size of the first frame
"""

import io
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image

from timelapse_server.errors import FrameIOError, FramesNotFoundError
from timelapse_server.models.frame import Frame


logger = logging.getLogger(__name__)


def decode_frame_rgb(path: Path) -> np.ndarray:
    """
    Decode an image file to an RGB numpy array.

    Args:
        path: Image file

    Returns:
        RGB image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        FrameIOError: If the file cannot be read or decoded
    """
    try:
        data = np.fromfile(str(path), dtype=np.uint8)
    except OSError as e:
        raise FrameIOError(f"Cannot read frame {path}: {e}") from e

    if data.size == 0:
        raise FrameIOError(f"Frame {path} is empty")

    bgr = cv2.imdecode(data, cv2.IMREAD_COLOR)
    if bgr is None:
        raise FrameIOError(f"Failed to decode frame {path}: cv2.imdecode returned None")

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise FrameIOError(f"Invalid image shape for frame {path}: {bgr.shape}")

    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


def _target_size(shape: Tuple[int, ...], max_width: Optional[int]) -> Tuple[int, int]:
    height, width = shape[:2]
    if max_width is None or width <= max_width:
        return width, height
    scale = max_width / width
    return max_width, max(1, int(round(height * scale)))


class GifEncoder:
    """
    Renders frames into a looping GIF.

    Attributes:
        max_width: Frames wider than this are downscaled
        colors: Palette size per frame
    """

    def __init__(self, max_width: Optional[int] = 640, colors: int = 256) -> None:
        self.max_width = max_width
        self.colors = colors

    def encode(
        self,
        frames: Sequence[Frame],
        fps: int,
        args_override: Optional[Sequence[str]] = None,
    ) -> bytes:
        """
        Encode frames into a GIF.

        ``args_override`` is accepted for interface parity and ignored.

        Raises:
            FramesNotFoundError: If frames is empty
            FrameIOError: If a frame cannot be decoded
        """
        if not frames:
            raise FramesNotFoundError("No frames to encode")
        if fps < 1:
            raise ValueError(f"fps must be >= 1, got {fps}")

        logger.info(f"Rendering GIF from {len(frames)} frames at {fps} fps")

        size: Optional[Tuple[int, int]] = None
        images: List[Image.Image] = []
        for frame in frames:
            rgb = decode_frame_rgb(frame.path)
            if size is None:
                size = _target_size(rgb.shape, self.max_width)
            if (rgb.shape[1], rgb.shape[0]) != size:
                rgb = cv2.resize(rgb, size, interpolation=cv2.INTER_AREA)
            images.append(Image.fromarray(rgb).quantize(colors=self.colors))

        buffer = io.BytesIO()
        images[0].save(
            buffer,
            format="GIF",
            save_all=True,
            append_images=images[1:],
            duration=max(10, int(round(1000 / fps))),
            loop=0,
        )
        return buffer.getvalue()
