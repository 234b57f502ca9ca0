"""
Request Resolver
================

Maps a parsed TimelapseRequest to response bytes.

Pipeline:
    folder -> build_frame_index -> select(window) -> cache lookup
        hit  -> cached bytes (cache_hit=True)
        miss -> single-flight encode -> cache store (cache_hit=False)

ZIP requests bypass the encoder and the cache entirely.

All blocking work (directory listing, encoding) happens outside the cache
lock; the cache is only touched for point lookups and stores.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from timelapse_server.cache import ResultCache, SingleFlight
from timelapse_server.encoder import VideoEncoder, encode_to_archive
from timelapse_server.errors import FrameIOError, FramesNotFoundError, InvalidRequestError
from timelapse_server.frames import build_frame_index, select
from timelapse_server.models.frame import Frame
from timelapse_server.models.request import (
    CacheKey,
    OutputFormat,
    TimelapseRequest,
    TimelapseResult,
)


logger = logging.getLogger(__name__)


def make_cache_key(request: TimelapseRequest, frames: Sequence[Frame]) -> CacheKey:
    """
    Fingerprint a request by the frames it resolved to.

    GIFs are rendered in-process, so encoder arguments do not affect them.
    """
    encoder_args = request.encoder_args
    if request.output_format is OutputFormat.GIF:
        encoder_args = None

    return CacheKey(
        folder=request.folder,
        first_timestamp=frames[0].timestamp,
        last_timestamp=frames[-1].timestamp,
        frame_count=len(frames),
        fps=request.fps,
        encoder_args=encoder_args,
        output_format=request.output_format,
    )


class TimelapseResolver:
    """
    Resolves timelapse requests against a root of camera folders.

    Attributes:
        output_folder: Root containing one subfolder per camera
        cache: Shared result cache
        video_encoder: Encoder used for MP4 output
        gif_encoder: Encoder used for GIF output
        extension: Frame file extension

    Example:
        resolver = TimelapseResolver(
            output_folder="/data/cameras",
            cache=ResultCache(capacity=10),
            video_encoder=FFmpegEncoder(),
            gif_encoder=GifEncoder(),
        )
        result = resolver.resolve(request)
    """

    def __init__(
        self,
        output_folder: Union[str, Path],
        cache: ResultCache,
        video_encoder: VideoEncoder,
        gif_encoder: VideoEncoder,
        extension: str = ".jpg",
    ) -> None:
        self.output_folder = Path(output_folder)
        self.cache = cache
        self.video_encoder = video_encoder
        self.gif_encoder = gif_encoder
        self.extension = extension
        self._flights: SingleFlight[CacheKey, bytes] = SingleFlight()

    def folder_path(self, folder: str) -> Path:
        """
        Resolve a camera folder name under the output root.

        Raises:
            InvalidRequestError: If the name is not a single path component
        """
        if (
            not folder
            or folder in (".", "..")
            or "/" in folder
            or "\\" in folder
            or "\x00" in folder
        ):
            raise InvalidRequestError(f"Invalid folder name: {folder!r}")
        return self.output_folder / folder

    def list_folders(self) -> List[str]:
        """
        Names of the camera folders under the output root.

        Raises:
            FrameIOError: If the output root cannot be listed
        """
        try:
            with os.scandir(self.output_folder) as entries:
                names = [
                    entry.name
                    for entry in entries
                    if entry.is_dir() and not entry.name.startswith(".")
                ]
        except OSError as e:
            raise FrameIOError(f"Cannot list output folder {self.output_folder}: {e}") from e
        return sorted(names)

    def select_frames(self, request: TimelapseRequest) -> List[Frame]:
        """Frames of the requested folder inside the requested window."""
        frames = build_frame_index(self.folder_path(request.folder), self.extension)
        return select(frames, request.window)

    def resolve(self, request: TimelapseRequest) -> TimelapseResult:
        """
        Produce the media for a request.

        Raises:
            InvalidRequestError: Bad folder name
            FramesNotFoundError: Window contains no frames
            FrameIOError: Folder or frame unreadable
            EncodeError: Encoder failed
        """
        frames = self.select_frames(request)
        if not frames:
            raise FramesNotFoundError(
                f"No frames in {request.folder} for {request.window!r}"
            )

        logger.info(
            f"Resolved {len(frames)} frames for {request.folder} "
            f"({request.output_format.value}, fps={request.fps})"
        )

        if request.output_format is OutputFormat.ZIP:
            body = encode_to_archive(frames, self.extension)
            return TimelapseResult(body=body, media_type=request.output_format.media_type)

        body, cache_hit = self._encode_cached(request, frames)
        return TimelapseResult(
            body=body,
            media_type=request.output_format.media_type,
            cache_hit=cache_hit,
        )

    def _encoder_for(self, output_format: OutputFormat) -> VideoEncoder:
        if output_format is OutputFormat.GIF:
            return self.gif_encoder
        return self.video_encoder

    def _encode_cached(
        self,
        request: TimelapseRequest,
        frames: List[Frame],
    ) -> Tuple[bytes, bool]:
        key = make_cache_key(request, frames)

        cached: Optional[bytes] = self.cache.get(key)
        if cached is not None:
            logger.info(f"Cache hit for {request.folder} ({len(cached)} bytes)")
            return cached, True

        encoder = self._encoder_for(request.output_format)

        def compute() -> bytes:
            body = encoder.encode(frames, request.fps, request.encoder_args)
            self.cache.put(key, body)
            return body

        body, shared = self._flights.do(key, compute)
        if shared:
            logger.info(f"Shared in-flight encode for {request.folder}")
        else:
            logger.info(f"Cache miss for {request.folder}, stored {len(body)} bytes")
        return body, shared
