"""
Encoder Module
==============

Turns an ordered frame list into response bytes.

Components:
    - VideoEncoder: Protocol shared by all encoders
    - FFmpegEncoder: MP4 through an external ffmpeg process
    - GifEncoder: GIF rendered in-process (OpenCV + Pillow)
    - encode_to_archive: ZIP of the raw frame files
"""

from timelapse_server.encoder.archive import encode_to_archive
from timelapse_server.encoder.gif import GifEncoder, decode_frame_rgb
from timelapse_server.encoder.pipeline import (
    FFmpegEncoder,
    VideoEncoder,
    build_concat_script,
)

__all__ = [
    "VideoEncoder",
    "FFmpegEncoder",
    "GifEncoder",
    "build_concat_script",
    "decode_frame_rgb",
    "encode_to_archive",
]
