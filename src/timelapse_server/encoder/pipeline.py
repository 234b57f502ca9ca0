"""
Encoder Pipeline
================

Streams an ordered frame list into ffmpeg and collects the encoded video.

Frames are never decoded in-process on this path. The selected paths are
rendered as an ffconcat script (one ``file``/``duration`` pair per frame)
and written to the encoder's stdin, which reads it with the concat
demuxer.

Pipe Handling:
    stdin is fed by a writer thread while stdout and stderr are drained
    by reader threads. The calling thread only waits for the process to
    exit, so a frame list larger than the OS pipe buffer cannot deadlock
    against ffmpeg's own output buffering.

Output Modes:
    pipe      - output written to stdout and captured in memory
    tempfile  - output written into a scoped temporary directory, read
                back after exit and removed on every exit path
"""

import logging
import os
import signal
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import IO, List, Optional, Protocol, Sequence

from timelapse_server.config import DEFAULT_FFMPEG_ARGS
from timelapse_server.errors import EncodeError, FrameIOError, FramesNotFoundError
from timelapse_server.models.frame import Frame


logger = logging.getLogger(__name__)

# How long reader threads may linger after a timed-out encoder is killed
READER_GRACE_SECONDS = 5.0


class VideoEncoder(Protocol):
    """
    Protocol for encoders used by the request resolver.

    Implemented by:
        - FFmpegEncoder (MP4 through an external process)
        - GifEncoder (GIF in-process)
    """

    def encode(
        self,
        frames: Sequence[Frame],
        fps: int,
        args_override: Optional[Sequence[str]] = None,
    ) -> bytes:
        ...


def _quote(path: Path) -> str:
    # ffconcat quoting: close the quote, emit an escaped quote, reopen
    return "'" + os.path.abspath(path).replace("'", "'\\''") + "'"


def build_concat_script(frames: Sequence[Frame], fps: int) -> str:
    """
    Render an ffconcat script holding each frame for ``1/fps`` seconds.

    The last file is listed twice because the concat demuxer ignores the
    duration of the final entry.

    Args:
        frames: Frames in playback order
        fps: Output frame rate

    Returns:
        Script text
    """
    if fps < 1:
        raise ValueError(f"fps must be >= 1, got {fps}")

    duration = 1.0 / fps
    lines = ["ffconcat version 1.0"]
    for frame in frames:
        lines.append(f"file {_quote(frame.path)}")
        lines.append(f"duration {duration:.6f}")
    if frames:
        lines.append(f"file {_quote(frames[-1].path)}")
    return "\n".join(lines) + "\n"


def _write_stdin(stream: IO[bytes], payload: bytes) -> None:
    try:
        stream.write(payload)
    except (BrokenPipeError, ValueError):
        # Encoder exited before reading everything; its status reports why
        logger.debug("Encoder closed stdin early")
    except OSError as e:
        logger.warning(f"Failed writing concat script to encoder: {e}")
    finally:
        try:
            stream.close()
        except OSError:
            pass


def _kill_group(process: subprocess.Popen) -> None:
    """Kill the encoder and any children sharing its process group."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.warning(f"Cannot kill encoder process group: {e}")
        process.kill()


def _drain(stream: IO[bytes], sink: List[bytes]) -> None:
    try:
        sink.append(stream.read())
    finally:
        stream.close()


class FFmpegEncoder:
    """
    ffmpeg-backed video encoder.

    Attributes:
        binary: Encoder executable
        default_args: Output arguments used without an override
        output_mode: "pipe" or "tempfile"
        timeout_seconds: Kill the encoder after this long (None = never)

    Example:
        encoder = FFmpegEncoder()
        video = encoder.encode(frames, fps=20)
    """

    def __init__(
        self,
        binary: str = "ffmpeg",
        default_args: Optional[Sequence[str]] = None,
        output_mode: str = "pipe",
        timeout_seconds: Optional[float] = 300.0,
        output_suffix: str = ".mp4",
    ) -> None:
        if output_mode not in ("pipe", "tempfile"):
            raise ValueError(f"Unknown output mode: {output_mode}")

        self.binary = binary
        self.default_args = list(default_args) if default_args is not None else list(DEFAULT_FFMPEG_ARGS)
        self.output_mode = output_mode
        self.timeout_seconds = timeout_seconds
        self.output_suffix = output_suffix

    def command(self, args: Sequence[str], output: str) -> List[str]:
        """Full argument vector reading the concat script from stdin."""
        return [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-protocol_whitelist", "file,pipe",
            "-i", "pipe:0",
            *args,
            output,
        ]

    def encode(
        self,
        frames: Sequence[Frame],
        fps: int,
        args_override: Optional[Sequence[str]] = None,
    ) -> bytes:
        """
        Encode frames into a video.

        Args:
            frames: Frames in playback order
            fps: Output frame rate
            args_override: Replaces the default output arguments verbatim

        Returns:
            Encoded bytes

        Raises:
            FramesNotFoundError: If frames is empty (nothing is spawned)
            EncodeError: On non-zero exit, timeout or empty output
            FrameIOError: If the temporary output cannot be read
        """
        if not frames:
            raise FramesNotFoundError("No frames to encode")

        args = list(args_override) if args_override is not None else self.default_args
        script = build_concat_script(frames, fps).encode("utf-8")

        logger.info(
            f"Encoding {len(frames)} frames at {fps} fps "
            f"({frames[0].timestamp}..{frames[-1].timestamp}, mode={self.output_mode})"
        )

        if self.output_mode == "tempfile":
            with tempfile.TemporaryDirectory(prefix="timelapse-") as tmp:
                output_path = Path(tmp) / f"output{self.output_suffix}"
                self._run(self.command(args, str(output_path)), script)
                if not output_path.exists():
                    raise EncodeError("Encoder produced no output file")
                try:
                    return output_path.read_bytes()
                except OSError as e:
                    raise FrameIOError(f"Cannot read encoder output: {e}") from e

        output = self._run(self.command(args, "pipe:1"), script)
        if not output:
            raise EncodeError("Encoder produced no output")
        return output

    def _run(self, cmd: List[str], script: bytes) -> bytes:
        """Run the encoder, feeding ``script`` on stdin. Returns stdout."""
        started = time.monotonic()
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise EncodeError(f"Cannot start encoder {self.binary!r}: {e}") from e

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        threads = [
            threading.Thread(
                target=_write_stdin,
                args=(process.stdin, script),
                name="encoder-stdin",
                daemon=True,
            ),
            threading.Thread(
                target=_drain,
                args=(process.stdout, stdout_chunks),
                name="encoder-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=_drain,
                args=(process.stderr, stderr_chunks),
                name="encoder-stderr",
                daemon=True,
            ),
        ]
        for thread in threads:
            thread.start()

        timed_out = False
        try:
            returncode = process.wait(timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired:
            timed_out = True
            _kill_group(process)
            returncode = process.wait()
        finally:
            for thread in threads:
                thread.join(timeout=READER_GRACE_SECONDS if timed_out else None)

        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace").strip()
        elapsed = time.monotonic() - started

        if timed_out:
            logger.error(f"Encoder timed out after {self.timeout_seconds}s: {stderr}")
            raise EncodeError(f"Encoder timed out after {self.timeout_seconds}s", stderr=stderr)

        if returncode != 0:
            logger.error(f"Encoder exited with status {returncode}: {stderr}")
            raise EncodeError(f"Encoder exited with status {returncode}", stderr=stderr)

        output = b"".join(stdout_chunks)
        logger.info(f"Encoder finished in {elapsed:.2f}s ({len(output)} bytes on stdout)")
        return output
