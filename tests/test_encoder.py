"""
Encoder Tests
=============

The ffmpeg pipeline is exercised with small shell scripts standing in for
the encoder binary.
"""

import io
import subprocess
import time
import zipfile
from pathlib import Path

import cv2
import numpy as np
import pytest
from PIL import Image

from timelapse_server.encoder import (
    FFmpegEncoder,
    GifEncoder,
    build_concat_script,
    encode_to_archive,
)
from timelapse_server.errors import EncodeError, FrameIOError, FramesNotFoundError
from timelapse_server.models.frame import Frame


def _frames(paths):
    return [Frame(path=path, timestamp=int(path.stem)) for path in paths]


class TestConcatScript:
    """Tests for the ffconcat script."""

    def test_script_layout(self, tmp_path):
        frames = [Frame(tmp_path / "1.jpg", 1), Frame(tmp_path / "2.jpg", 2)]

        lines = build_concat_script(frames, 20).splitlines()

        assert lines == [
            "ffconcat version 1.0",
            f"file '{tmp_path / '1.jpg'}'",
            "duration 0.050000",
            f"file '{tmp_path / '2.jpg'}'",
            "duration 0.050000",
            f"file '{tmp_path / '2.jpg'}'",
        ]

    def test_quotes_escaped(self, tmp_path):
        frames = [Frame(tmp_path / "it's" / "1.jpg", 1)]

        script = build_concat_script(frames, 1)

        assert "it'\\''s" in script

    def test_invalid_fps(self, tmp_path):
        with pytest.raises(ValueError):
            build_concat_script([Frame(tmp_path / "1.jpg", 1)], 0)


class TestFFmpegEncoder:
    """Tests for the subprocess pipeline."""

    def test_empty_frames_never_spawn(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("encoder must not be spawned")

        monkeypatch.setattr(subprocess, "Popen", fail)

        with pytest.raises(FramesNotFoundError):
            FFmpegEncoder().encode([], fps=20)

    def test_stdout_captured(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10, 20, 30]))
        encoder = FFmpegEncoder(binary=fake_ffmpeg("cat"))

        output = encoder.encode(frames, fps=10)

        assert output == build_concat_script(frames, 10).encode()

    def test_large_frame_list_does_not_deadlock(self, tmp_path, fake_ffmpeg):
        frames = [Frame(tmp_path / f"{n}.jpg", n) for n in range(20000)]
        encoder = FFmpegEncoder(binary=fake_ffmpeg("cat"), timeout_seconds=30)

        output = encoder.encode(frames, fps=30)

        assert len(output) > 1024 * 1024
        assert output.endswith(f"file '{tmp_path / '19999.jpg'}'\n".encode())

    def test_default_args_used(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        encoder = FFmpegEncoder(binary=fake_ffmpeg("cat >/dev/null\nprintf '%s\\n' \"$@\""))

        args = encoder.encode(frames, fps=10).decode().splitlines()

        assert args[-1] == "pipe:1"
        assert "libx264" in args
        assert args[args.index("-i") + 1] == "pipe:0"

    def test_args_override_replaces_defaults(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        encoder = FFmpegEncoder(binary=fake_ffmpeg("cat >/dev/null\nprintf '%s\\n' \"$@\""))

        args = encoder.encode(frames, fps=10, args_override=["-f", "webm"]).decode().splitlines()

        assert args[-3:] == ["-f", "webm", "pipe:1"]
        assert "libx264" not in args

    def test_nonzero_exit(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        encoder = FFmpegEncoder(binary=fake_ffmpeg("echo 'Unknown encoder' >&2\nexit 3"))

        with pytest.raises(EncodeError) as excinfo:
            encoder.encode(frames, fps=10)

        assert "3" in excinfo.value.reason
        assert excinfo.value.stderr == "Unknown encoder"

    def test_empty_stdout(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        encoder = FFmpegEncoder(binary=fake_ffmpeg("cat >/dev/null"))

        with pytest.raises(EncodeError, match="no output"):
            encoder.encode(frames, fps=10)

    def test_missing_binary(self, tmp_path, write_frames):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        encoder = FFmpegEncoder(binary=str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(EncodeError, match="Cannot start encoder"):
            encoder.encode(frames, fps=10)

    def test_timeout_kills_encoder(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        encoder = FFmpegEncoder(binary=fake_ffmpeg("exec sleep 30"), timeout_seconds=0.3)

        with pytest.raises(EncodeError, match="timed out"):
            encoder.encode(frames, fps=10)

    def test_timeout_kills_encoder_children(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        # sleep runs as a child of the shell and inherits its stdout
        encoder = FFmpegEncoder(binary=fake_ffmpeg("sleep 30\necho done"), timeout_seconds=0.3)

        started = time.monotonic()
        with pytest.raises(EncodeError, match="timed out"):
            encoder.encode(frames, fps=10)

        assert time.monotonic() - started < 10

    def test_tempfile_mode(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10, 20]))
        record = tmp_path / "output-path"
        script = (
            "for last; do :; done\n"
            f"echo \"$last\" > '{record}'\n"
            "cat > \"$last\""
        )
        encoder = FFmpegEncoder(binary=fake_ffmpeg(script), output_mode="tempfile")

        output = encoder.encode(frames, fps=5)

        assert output == build_concat_script(frames, 5).encode()
        written = Path(record.read_text().strip())
        assert written.suffix == ".mp4"
        assert not written.parent.exists()

    def test_tempfile_mode_missing_output(self, tmp_path, write_frames, fake_ffmpeg):
        frames = _frames(write_frames(tmp_path / "cam", [10]))
        encoder = FFmpegEncoder(binary=fake_ffmpeg("cat >/dev/null"), output_mode="tempfile")

        with pytest.raises(EncodeError, match="no output file"):
            encoder.encode(frames, fps=10)

    def test_unknown_output_mode(self):
        with pytest.raises(ValueError):
            FFmpegEncoder(output_mode="socket")


class TestArchive:
    """Tests for ZIP packaging."""

    def test_three_frames(self, tmp_path, write_frames):
        paths = write_frames(tmp_path / "cam", [100, 200, 300])

        data = encode_to_archive(_frames(paths))

        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            assert sorted(archive.namelist()) == ["100.jpg", "200.jpg", "300.jpg"]
            for path in paths:
                info = archive.getinfo(path.name)
                assert info.compress_type == zipfile.ZIP_STORED
                assert archive.read(path.name) == path.read_bytes()

    def test_unreadable_frame_aborts(self, tmp_path, write_frames):
        frames = _frames(write_frames(tmp_path / "cam", [100]))
        frames.append(Frame(tmp_path / "cam" / "200.jpg", 200))

        with pytest.raises(FrameIOError):
            encode_to_archive(frames)

    def test_empty(self):
        with pytest.raises(FramesNotFoundError):
            encode_to_archive([])


class TestGifEncoder:
    """Tests for in-process GIF rendering."""

    @staticmethod
    def _write_jpegs(folder, colors, size=(32, 24)):
        folder.mkdir(parents=True, exist_ok=True)
        frames = []
        for index, color in enumerate(colors):
            image = np.zeros((size[1], size[0], 3), dtype=np.uint8)
            image[:, :] = color
            path = folder / f"{1000 + index}.jpg"
            assert cv2.imwrite(str(path), image)
            frames.append(Frame(path, 1000 + index))
        return frames

    def test_renders_animation(self, tmp_path):
        frames = self._write_jpegs(tmp_path, [(255, 0, 0), (0, 255, 0), (0, 0, 255)])

        data = GifEncoder().encode(frames, fps=5)

        assert data[:6] == b"GIF89a"
        with Image.open(io.BytesIO(data)) as image:
            assert image.n_frames == 3
            assert image.size == (32, 24)
            assert image.info["duration"] == 200

    def test_downscales_wide_frames(self, tmp_path):
        frames = self._write_jpegs(tmp_path, [(255, 0, 0), (0, 0, 255)])

        data = GifEncoder(max_width=16).encode(frames, fps=5)

        with Image.open(io.BytesIO(data)) as image:
            assert image.size == (16, 12)

    def test_corrupt_frame(self, tmp_path):
        path = tmp_path / "1000.jpg"
        path.write_bytes(b"not a jpeg")

        with pytest.raises(FrameIOError):
            GifEncoder().encode([Frame(path, 1000)], fps=5)

    def test_empty(self):
        with pytest.raises(FramesNotFoundError):
            GifEncoder().encode([], fps=5)
