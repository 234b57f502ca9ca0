"""
Timelapse Server Configuration
==============================

This module handles configuration loading for the timelapse server.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    OUTPUT_FOLDER              -> output_folder
    PORT                       -> server.port
    TIMELAPSE_CONFIG           -> path of the YAML file
    TIMELAPSE_LOG_LEVEL        -> logging.level
    TIMELAPSE_CACHE_CAPACITY   -> cache.capacity
    TIMELAPSE_FFMPEG_BIN       -> encoder.binary
    TIMELAPSE_FRAME_EXTENSION  -> frames.extension
    TIMELAPSE_ENCODER_TIMEOUT  -> encoder.timeout_seconds
    TIMELAPSE_DAY_UTC_OFFSET   -> timelapse.day_utc_offset

Example:
    from timelapse_server.config import settings

    print(settings.output_folder)
    print(settings.cache.capacity)
"""

import os
import logging
import re
from datetime import timedelta, timezone
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from timelapse_server.errors import ConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_FFMPEG_ARGS = [
    "-f", "mp4",
    "-vcodec", "libx264",
    "-preset", "veryfast",
    "-pix_fmt", "yuv420p",
    "-movflags", "frag_keyframe+empty_moov",
]

_UTC_OFFSET_RE = re.compile(r"^(?P<sign>[+-])(?P<hours>\d{2}):?(?P<minutes>\d{2})$")


# =============================================================================
# Configuration Models
# =============================================================================

class FramesConfig(BaseModel):
    """Frame folder layout."""

    extension: str = Field(
        default=".jpg",
        description="File extension stripped before parsing the timestamp",
    )


class VideoConfig(BaseModel):
    """MP4 output defaults."""

    default_fps: int = Field(default=20, ge=1, le=240, description="Default frames per second")


class GifConfig(BaseModel):
    """GIF output defaults."""

    default_fps: int = Field(default=5, ge=1, le=100, description="Default frames per second")
    max_width: Optional[int] = Field(
        default=640,
        ge=16,
        description="Frames wider than this are downscaled (None = keep size)",
    )
    colors: int = Field(default=256, ge=2, le=256, description="Palette size")


class EncoderConfig(BaseModel):
    """External encoder (ffmpeg) configuration."""

    binary: str = Field(default="ffmpeg", description="Encoder executable")
    default_args: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FFMPEG_ARGS),
        description="Output arguments used when a request does not override them",
    )
    output_mode: Literal["pipe", "tempfile"] = Field(
        default="pipe",
        description="Collect output from stdout or from a temporary file",
    )
    timeout_seconds: Optional[float] = Field(
        default=300.0,
        gt=0,
        description="Kill the encoder after this many seconds (None = wait forever)",
    )


class CacheConfig(BaseModel):
    """Result cache configuration."""

    capacity: int = Field(default=10, ge=1, description="Maximum cached results")


class TimelapseConfig(BaseModel):
    """Window interpretation settings."""

    day_utc_offset: str = Field(
        default="+00:00",
        description="Fixed UTC offset used for calendar-day windows",
    )

    @field_validator("day_utc_offset")
    @classmethod
    def _check_offset(cls, value: str) -> str:
        parse_utc_offset(value)
        return value


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8102, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the timelapse server.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    output_folder: Optional[str] = Field(
        default=None,
        description="Root folder containing one subfolder per camera",
    )
    frames: FramesConfig = Field(default_factory=FramesConfig)
    video: VideoConfig = Field(default_factory=VideoConfig)
    gif: GifConfig = Field(default_factory=GifConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    timelapse: TimelapseConfig = Field(default_factory=TimelapseConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Helpers
# =============================================================================

def parse_utc_offset(value: str) -> timezone:
    """
    Parse a fixed UTC offset such as ``+02:00``, ``-0400`` or ``Z``.

    Raises:
        ValueError: If the offset is malformed or out of range
    """
    if value in ("Z", "z"):
        return timezone.utc

    match = _UTC_OFFSET_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid UTC offset: {value!r}")

    hours = int(match.group("hours"))
    minutes = int(match.group("minutes"))
    if hours > 23 or minutes > 59:
        raise ValueError(f"UTC offset out of range: {value!r}")

    delta = timedelta(hours=hours, minutes=minutes)
    if match.group("sign") == "-":
        delta = -delta
    return timezone(delta)


def require_output_folder(settings: Settings) -> Path:
    """
    Validate the configured output folder.

    Returns:
        The output folder as a Path

    Raises:
        ConfigurationError: If OUTPUT_FOLDER is unset or not a directory
    """
    if not settings.output_folder:
        raise ConfigurationError("OUTPUT_FOLDER is not set")

    folder = Path(settings.output_folder)
    if not folder.is_dir():
        raise ConfigurationError(f"OUTPUT_FOLDER is not a directory: {folder}")
    return folder


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, uses TIMELAPSE_CONFIG
            or searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get("TIMELAPSE_CONFIG")

    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    if env_folder := os.environ.get("OUTPUT_FOLDER"):
        config_data["output_folder"] = env_folder

    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    if env_capacity := os.environ.get("TIMELAPSE_CACHE_CAPACITY"):
        config_data.setdefault("cache", {})["capacity"] = int(env_capacity)

    if env_bin := os.environ.get("TIMELAPSE_FFMPEG_BIN"):
        config_data.setdefault("encoder", {})["binary"] = env_bin
    if env_timeout := os.environ.get("TIMELAPSE_ENCODER_TIMEOUT"):
        timeout = float(env_timeout)
        config_data.setdefault("encoder", {})["timeout_seconds"] = timeout if timeout > 0 else None

    if env_ext := os.environ.get("TIMELAPSE_FRAME_EXTENSION"):
        config_data.setdefault("frames", {})["extension"] = env_ext

    if env_offset := os.environ.get("TIMELAPSE_DAY_UTC_OFFSET"):
        config_data.setdefault("timelapse", {})["day_utc_offset"] = env_offset

    if env_log := os.environ.get("TIMELAPSE_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
