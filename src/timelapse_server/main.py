"""
Timelapse Server Main Application
=================================

FastAPI entry point serving timelapses compiled on demand from folders of
timestamp-named frames.

Endpoints:
    GET /                                        - Redirect to the index
    GET /timelapse, /timelapse/                  - HTML index of camera folders
    GET /timelapse/24/{folder}                   - Last 24 hours
    GET /timelapse/48/{folder}                   - Last 48 hours
    GET /timelapse/1w/{folder}                   - Last week
    GET /timelapse/day/{day}/{folder}            - One calendar day (YYYY-MM-DD)
    GET /timelapse/from/{start}/to/{end}/{folder} - Explicit ISO-8601 range
    GET /healthcheck                             - Liveness probe
    GET /metrics                                 - Cache metrics

Query Parameters:
    fps          - Output frame rate (default 20 for MP4, 5 for GIF)
    ffmpeg_args  - Comma-separated replacement for the encoder arguments
    format       - "zip" for raw frames, "gif" for a GIF, otherwise MP4
    utc_offset   - Offset for day windows (day route only)
"""

import html
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncIterator, Optional, Tuple
from urllib.parse import quote

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)

from timelapse_server import __version__
from timelapse_server.cache import ResultCache
from timelapse_server.config import (
    Settings,
    parse_utc_offset,
    require_output_folder,
    settings as default_settings,
)
from timelapse_server.encoder import FFmpegEncoder, GifEncoder, VideoEncoder
from timelapse_server.errors import (
    EncodeError,
    FrameIOError,
    FramesNotFoundError,
    InvalidRequestError,
)
from timelapse_server.models.frame import TimeWindow
from timelapse_server.models.request import OutputFormat, TimelapseRequest
from timelapse_server.resolver import TimelapseResolver


logger = logging.getLogger(__name__)


TRAILING_WINDOWS = {
    "24": 1,
    "48": 2,
    "1w": 7,
}


# =============================================================================
# Request Parsing
# =============================================================================

def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidRequestError(f"Invalid day {value!r}, expected YYYY-MM-DD")


def parse_instant(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise InvalidRequestError(f"Invalid ISO-8601 instant {value!r}")


def parse_encoder_args(value: Optional[str]) -> Optional[Tuple[str, ...]]:
    """Split the ``ffmpeg_args`` parameter on commas. Blank means no override."""
    if value is None:
        return None
    tokens = tuple(token for token in value.split(",") if token)
    return tokens or None


def build_request(
    request: Request,
    folder: str,
    window: TimeWindow,
    fps: Optional[int],
    ffmpeg_args: Optional[str],
    output: Optional[str],
) -> TimelapseRequest:
    settings: Settings = request.app.state.settings
    output_format = OutputFormat.from_query(output)

    if fps is None:
        if output_format is OutputFormat.GIF:
            fps = settings.gif.default_fps
        else:
            fps = settings.video.default_fps

    return TimelapseRequest(
        folder=folder,
        window=window,
        fps=fps,
        output_format=output_format,
        encoder_args=parse_encoder_args(ffmpeg_args),
    )


def respond(request: Request, timelapse_request: TimelapseRequest) -> Response:
    resolver: TimelapseResolver = request.app.state.resolver
    result = resolver.resolve(timelapse_request)

    headers = {}
    if result.cache_hit is not None:
        headers["X-Cache-Hit"] = "true" if result.cache_hit else "false"

    return Response(content=result.body, media_type=result.media_type, headers=headers)


# =============================================================================
# HTTP Endpoints
# =============================================================================

router = APIRouter()


@router.get("/", include_in_schema=False)
def root() -> RedirectResponse:
    return RedirectResponse(url="/timelapse/")


@router.get("/healthcheck")
def healthcheck() -> PlainTextResponse:
    """Liveness probe. Always 200 while the process is serving."""
    return PlainTextResponse("ok")


@router.get("/metrics")
def metrics(request: Request) -> JSONResponse:
    """Cache metrics for observability."""
    cache: ResultCache = request.app.state.cache
    return JSONResponse({
        "version": __version__,
        "cache": cache.metrics(),
    })


@router.get("/timelapse", response_class=HTMLResponse)
@router.get("/timelapse/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    """Human-readable list of camera folders and their timelapse links."""
    resolver: TimelapseResolver = request.app.state.resolver
    today = datetime.now(timezone.utc).date().isoformat()

    rows = []
    for name in resolver.list_folders():
        label = html.escape(name)
        target = quote(name, safe="")
        links = " | ".join([
            f'<a href="/timelapse/24/{target}">24h</a>',
            f'<a href="/timelapse/48/{target}">48h</a>',
            f'<a href="/timelapse/1w/{target}">1 week</a>',
            f'<a href="/timelapse/day/{today}/{target}">today</a>',
            f'<a href="/timelapse/24/{target}?format=gif">24h gif</a>',
            f'<a href="/timelapse/24/{target}?format=zip">24h zip</a>',
        ])
        rows.append(f"<li><strong>{label}</strong>: {links}</li>")

    body = (
        "<!DOCTYPE html><html><head><title>Timelapses</title></head><body>"
        "<h1>Timelapses</h1>"
        f"<ul>{''.join(rows) or '<li>No folders found</li>'}</ul>"
        "</body></html>"
    )
    return HTMLResponse(body)


@router.get("/timelapse/day/{day}/{folder}")
def day_timelapse(
    request: Request,
    day: str,
    folder: str,
    fps: Optional[int] = Query(default=None, ge=1, le=240),
    ffmpeg_args: Optional[str] = None,
    format: Optional[str] = None,
    utc_offset: Optional[str] = None,
) -> Response:
    """Timelapse of one calendar day in a fixed UTC offset."""
    settings: Settings = request.app.state.settings
    offset_text = utc_offset if utc_offset is not None else settings.timelapse.day_utc_offset
    try:
        offset = parse_utc_offset(offset_text)
    except ValueError as e:
        raise InvalidRequestError(str(e))

    try:
        window = TimeWindow.calendar_day(parse_day(day), offset)
    except (ValueError, OverflowError) as e:
        raise InvalidRequestError(f"Day {day!r} is out of range: {e}")
    return respond(request, build_request(request, folder, window, fps, ffmpeg_args, format))


@router.get("/timelapse/from/{start}/to/{end}/{folder}")
def range_timelapse(
    request: Request,
    start: str,
    end: str,
    folder: str,
    fps: Optional[int] = Query(default=None, ge=1, le=240),
    ffmpeg_args: Optional[str] = None,
    format: Optional[str] = None,
) -> Response:
    """Timelapse of an explicit ISO-8601 range."""
    try:
        window = TimeWindow.between(parse_instant(start), parse_instant(end))
    except (ValueError, OverflowError) as e:
        raise InvalidRequestError(str(e))
    return respond(request, build_request(request, folder, window, fps, ffmpeg_args, format))


@router.get("/timelapse/{span}/{folder}")
def trailing_timelapse(
    request: Request,
    span: str,
    folder: str,
    fps: Optional[int] = Query(default=None, ge=1, le=240),
    ffmpeg_args: Optional[str] = None,
    format: Optional[str] = None,
) -> Response:
    """Timelapse of the last 24 hours, 48 hours or week."""
    days = TRAILING_WINDOWS.get(span)
    if days is None:
        return PlainTextResponse(f"Unknown timelapse span {span!r}", status_code=404)

    window = TimeWindow.trailing_days(days)
    return respond(request, build_request(request, folder, window, fps, ffmpeg_args, format))


# =============================================================================
# Error Mapping
# =============================================================================

def register_exception_handlers(app: FastAPI) -> None:
    """Map timelapse errors to HTTP responses."""

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError) -> PlainTextResponse:
        return PlainTextResponse(str(exc), status_code=400)

    @app.exception_handler(RequestValidationError)
    async def invalid_parameters(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return PlainTextResponse(f"Invalid parameters: {details}", status_code=400)

    @app.exception_handler(FramesNotFoundError)
    async def frames_not_found(request: Request, exc: FramesNotFoundError) -> PlainTextResponse:
        logger.info(f"{request.url.path}: {exc}")
        return PlainTextResponse("No frames found for the requested window", status_code=404)

    @app.exception_handler(FrameIOError)
    async def frame_io_error(request: Request, exc: FrameIOError) -> PlainTextResponse:
        logger.error(f"{request.url.path}: I/O error: {exc}")
        return PlainTextResponse("Failed to read frames", status_code=500)

    @app.exception_handler(EncodeError)
    async def encode_error(request: Request, exc: EncodeError) -> PlainTextResponse:
        logger.error(f"{request.url.path}: encode failed: {exc.reason}")
        if exc.stderr:
            logger.error(f"Encoder stderr:\n{exc.stderr}")
        return PlainTextResponse("Failed to encode timelapse", status_code=500)


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    cache: Optional[ResultCache] = None,
    video_encoder: Optional[VideoEncoder] = None,
    gif_encoder: Optional[VideoEncoder] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    The output folder is validated when the application starts, so a
    missing OUTPUT_FOLDER stops the server before it serves anything.

    Args:
        settings: Configuration (defaults to the global settings)
        cache: Result cache shared by all requests
        video_encoder: MP4 encoder (defaults to FFmpegEncoder from settings)
        gif_encoder: GIF encoder (defaults to GifEncoder from settings)
    """
    settings = settings or default_settings
    cache = cache if cache is not None else ResultCache(capacity=settings.cache.capacity)

    if video_encoder is None:
        video_encoder = FFmpegEncoder(
            binary=settings.encoder.binary,
            default_args=settings.encoder.default_args,
            output_mode=settings.encoder.output_mode,
            timeout_seconds=settings.encoder.timeout_seconds,
        )
    if gif_encoder is None:
        gif_encoder = GifEncoder(
            max_width=settings.gif.max_width,
            colors=settings.gif.colors,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        output_folder = require_output_folder(settings)
        logger.info(f"Starting timelapse server {__version__}")
        logger.info(f"OUTPUT_FOLDER: {output_folder}")
        logger.info(f"Cache capacity: {cache.capacity}, encoder: {settings.encoder.binary}")

        app.state.resolver = TimelapseResolver(
            output_folder=output_folder,
            cache=cache,
            video_encoder=video_encoder,
            gif_encoder=gif_encoder,
            extension=settings.frames.extension,
        )

        yield

        logger.info("Shutdown complete")

    app = FastAPI(
        title="Timelapse Server",
        description="Timelapses compiled on demand from timestamped frames",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cache = cache

    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    import uvicorn

    uvicorn.run(
        "timelapse_server.main:app",
        host=default_settings.server.host,
        port=default_settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run()
