"""
FastAPI application for YouTube caption retrieval.

Exposes POST /api/youtube-captions, which resolves a video's caption
tracks, downloads manual and auto-generated captions as plain text and
falls back to yt-dlp when every network path comes back empty.
"""

import asyncio
import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from yt_dlp.version import __version__ as ytdlp_version

from ytcaptions import __version__
from ytcaptions.config import settings
from ytcaptions.exceptions import CaptionServiceError, InvalidInputError
from ytcaptions.fallback import resolve_ytdlp_command
from ytcaptions.models import CaptionResult
from ytcaptions.service import CaptionsOutcome, CaptionService, get_service
from ytcaptions.utils import sanitize_for_log

# Standard library loggers used by the pipeline modules
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)
logger = structlog.get_logger()


def get_remote_address_proxied(request: Request) -> str:
    """Get client address, considering X-Forwarded-For header."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# Initialize rate limiter with proxy support
limiter = Limiter(key_func=get_remote_address_proxied)
rate_limit_exception_handler = _rate_limit_exceeded_handler

# Track app startup time for uptime calculation
_app_start_time = time.time()

# In-memory per-IP rate limiting tracker
_rate_limit_tracker: defaultdict[str, list[float]] = defaultdict(list)
_rate_limit_lock = asyncio.Lock()
_MAX_TRACKED_IPS = 10000  # Prevent memory leak from unbounded growth


async def _check_rate_limit(ip: str, max_requests: int, window_seconds: int = 60) -> bool:
    """
    Check if the IP has exceeded the rate limit.

    Args:
        ip: Client IP address
        max_requests: Maximum requests allowed
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    async with _rate_limit_lock:
        now = time.time()
        _rate_limit_tracker[ip] = [
            t for t in _rate_limit_tracker[ip] if now - t < window_seconds
        ]
        if len(_rate_limit_tracker[ip]) >= max_requests:
            return False
        _rate_limit_tracker[ip].append(now)

        if len(_rate_limit_tracker) > _MAX_TRACKED_IPS:
            inactive_ips = [
                tracked_ip for tracked_ip, timestamps in _rate_limit_tracker.items()
                if all(now - t > window_seconds for t in timestamps)
            ]
            # Remove up to 10% of inactive IPs
            for inactive_ip in inactive_ips[:max(1, _MAX_TRACKED_IPS // 10)]:
                del _rate_limit_tracker[inactive_ip]

        return True


# ============================================================================
# Lifespan Context Manager
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective retrieval configuration on startup."""
    logger.info("=" * 60)
    logger.info("YouTube Caption Service Starting")
    logger.info("=" * 60)
    logger.info("Retrieval pipeline:")
    logger.info(f"  - Regions: preferred, then {', '.join(settings.fallback_regions)}")
    logger.info(f"  - Fetch timeout: {settings.fetch_timeout}s")
    logger.info(f"  - Request deadline: {settings.request_deadline}s")
    logger.info("yt-dlp fallback:")
    logger.info(f"  - Enabled: {settings.ytdlp_fallback_enabled}")
    logger.info(f"  - Command: {' '.join(resolve_ytdlp_command(settings.ytdlp_path))}")
    logger.info(f"  - Player clients: {settings.ytdlp_player_clients or ['default']}")
    logger.info(f"  - Timeout: {settings.subprocess_timeout}s")
    logger.info("Security features:")
    logger.info(f"  - Rate Limiting: {'enabled' if settings.rate_limit_enabled else 'disabled'}")
    logger.info(f"  - Rate Limit: {settings.rate_limit_per_minute}/minute")
    logger.info(f"  - Security Headers: {'enabled' if settings.enable_security_headers else 'disabled'}")
    logger.info("=" * 60)
    yield
    logger.info("YouTube Caption Service stopped")


app = FastAPI(
    title="YouTube Caption Service",
    description="Fetch manual and auto-generated YouTube captions as plain text",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ============================================================================
# Middleware Configuration
# ============================================================================


def configure_middleware():
    """Configure middleware based on settings."""
    from fastapi.middleware.cors import CORSMiddleware

    from ytcaptions.middleware import RequestIdMiddleware, SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("CORS middleware enabled")

    app.add_middleware(RequestIdMiddleware)
    logger.info("Request ID middleware enabled")

    if settings.enable_security_headers:
        app.add_middleware(SecurityHeadersMiddleware)
        logger.info("Security headers middleware enabled")

    if settings.rate_limit_enabled:
        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
        logger.info(f"Rate limiting enabled: {settings.rate_limit_per_minute} requests/minute")


# Configure middleware on import
configure_middleware()


# ============================================================================
# Pydantic Models
# ============================================================================


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CaptionRequest(BaseModel):
    """Request body for caption retrieval."""

    url: str | None = Field(None, max_length=500, description="YouTube URL or 11-character video id")
    lang: str = Field("en", max_length=20, description="Requested caption language")
    hl: str = Field("en", max_length=20, description="UI language hint for the watch page")
    gl: str = Field("IN", max_length=10, description="Preferred region code")

    model_config = {"json_schema_extra": {"example": {"url": "https://youtu.be/dQw4w9WgXcQ", "lang": "en"}}}


class CaptionData(CamelModel):
    """Caption text for one category (manual or auto)."""

    language_code: str = Field(..., description="Track language code")
    name: str = Field(..., description="Track display name")
    format: str | None = Field(None, description="Format that succeeded: json3, srv3 or vtt")
    text: str = Field("", description="Plain-text transcript, one caption per line")
    download: str | None = Field(None, description="URL that produced the text")


class TrackCounts(CamelModel):
    """Number of caption tracks per category."""

    manual_count: int
    auto_count: int


class CaptionMeta(CamelModel):
    """Diagnostics for a caption request."""

    no_captions: bool
    playability_status: str | None = None
    playability_reason: str | None = None
    hl: str
    gl_requested: str
    used_client: str | None = None
    used_gl: str | None = None
    watch_url: str | None = None
    client_version: str | None = None
    api_key_found: bool | None = None
    attempts: list[dict[str, Any]] = Field(default_factory=list, description="Region attempts")
    caption_download_debug: dict[str, list[dict[str, Any]]] = Field(
        default_factory=dict, description="Every caption fetch attempt, per category"
    )
    ytdlp_used: bool = False
    ytdlp_mode: str | None = None
    ytdlp_debug: dict[str, Any] | None = None


class CaptionsResponse(CamelModel):
    """Response model for caption retrieval."""

    video_id: str = Field(..., description="YouTube video ID (11 characters)")
    requested_lang: str
    track_source: str = Field(..., description="youtubei or yt-dlp")
    tracks: TrackCounts
    manual: CaptionData | None = None
    auto: CaptionData | None = None
    meta: CaptionMeta
    message: str


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Response model for enhanced health check."""

    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: float = Field(..., description="Current Unix timestamp")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    rate_limiting: dict = Field(default_factory=dict, description="Rate limiting status")
    fallback: dict = Field(default_factory=dict, description="yt-dlp fallback status")


# ============================================================================
# Response Shaping
# ============================================================================


def error_response(status_code: int, error: str, detail: str | None = None) -> Response:
    """Build a JSON error response that always carries an `error` field."""
    body = ErrorResponse(error=error, detail=detail)
    return Response(
        content=body.model_dump_json(exclude_none=True),
        status_code=status_code,
        media_type="application/json",
    )


def _caption_data(result: CaptionResult | None) -> CaptionData | None:
    if result is None:
        return None
    return CaptionData(
        language_code=result.language_code,
        name=result.name,
        format=result.format,
        text=result.text,
        download=result.download,
    )


def outcome_to_response(outcome: CaptionsOutcome) -> CaptionsResponse:
    """
    Convert a CaptionsOutcome to the API response model.

    Args:
        outcome: Result of CaptionService.get_captions

    Returns:
        CaptionsResponse with caption data and full diagnostics
    """
    meta = outcome.player.meta
    playability = outcome.player.playability
    selection = outcome.selection
    fallback = outcome.fallback

    return CaptionsResponse(
        video_id=outcome.video_id,
        requested_lang=outcome.requested_lang,
        track_source=outcome.track_source,
        tracks=TrackCounts(
            manual_count=len(selection.manual_all),
            auto_count=len(selection.auto_all),
        ),
        manual=_caption_data(outcome.manual),
        auto=_caption_data(outcome.auto),
        meta=CaptionMeta(
            no_captions=outcome.no_captions,
            playability_status=playability.get("status"),
            playability_reason=playability.get("reason"),
            hl=outcome.hl,
            gl_requested=outcome.gl_requested,
            used_client=meta.client,
            used_gl=meta.gl,
            watch_url=meta.watch_url,
            client_version=meta.client_version,
            api_key_found=meta.api_key_found,
            attempts=[attempt.to_dict() for attempt in outcome.player.attempts],
            caption_download_debug={
                "manualTried": [a.to_dict() for a in outcome.manual_content.debug],
                "autoTried": [a.to_dict() for a in outcome.auto_content.debug],
            },
            ytdlp_used=outcome.fallback_used,
            ytdlp_mode=fallback.mode if fallback else None,
            ytdlp_debug=fallback.debug if fallback else None,
        ),
        message=outcome.message,
    )


# ============================================================================
# Exception Handlers
# ============================================================================


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return 400 with field-level details for malformed request bodies."""
    errors = exc.errors()
    logger.warning(f"Validation error: {errors}")

    error_details = []
    for error in errors:
        loc = " -> ".join(str(x) for x in error["loc"])
        error_details.append(f"{loc}: {error['msg']}")

    return error_response(400, "validation_error", "; ".join(error_details))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors with an `error` field instead of `detail`."""
    return error_response(exc.status_code, str(exc.detail))


# ============================================================================
# API Endpoints
# ============================================================================


@app.post(
    "/api/youtube-captions",
    response_model=CaptionsResponse,
    responses={
        200: {"description": "Caption lookup completed (captions may be empty)"},
        400: {"model": ErrorResponse, "description": "Invalid YouTube URL or video id"},
        429: {"model": ErrorResponse, "description": "Too many requests"},
        500: {"model": ErrorResponse, "description": "Upstream structure changed or internal failure"},
    },
    summary="Fetch manual and auto-generated captions for a YouTube video",
)
async def youtube_captions(
    request: Request,
    body: CaptionRequest,
    service: CaptionService = Depends(get_service),
) -> CaptionsResponse | Response:
    """
    Fetch captions for a YouTube video as plain text.

    **Pipeline:**
    1. Resolve the video id from the URL or raw id
    2. Load the watch page and call the youtubei player endpoint, retrying
       across regions
    3. Pick the best manual and auto track for `lang`
    4. Download each track as json3, srv3 or vtt, from the track URL and
       then the direct timedtext endpoint, with several header variants
    5. If every download came back empty, run yt-dlp

    Missing captions are not an error: the response is 200 with empty
    text and a `message` explaining what happened.

    **Example:**
    ```bash
    curl -X POST "http://localhost:8000/api/youtube-captions" \\
      -H "Content-Type: application/json" \\
      -d '{"url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ", "lang": "en"}'
    ```
    """
    if settings.rate_limit_enabled:
        client_ip = get_remote_address_proxied(request)
        if not await _check_rate_limit(client_ip, settings.rate_limit_per_minute):
            return error_response(
                429,
                f"Rate limit exceeded. Maximum {settings.rate_limit_per_minute} requests per minute.",
            )

    try:
        outcome = await service.get_captions(body.url, body.lang, body.hl, body.gl)
    except InvalidInputError as e:
        return error_response(400, str(e))
    except CaptionServiceError as e:
        logger.error(f"Caption retrieval failed for {sanitize_for_log(str(body.url))}: {e}")
        return error_response(500, str(e))
    except Exception as e:
        logger.exception(f"Unexpected error for {sanitize_for_log(str(body.url))}")
        return error_response(500, str(e) or "Unknown error")

    logger.info(
        "Caption request completed",
        video_id=outcome.video_id,
        source=outcome.track_source,
        message=outcome.message,
    )
    return outcome_to_response(outcome)


@app.get("/", summary="Simple health check")
async def root() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy", "service": "ytcaptions", "version": __version__}


@app.get("/health", response_model=HealthResponse, summary="Enhanced health check")
async def health() -> HealthResponse:
    """Service status, uptime, rate limiting and yt-dlp fallback configuration."""
    return HealthResponse(
        status="healthy",
        service="ytcaptions",
        version=__version__,
        timestamp=time.time(),
        uptime_seconds=time.time() - _app_start_time,
        rate_limiting={
            "enabled": settings.rate_limit_enabled,
            "per_minute": settings.rate_limit_per_minute,
        },
        fallback={
            "enabled": settings.ytdlp_fallback_enabled,
            "command": " ".join(resolve_ytdlp_command(settings.ytdlp_path)),
            "ytdlp_version": ytdlp_version,
        },
    )
