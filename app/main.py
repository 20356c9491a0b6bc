"""
FastAPI Video Relay Service
Resolves video metadata and media streams across multiple upstream providers
"""

import time
import logging
from contextlib import asynccontextmanager
from typing import Optional, Tuple

import httpx
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import yt_dlp

from .config import CORS_HEADERS, Settings, get_settings
from .media import MediaLocationResolver, build_media_request
from .metadata import MetadataResolver
from .models import (
    DeliveryMode,
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    MediaLocation,
    MediaLocationRequest,
    MediaLocationResponse,
    MetadataRequest,
    MetadataResponse,
    ProviderKind,
)
from .relay import StreamRelay

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# App metadata
VERSION = "1.0.0"
start_time = time.time()

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for startup/shutdown tasks"""
    settings = get_settings()

    logger.info("🚀 Starting video relay service...")
    logger.info(f"Version: {VERSION}")
    logger.info(f"yt-dlp version: {yt_dlp.version.__version__}")
    logger.info(f"📦 Delivery mode: {settings.delivery_mode.value}")
    for endpoint in settings.provider_table():
        logger.info(f"🔌 Provider #{endpoint.priority} {endpoint.name} ({endpoint.kind.value})")

    yield

    logger.info("Shutting down video relay service...")


# Create FastAPI app
app = FastAPI(
    title="Video Relay Service",
    description="Multi-provider video metadata and media stream relay",
    version=VERSION,
    lifespan=lifespan,
)

# Upstream transport override (tests install an httpx.MockTransport here)
app.state.upstream_transport = None

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Content-Length"],
)


# ============================================================================
# HELPERS
# ============================================================================


def create_upstream_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """One client per inbound request; nothing is shared between requests."""
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(
            settings.provider_timeout_seconds,
            connect=settings.relay_connect_timeout_seconds,
            read=settings.relay_read_timeout_seconds,
        ),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
    )


def json_response(content: dict, status_code: int = 200, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers={**CORS_HEADERS, **(headers or {})})


def error_response(error: ErrorDetail, status_code: int) -> JSONResponse:
    headers = {}
    if error.retry_after_seconds:
        headers["Retry-After"] = str(error.retry_after_seconds)
    return json_response(ErrorResponse(error=error).model_dump(mode="json"), status_code, headers)


def unavailable_error() -> ErrorDetail:
    return ErrorDetail(
        code=ErrorCode.SERVICE_UNAVAILABLE,
        message="All download services are currently unavailable",
        is_transient=True,
        retry_after_seconds=60,
    )


def server_error() -> ErrorDetail:
    return ErrorDetail(
        code=ErrorCode.SERVER_ERROR,
        message="Internal server error",
        is_transient=True,
        retry_after_seconds=120,
    )


def parse_mode(mode: Optional[str], settings: Settings) -> Tuple[Optional[DeliveryMode], Optional[ErrorDetail]]:
    if not mode:
        return settings.delivery_mode, None
    value = mode.strip().lower()
    if value in ("stream", "direct"):
        return DeliveryMode.DIRECT, None
    if value in ("url", "indirection"):
        return DeliveryMode.INDIRECTION, None
    return None, ErrorDetail(
        code=ErrorCode.INVALID_REQUEST,
        message='mode must be either "stream" or "url"',
        is_transient=False,
    )


def get_upstream_transport(request: Request) -> Optional[httpx.AsyncBaseTransport]:
    return request.app.state.upstream_transport


# ============================================================================
# API ENDPOINTS
# ============================================================================


@app.post("/api/v1/metadata", response_model=MetadataResponse)
@app.post("/api/v1/info", response_model=MetadataResponse, include_in_schema=False)
async def get_video_metadata(
    request: MetadataRequest,
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
) -> Response:
    """
    Resolve display metadata (title, author, thumbnail, duration, views)

    **Flow:**
    1. Validate the URL and extract the video ID (400 if malformed)
    2. Query metadata providers in priority order, filling unknown fields
    3. Always answer 200; `incomplete=true` if no provider supplied a title
    """
    logger.info(f"ℹ️ Metadata request: {request.url}")

    try:
        async with create_upstream_client(settings, transport) as client:
            resolver = MetadataResolver.from_settings(settings)
            metadata, incomplete, error = await resolver.resolve_url(client, request.url)
    except Exception as e:
        logger.exception(f"💥 Unexpected error during metadata resolution: {e}")
        return error_response(server_error(), 500)

    if error:
        logger.warning(f"⚠️ Rejected metadata request: {error.message}")
        return error_response(error, 400)

    logger.info(f"✅ Metadata resolved: {metadata.title} ({metadata.duration})")
    return json_response(
        MetadataResponse(success=True, data=metadata, incomplete=incomplete).model_dump(mode="json")
    )


async def _serve_media(
    body: MediaLocationRequest,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport],
) -> Response:
    """
    Resolve a media stream and either relay it or return its provider URL

    - mode=stream: bytes relayed with Content-Type/Content-Disposition set
    - mode=url:    JSON with the provider-hosted download URL
    - 400 for a bad URL, media kind, quality or mode; 503 when every provider fails
    """
    media_request, error = build_media_request(body.url, body.media_kind, body.quality)
    if not error:
        mode, error = parse_mode(body.mode, settings)
    if error:
        logger.warning(f"⚠️ Rejected media request: {error.message}")
        return error_response(error, 400)

    logger.info(
        f"📥 Media request: {media_request.video_id} "
        f"({media_request.media_kind.value}, quality={media_request.quality_hint or 'default'}, mode={mode.value})"
    )
    resolver = MediaLocationResolver.from_settings(settings)

    if mode == DeliveryMode.INDIRECTION:
        try:
            async with create_upstream_client(settings, transport) as client:
                location = await resolver.resolve_location(client, media_request)
        except Exception as e:
            logger.exception(f"💥 Unexpected error during media resolution: {e}")
            return error_response(server_error(), 500)

        if location is None:
            return error_response(unavailable_error(), 503)

        logger.info(f"✅ Download URL from {location.provider}: {location.filename}")
        return json_response(
            MediaLocationResponse(
                success=True,
                data=MediaLocation(
                    download_url=location.url,
                    filename=location.filename,
                    mime_type=location.mime_type,
                    quality=location.selector.quality,
                    provider=location.provider,
                ),
            ).model_dump(mode="json")
        )

    # Direct mode: the client must stay open until the relay finishes
    client = create_upstream_client(settings, transport)
    try:
        stream = await resolver.open_stream(client, media_request)
    except Exception as e:
        await client.aclose()
        logger.exception(f"💥 Unexpected error during media resolution: {e}")
        return error_response(server_error(), 500)

    if stream is None:
        await client.aclose()
        return error_response(unavailable_error(), 503)

    return StreamRelay(stream, client, chunk_size=settings.relay_chunk_size).response()


@app.post("/api/v1/media")
@app.post("/api/v1/download", include_in_schema=False)
async def post_media(
    request: MediaLocationRequest,
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
) -> Response:
    """Resolve media from a JSON body"""
    return await _serve_media(request, settings, transport)


@app.get("/api/v1/media")
@app.get("/api/v1/download", include_in_schema=False)
async def get_media(
    url: Optional[str] = Query(None, description="YouTube video URL"),
    media_kind: Optional[str] = Query(None, description="video or audio"),
    quality: Optional[str] = Query(None, description="Quality hint: 360p, 720p, best"),
    mode: Optional[str] = Query(None, description="stream or url"),
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
) -> Response:
    """Resolve media from query parameters (usable as a plain download link)"""
    body = MediaLocationRequest(url=url, media_kind=media_kind, quality=quality, mode=mode)
    return await _serve_media(body, settings, transport)


@app.get("/api/v1/providers")
async def list_providers(settings: Settings = Depends(get_settings)):
    """List the provider table in priority order."""
    table = settings.provider_table()
    return json_response({
        "total": len(table),
        "providers": [endpoint.model_dump(mode="json") for endpoint in table],
    })


@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint for monitoring
    """
    return json_response(
        HealthResponse(
            status="healthy",
            version=VERSION,
            uptime_seconds=time.time() - start_time,
            metadata_providers=len(settings.endpoints(ProviderKind.METADATA)),
            media_providers=len(settings.endpoints(ProviderKind.MEDIA)),
            yt_dlp_version=yt_dlp.version.__version__,
        ).model_dump(mode="json")
    )


@app.get("/")
async def root():
    """Root endpoint with service info"""
    return json_response({
        "service": "Video Relay Service",
        "version": VERSION,
        "status": "running",
        "endpoints": {
            "metadata": "/api/v1/metadata",
            "media": "/api/v1/media",
            "providers": "/api/v1/providers",
            "health": "/api/v1/health",
        },
        "docs": "/docs",
    })


# ============================================================================
# ERROR HANDLERS
# ============================================================================


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc):
    """Malformed request bodies are client errors (400), not 422"""
    return error_response(
        ErrorDetail(
            code=ErrorCode.INVALID_REQUEST,
            message="Invalid request body",
            is_transient=False,
        ),
        400,
    )


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Custom 404 handler"""
    return json_response(
        {"detail": "Endpoint not found. See /docs for API documentation."},
        status_code=404,
    )


@app.exception_handler(Exception)
async def server_error_handler(request, exc):
    """Catch-all 500 handler"""
    logger.exception("Internal server error")
    return error_response(server_error(), 500)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
