"""
HTML to PDF Service - FastAPI application.

Accepts ``{"html": "..."}`` on POST and answers with the rendered PDF,
or with a JSON error whose ``errorKind`` names what went wrong. Every
conversion runs in its own Chromium process (see RenderPipeline).
"""

import json
import logging
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from http import HTTPStatus
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from . import __version__
from .config import ServiceSettings, get_settings, validate_config_on_startup
from .diagnostics import collect_diagnostics
from .errors import InvalidHtmlError, RenderError
from .models import DiagnosticsResponse, HealthResponse
from .pipeline import RenderPipeline, RenderRequest

# Validate configuration at import so a bad environment fails fast
settings = validate_config_on_startup()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

PDF_ENDPOINTS = ("/", "/api/pdf")
ALLOWED_METHODS = ["POST", "OPTIONS"]
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
PDF_FILENAME = "generated.pdf"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

# Engine readiness state (set by the startup check)
_engine_ready = False
_engine_error: Optional[str] = "Startup engine check has not run"


@lru_cache()
def get_pipeline() -> RenderPipeline:
    """Process-wide pipeline; its SessionStats count every browser launched."""
    return RenderPipeline(get_settings())


async def check_engine_on_startup(pipeline: RenderPipeline) -> None:
    """
    Resolve and launch Chromium once so /health reflects whether PDFs can
    actually be generated. No document is rendered.
    """
    global _engine_ready, _engine_error

    logger.info("HTML to PDF service starting - validating Chromium...")
    try:
        report = await collect_diagnostics(pipeline)
    except Exception as e:
        _engine_ready = False
        _engine_error = str(e)
        logger.exception(f"❌ Chromium validation crashed: {_engine_error}")
        return

    if report.launchError is None:
        _engine_ready = True
        _engine_error = None
        logger.info(f"✅ Chromium validation successful ({report.browserVersion})")
    else:
        _engine_ready = False
        _engine_error = report.launchError
        logger.error(f"❌ Chromium validation failed: {_engine_error}")
        logger.error("PDF generation will not work until this is resolved.")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - startup check."""
    global _engine_ready, _engine_error

    if settings.startup_check:
        await check_engine_on_startup(get_pipeline())
    else:
        _engine_ready = True
        _engine_error = None
        logger.info("Startup engine check disabled")
    yield
    logger.info("HTML to PDF service stopped")


app = FastAPI(
    title="HTML to PDF Service",
    version=__version__,
    description="Stateless HTML to PDF conversion using Playwright/Chromium",
    lifespan=lifespan,
)


@app.middleware("http")
async def cors_headers_middleware(request: Request, call_next: Any) -> Response:
    """Attach CORS headers to every response, errors included."""
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


# ============================================================================
# Response builders
# ============================================================================

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def bad_request_response(error: RenderError) -> JSONResponse:
    status = HTTPStatus(error.http_status)
    body = error.to_dict()
    return JSONResponse(
        status_code=status.value,
        content={
            "error": status.phrase,
            "errorKind": body["errorKind"],
            "message": body["message"],
            **body.get("details", {}),
        },
    )


def server_error_response(
    error: BaseException,
    error_kind: str,
    settings: ServiceSettings,
    status_code: int = 500,
) -> JSONResponse:
    status = HTTPStatus(status_code)
    content: Dict[str, Any] = {
        "error": status.phrase,
        "errorKind": error_kind,
        "message": "Error generating PDF",
        "details": getattr(error, "message", None) or str(error),
        "timestamp": _timestamp(),
    }
    if settings.is_development:
        content["stack"] = "".join(traceback.format_exception(error))
    return JSONResponse(status_code=status.value, content=content)


def error_response(error: RenderError, settings: ServiceSettings) -> JSONResponse:
    """Map a RenderError to the HTTP response for its status."""
    if error.http_status < 500:
        return bad_request_response(error)
    return server_error_response(error, error.error_kind, settings, error.http_status)


def payload_too_large_response(settings: ServiceSettings) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "error": "Payload Too Large",
            "message": f"Request body exceeds {settings.max_body_bytes} bytes",
            "maxBytes": settings.max_body_bytes,
        },
    )


async def read_limited_body(request: Request, max_bytes: int) -> Optional[bytes]:
    """
    Read the request body, giving up as soon as it exceeds ``max_bytes``.

    Returns None when the body is too large. A declared Content-Length over
    the limit is rejected before anything is read.
    """
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        logger.warning(f"❌ Declared request body too large: {declared} bytes")
        return None

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            logger.warning(f"❌ Request body too large: over {max_bytes} bytes")
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def method_not_allowed_response() -> JSONResponse:
    return JSONResponse(
        status_code=405,
        content={
            "error": "Method Not Allowed",
            "message": "This endpoint only accepts POST requests",
            "allowedMethods": ALLOWED_METHODS,
        },
        headers={"Allow": ", ".join(ALLOWED_METHODS)},
    )


# ============================================================================
# PDF Generation Endpoint
# ============================================================================

async def pdf_endpoint(
    request: Request,
    settings: ServiceSettings = Depends(get_settings),
    pipeline: RenderPipeline = Depends(get_pipeline),
) -> Response:
    """
    Convert posted HTML to PDF.

    OPTIONS answers the CORS preflight, POST renders, anything else is 405.

    Returns:
        PDF binary (200), or JSON error (400, 405, 413, 500)
    """
    method = request.method
    logger.info(f"📥 PDF request received: {method} {request.url.path}")

    if method == "OPTIONS":
        return Response(status_code=200)

    if method != "POST":
        logger.info(f"❌ Method not allowed: {method}")
        return method_not_allowed_response()

    body = await read_limited_body(request, settings.max_body_bytes)
    if body is None:
        return payload_too_large_response(settings)

    try:
        payload = json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.info("❌ Request body is not valid JSON")
        return bad_request_response(InvalidHtmlError("Request body must be valid JSON"))

    try:
        render_request = RenderRequest.from_payload(payload)
    except InvalidHtmlError as e:
        logger.info(f"❌ Invalid or empty HTML ({e.received_type})")
        return bad_request_response(e)

    try:
        result = await pipeline.render(render_request)
    except Exception as e:
        logger.exception(f"❌ Unexpected error during PDF generation: {e}")
        return server_error_response(e, "InternalError", settings)

    if not result.ok:
        return error_response(result.error, settings)

    logger.info(f"📤 Sending PDF: {result.size_bytes} bytes")
    return Response(
        content=result.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{PDF_FILENAME}"',
            "Content-Length": str(result.size_bytes),
        },
    )


for _path in PDF_ENDPOINTS:
    app.add_api_route(
        _path,
        pdf_endpoint,
        methods=ROUTED_METHODS,
        include_in_schema=(_path == "/api/pdf"),
    )


# ============================================================================
# Health & Diagnostics
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check(pipeline: RenderPipeline = Depends(get_pipeline)) -> HealthResponse:
    """
    Health check endpoint for container orchestration.

    Returns HTTP 503 if the startup engine check failed.
    """
    stats = pipeline.stats
    health = HealthResponse(
        status="healthy" if _engine_ready else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        engine_ready=_engine_ready,
        engine_error=_engine_error,
        active_sessions=stats.active,
        sessions_launched=stats.launched,
        sessions_closed=stats.closed,
    )

    if not _engine_ready:
        raise HTTPException(status_code=503, detail=health.model_dump(mode="json"))

    return health


@app.get("/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(pipeline: RenderPipeline = Depends(get_pipeline)) -> DiagnosticsResponse:
    """Report resolver status, Chromium launchability and environment metadata."""
    return await collect_diagnostics(pipeline)
