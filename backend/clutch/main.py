"""
Clutch Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, route mounting, error envelopes
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn clutch.main:app) and by the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  RateLimit → RequestID → AccessLog → GZip → CORS         │
    │                                                          │
    │  app.state:                                              │
    │  store (memory backend / tests) · feature_flags ·        │
    │  email_provider                                          │
    │                                                          │
    │  Routes:                                                 │
    │  /health · /api/<resource> × 14 · /api/feature-flags ·   │
    │  /api/emails                                             │
    │                                                          │
    │  Exception Handlers → {success: false, error, message}   │
    └──────────────────────────────────────────────────────────┘

Collaborators are attached in create_app rather than in the lifespan so an
app driven directly through an ASGI transport (tests) is fully wired.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clutch import __version__
from clutch.config import settings
from clutch.database import dispose_engine
from clutch.exceptions import ClutchError
from clutch.middleware.logging import RequestLoggingMiddleware
from clutch.middleware.rate_limit import RateLimitMiddleware
from clutch.middleware.request_id import RequestIDMiddleware, request_id_var
from clutch.routes import api_routers
from clutch.schemas.envelope import ErrorEnvelope
from clutch.services.email_service import EmailProvider, LoggingEmailProvider
from clutch.services.feature_flags import FeatureFlagService, InMemoryFeatureFlagService
from clutch.services.memory_store import MemoryDocumentStore
from clutch.services.store_base import DocumentStore

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    401: "AUTHENTICATION_REQUIRED",
    403: "UNAUTHORIZED",
    404: "ENDPOINT_NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Handlers write to stdout, which Docker captures.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-request lines come from clutch.access instead
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup validates configuration; shutdown closes pooled DB connections.

    A configuration error is logged, not raised, so /health still answers.
    """
    setup_logging()
    logger.info("=" * 60)
    logger.info("Clutch Backend %s starting up (env=%s, store=%s)", __version__, settings.app_env, settings.store_backend)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Clutch Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request_id_var.get("") or None


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Builds the failure envelope. `details` is dropped unless DEBUG is on."""
    body = ErrorEnvelope(
        error=code,
        message=message,
        details=details if settings.debug and details else None,
        requestId=_request_id(request),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to the failure envelope.

    Handler hierarchy:
        ClutchError (any subclass)  → its own status_code and code
        RequestValidationError      → 400 VALIDATION_ERROR (malformed JSON / body shape)
        HTTPException               → status kept, e.g. 404 ENDPOINT_NOT_FOUND
        Exception (fallback)        → 500 INTERNAL_SERVER_ERROR

    Stack traces are logged server-side only.
    """

    @app.exception_handler(ClutchError)
    async def handle_clutch_error(request: Request, exc: ClutchError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", rid, exc.code, exc.message)
        headers = None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after:
            headers = {"Retry-After": str(retry_after)}
        return error_response(request, exc.status_code, exc.code, exc.message, exc.context, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location} {first.get('msg', '')}".strip() if first else "Invalid request"
        logger.info("[%s] Request validation failed: %s", _request_id(request), message)
        details = {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]}
        return error_response(request, 400, "VALIDATION_ERROR", message, details)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = HTTP_ERROR_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Can't find {request.url.path} on this server!"
        else:
            message = str(exc.detail)
        return error_response(request, exc.status_code, code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True)
        return error_response(
            request,
            500,
            "INTERNAL_SERVER_ERROR",
            str(exc) if settings.debug else "Internal server error",
            {"exception": type(exc).__name__},
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    store: Optional[DocumentStore] = None,
    feature_flags: Optional[FeatureFlagService] = None,
    email_provider: Optional[EmailProvider] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store:          Document store shared by all requests. When omitted,
                        STORE_BACKEND=memory gives a fresh MemoryDocumentStore
                        and STORE_BACKEND=sql opens a session per request.
        feature_flags:  Flag service (default: empty InMemoryFeatureFlagService).
        email_provider: Delivery backend (default: LoggingEmailProvider).
    """
    app = FastAPI(
        title="Clutch API",
        description=(
            "Automotive services backend: bookings, vehicles, mechanics, payouts, "
            "invoices, disputes, feedback, inventory, reviews, discounts and fleet, "
            "plus feature flags and templated email."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if store is None and settings.store_backend == "memory":
        store = MemoryDocumentStore()
    app.state.store = store
    app.state.feature_flags = feature_flags or InMemoryFeatureFlagService()
    app.state.email_provider = email_provider or LoggingEmailProvider()

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added executes first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    for router in api_routers():
        app.include_router(router)

    return app


# uvicorn clutch.main:app
app = create_app()
