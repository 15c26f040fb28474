"""
api/main.py -- FastAPI application entry point for RadarOne.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the frontend origins

Lifespan opens the user and session stores on startup and disposes them on
shutdown. The PII encryption key is NOT loaded here: routes obtain the secret
box through core.crypto.get_secret_box() on first use, so a host without
PII_ENCRYPTION_KEY still starts and answers /health, and every route that
needs encryption fails with a generic 500.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.sessions import router as sessions_router
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from core.errors import (
    ConfigurationError,
    DecryptionError,
    FormatError,
    InvalidSessionStateError,
    MissingSessionStateError,
    PayloadTooLargeError,
    RadarOneError,
    StorageError,
    UnsupportedSiteError,
    ValidationError,
)
from sessions.store import SessionStore

API_VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("radarone.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores on startup and dispose them on shutdown."""
    settings = get_settings()
    logger.info("RadarOne API starting up")
    app.state.user_store = UserStore(settings.auth_database_url) if settings.auth_database_url else UserStore()
    app.state.session_store = (
        SessionStore(settings.sessions_database_url) if settings.sessions_database_url else SessionStore()
    )
    logger.info("Stores initialized")

    yield

    app.state.user_store.close()
    app.state.session_store.close()
    logger.info("RadarOne API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="RadarOne API",
    description="Account registration and encrypted storage of external marketplace sessions.",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver", "radarone.com.br", "*.radarone.com.br"],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "https://radarone.com.br"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(sessions_router, prefix="/api/v1", tags=["Sessions"])


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="RadarOne API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="RadarOne API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Most specific class first. Classes mapped to 500 get a generic message so
# configuration and ciphertext details never reach the client.
_DOMAIN_ERRORS: list[tuple[type[RadarOneError], int, str]] = [
    (UnsupportedSiteError, 400, "unsupported_site"),
    (MissingSessionStateError, 400, "missing_storage_state"),
    (InvalidSessionStateError, 400, "invalid_storage_state"),
    (PayloadTooLargeError, 413, "payload_too_large"),
    (ValidationError, 400, "validation_error"),
    (ConfigurationError, 500, "internal_error"),
    (FormatError, 500, "corrupted_secret"),
    (DecryptionError, 500, "corrupted_secret"),
    (StorageError, 500, "storage_error"),
]


def _classify(exc: RadarOneError) -> tuple[int, str]:
    for cls, status, code in _DOMAIN_ERRORS:
        if isinstance(exc, cls):
            return status, code
    return 500, "internal_error"


@app.exception_handler(RadarOneError)
async def domain_error_handler(request: Request, exc: RadarOneError) -> JSONResponse:
    """Map the core error taxonomy to HTTP status codes."""
    status, code = _classify(exc)
    if status >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        detail = ErrorDetail(code=code, message="An unexpected error occurred.")
    else:
        extra = None
        if isinstance(exc, InvalidSessionStateError):
            extra = "; ".join(str(issue) for issue in exc.issues)
        elif isinstance(exc, UnsupportedSiteError):
            extra = ", ".join(exc.supported)
        detail = ErrorDetail(code=code, message=str(exc), detail=extra)
    return JSONResponse(status_code=status, content=ErrorResponse(error=detail).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. Does not touch the encryption key.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    components = {"app": "ok"}
    try:
        request.app.state.user_store.ping()
        request.app.state.session_store.ping()
        components["database"] = "ok"
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        components["database"] = "error"
    status = "healthy" if components["database"] == "ok" else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)
