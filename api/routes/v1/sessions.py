"""
api/routes/v1/sessions.py -- External session routes for the RadarOne REST API.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /sessions                       -- all sessions of the current user
  GET    /sessions/supported-sites       -- site registry
  GET    /sessions/{site}/status         -- status of one site (NOT_CONNECTED if none)
  POST   /sessions/{site}/upload         -- JSON upload (object, JSON text or base64)
  POST   /sessions/{site}/upload-file    -- multipart upload of a storageState file
  DELETE /sessions/{site}                -- remove the session; 404 if none
  POST   /sessions/{site}/validate       -- status-based validation; 404 if none

Every route is scoped to the authenticated user: user_id always comes from the
JWT, never from the request. No route ever returns the decrypted storage state
or its ciphertext; decryption is reserved for the in-process scraping worker
through SessionCredentialService.load().

Domain errors (unknown site, bad storage state, missing key) propagate to the
handlers in api/main.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile

from api.models import (
    ErrorDetail,
    MessageResponse,
    SessionListResponse,
    SessionStatusResponse,
    SessionSummary,
    SessionUploadRequest,
    SessionUploadResponse,
    SessionValidateResponse,
    SupportedSite,
)
from auth.dependencies import get_current_user
from auth.models import User
from core.config import get_settings
from core.crypto import get_secret_box
from sessions.models import STATUS_LABELS, SessionStatus, UploadResult
from sessions.service import SessionCredentialService
from sessions.sites import SUPPORTED_SITES

# Router-level dependency: every session route requires authentication.
router = APIRouter(dependencies=[Depends(get_current_user)])


def _service(request: Request) -> SessionCredentialService:
    """Build the service for this request. Loads the PII key on first use."""
    settings = get_settings()
    return SessionCredentialService(
        request.app.state.session_store,
        get_secret_box(),
        ttl_days=settings.session_ttl_days,
        max_bytes=settings.max_upload_bytes,
    )


def _supported_sites() -> list[SupportedSite]:
    return [SupportedSite.from_site(site) for site in SUPPORTED_SITES.values()]


def _upload_response(result: UploadResult) -> SessionUploadResponse:
    return SessionUploadResponse(
        success=result.success,
        message=result.message,
        session_id=result.session_id,
        cookies_count=result.meta.cookies_count,
        origins_count=result.meta.origins_count,
        domains=result.meta.domains,
    )


def _not_found(site: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="session_not_found", message=f"No session found for {site}.").model_dump(),
    )


# ---------------------------------------------------------------------------
# GET /sessions -- list
# ---------------------------------------------------------------------------


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(request: Request, user: User = Depends(get_current_user)) -> SessionListResponse:
    """Return every stored session of the user with its effective status."""
    records = _service(request).get_all(user.id)
    return SessionListResponse(
        sessions=[SessionSummary.from_record(r) for r in records],
        supported_sites=_supported_sites(),
    )


# ---------------------------------------------------------------------------
# GET /sessions/supported-sites (must be before /sessions/{site}/...)
# ---------------------------------------------------------------------------


@router.get("/sessions/supported-sites", response_model=list[SupportedSite])
def supported_sites() -> list[SupportedSite]:
    return _supported_sites()


# ---------------------------------------------------------------------------
# GET /sessions/{site}/status
# ---------------------------------------------------------------------------


@router.get("/sessions/{site}/status", response_model=SessionStatusResponse)
def session_status(site: str, request: Request, user: User = Depends(get_current_user)) -> SessionStatusResponse:
    """Status of one site. Returns NOT_CONNECTED with has_session=false when none is stored."""
    record = _service(request).get_status(user.id, site)
    return SessionStatusResponse.from_record(site, record)


# ---------------------------------------------------------------------------
# POST /sessions/{site}/upload -- JSON body
# ---------------------------------------------------------------------------


@router.post("/sessions/{site}/upload", response_model=SessionUploadResponse)
def upload_session(
    site: str,
    body: SessionUploadRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> SessionUploadResponse:
    """Store a Playwright storageState for site, replacing any previous one.

    The new session is always ACTIVE. A rejected upload leaves the previous
    session untouched.
    """
    result = _service(request).upload(
        user.id,
        site,
        body.raw_blob(),
        account_label=body.account_label,
        expires_at=body.expires_at,
    )
    return _upload_response(result)


# ---------------------------------------------------------------------------
# POST /sessions/{site}/upload-file -- multipart
# ---------------------------------------------------------------------------


@router.post("/sessions/{site}/upload-file", response_model=SessionUploadResponse)
async def upload_session_file(
    site: str,
    request: Request,
    file: UploadFile,
    account_label: Optional[str] = Form(default=None, max_length=100),
    user: User = Depends(get_current_user),
) -> SessionUploadResponse:
    """Store a storageState exported to a .json file.

    File size is capped at Settings.max_upload_bytes.
    """
    limit = get_settings().max_upload_bytes
    # Size guard -- read up to the limit + 1 byte; reject if over limit
    raw = await file.read(limit + 1)
    if len(raw) > limit:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(
                code="file_too_large",
                message=f"Upload must be {limit} bytes or smaller.",
            ).model_dump(),
        )
    result = _service(request).upload(user.id, site, raw, account_label=account_label)
    return _upload_response(result)


# ---------------------------------------------------------------------------
# DELETE /sessions/{site}
# ---------------------------------------------------------------------------


@router.delete("/sessions/{site}", response_model=MessageResponse)
def delete_session(site: str, request: Request, user: User = Depends(get_current_user)) -> MessageResponse:
    if not _service(request).delete(user.id, site):
        raise _not_found(site)
    return MessageResponse(message="Session removed.")


# ---------------------------------------------------------------------------
# POST /sessions/{site}/validate
# ---------------------------------------------------------------------------


@router.post("/sessions/{site}/validate", response_model=SessionValidateResponse)
def validate_session(site: str, request: Request, user: User = Depends(get_current_user)) -> SessionValidateResponse:
    """Report whether the stored session is still usable. Does not contact the site."""
    outcome = _service(request).validate(user.id, site)
    if outcome.status == SessionStatus.NOT_CONNECTED:
        raise _not_found(site)
    return SessionValidateResponse(
        status=outcome.status,
        status_label=STATUS_LABELS[outcome.status],
        message=outcome.message,
    )
