"""
api/routes/v1/auth.py -- Account registration and login REST endpoints.

Routes:
  POST /api/v1/auth/register           -- create an account (optional CPF); 201
  POST /api/v1/auth/login              -- password login; sets JWT cookie
  POST /api/v1/auth/logout             -- clears cookie; 200
  GET  /api/v1/auth/me                 -- current user info (requires auth)

Security:
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  The CPF is validated, checked for duplicates by hash, and encrypted before
  it reaches the store. Responses carry only the last four digits.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import ErrorDetail, LoginRequest, LoginResponse, RegisterRequest, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password, set_auth_cookie
from core.config import get_settings
from core.crypto import get_secret_box
from pii.cpf import CpfEncryptor, hash_cpf, validate_cpf

logger = logging.getLogger("radarone.auth")

# Auth policy:
# - POST /api/v1/auth/register: public -- account creation
# - POST /api/v1/auth/login:    public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:   public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:       requires auth (get_current_user)
router = APIRouter()


def _conflict(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=409, detail=ErrorDetail(code=code, message=message).model_dump())


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create an account. When a CPF is supplied it must pass the checksum.

    Duplicate email -> 409 email_taken. Duplicate CPF -> 409 cpf_taken. The
    store's UNIQUE constraints back both checks for concurrent registrations.
    """
    user_store: UserStore = request.app.state.user_store

    if user_store.get_by_email(body.email) is not None:
        raise _conflict("email_taken", "An account with this email already exists.")

    user = User(email=body.email, name=body.name, hashed_password=hash_password(body.password))

    if body.cpf:
        if not validate_cpf(body.cpf):
            raise HTTPException(
                status_code=400,
                detail=ErrorDetail(code="invalid_cpf", message="CPF is invalid.").model_dump(),
            )
        if user_store.find_by_cpf_hash(hash_cpf(body.cpf)) is not None:
            raise _conflict("cpf_taken", "This CPF is already registered.")
        record = CpfEncryptor(get_secret_box()).encrypt(body.cpf)
        user.cpf_encrypted = record.encrypted
        user.cpf_last4 = record.last4
        user.cpf_hash = record.hash

    try:
        user_id = user_store.create_user(user)
    except IntegrityError:
        raise _conflict("already_registered", "An account with this email or CPF already exists.") from None

    logger.info("User registered id=%s with_cpf=%s", user_id, user.cpf_hash is not None)
    return UserResponse.from_user(user_store.get_by_id(user_id))


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same generic error for an unknown email and a wrong password
    ("bad_credentials") to avoid leaking which emails are registered.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    user_store.update_last_login(user.id)
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=get_settings().token_expire_seconds,
            email=user.email,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(current_user)
