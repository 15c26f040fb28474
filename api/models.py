"""
API request and response models for RadarOne REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in sessions/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

No response model carries an encrypted value or a full CPF.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from core.errors import ValidationError
from pii.cpf import mask_cpf
from sessions.models import STATUS_LABELS, ExternalSessionRecord, SessionStatus
from sessions.sites import SiteInfo, display_name

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    cpf is optional and may include punctuation ("123.456.789-09").
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=72)
    name: str = Field(min_length=1, max_length=255)
    cpf: Optional[str] = Field(default=None, max_length=20)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=72)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    cpf_last4: Optional[str] = None
    cpf_masked: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            cpf_last4=user.cpf_last4,
            cpf_masked=mask_cpf(user.cpf_last4) if user.cpf_last4 else None,
            created_at=user.created_at,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    email: str


# ---------------------------------------------------------------------------
# Sessions -- request models
# ---------------------------------------------------------------------------


class SessionUploadRequest(BaseModel):
    """Request body for POST /api/v1/sessions/{site}/upload.

    Supply exactly one of:
      storage_state        -- JSON text or a JSON object
      storage_state_base64 -- base64 of the JSON text

    The normalized JSON text is capped at Settings.max_upload_bytes.
    """

    account_label: Optional[str] = Field(default=None, max_length=100)
    storage_state: Optional[Union[str, dict[str, Any]]] = None
    storage_state_base64: Optional[str] = None
    expires_at: Optional[datetime] = Field(
        default=None,
        description="Optional expiry hint. Defaults to the configured session TTL.",
    )

    def raw_blob(self) -> Any:
        """Return whichever of the two storage state fields was supplied.

        Raises ValidationError (400) when both are set.
        """
        if self.storage_state is not None and self.storage_state_base64 is not None:
            raise ValidationError("Supply either storage_state or storage_state_base64, not both.")
        if self.storage_state is not None:
            return self.storage_state
        return self.storage_state_base64


# ---------------------------------------------------------------------------
# Sessions -- response models
# ---------------------------------------------------------------------------


class SupportedSite(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    domains: list[str]

    @classmethod
    def from_site(cls, site: SiteInfo) -> "SupportedSite":
        return cls(id=site.key, name=site.display_name, domains=list(site.domains))


class SessionUploadResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    session_id: int
    cookies_count: int
    origins_count: int
    domains: list[str] = Field(default_factory=list)


class SessionStatusResponse(BaseModel):
    """Response for GET /api/v1/sessions/{site}/status.

    has_session=False and status=NOT_CONNECTED when no record exists.
    """

    model_config = ConfigDict(frozen=True)

    site: str
    site_name: str
    status: SessionStatus
    status_label: str
    has_session: bool
    needs_action: bool
    account_label: Optional[str] = None
    cookies_count: int = 0
    origins_count: int = 0
    expires_at: Optional[str] = None
    last_used_at: Optional[str] = None
    last_error_at: Optional[str] = None

    @classmethod
    def from_record(cls, site: str, record: Optional[ExternalSessionRecord]) -> "SessionStatusResponse":
        """Factory Method: the mapping from domain record to API shape lives here."""
        if record is None:
            return cls(
                site=site,
                site_name=display_name(site),
                status=SessionStatus.NOT_CONNECTED,
                status_label=STATUS_LABELS[SessionStatus.NOT_CONNECTED],
                has_session=False,
                needs_action=True,
            )
        meta = record.meta
        return cls(
            site=site,
            site_name=display_name(site),
            status=record.status,
            status_label=STATUS_LABELS[record.status],
            has_session=True,
            needs_action=record.status != SessionStatus.ACTIVE,
            account_label=record.account_label,
            cookies_count=meta.cookies_count if meta else 0,
            origins_count=meta.origins_count if meta else 0,
            expires_at=record.expires_at,
            last_used_at=record.last_used_at,
            last_error_at=record.last_error_at,
        )


class SessionSummary(BaseModel):
    """One row in GET /api/v1/sessions."""

    model_config = ConfigDict(frozen=True)

    id: int
    site: str
    site_name: str
    domain: str
    status: SessionStatus
    status_label: str
    account_label: Optional[str]
    cookies_count: int
    expires_at: Optional[str]
    last_used_at: Optional[str]
    last_error_at: Optional[str]
    created_at: str

    @classmethod
    def from_record(cls, record: ExternalSessionRecord) -> "SessionSummary":
        return cls(
            id=record.id,
            site=record.site,
            site_name=display_name(record.site),
            domain=record.domain,
            status=record.status,
            status_label=STATUS_LABELS[record.status],
            account_label=record.account_label,
            cookies_count=record.meta.cookies_count if record.meta else 0,
            expires_at=record.expires_at,
            last_used_at=record.last_used_at,
            last_error_at=record.last_error_at,
            created_at=record.created_at,
        )


class SessionListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    sessions: list[SessionSummary]
    supported_sites: list[SupportedSite]


class SessionValidateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: SessionStatus
    status_label: str
    message: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
