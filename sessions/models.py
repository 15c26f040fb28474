"""
sessions/models.py -- Domain dataclasses for external site sessions.

Pure data containers. Status transitions live in sessions/service.py;
persistence lives in sessions/store.py.

Status lifecycle:
  ACTIVE        set by every successful upload (full overwrite)
  NEEDS_REAUTH  reported by the scraping worker when the site rejects the session
  EXPIRED       derived at read time once expires_at has passed
  NOT_CONNECTED pseudo-state for "no record"; never persisted
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    NEEDS_REAUTH = "NEEDS_REAUTH"
    EXPIRED = "EXPIRED"
    NOT_CONNECTED = "NOT_CONNECTED"


STATUS_LABELS: dict[SessionStatus, str] = {
    SessionStatus.ACTIVE: "Connected",
    SessionStatus.NEEDS_REAUTH: "Reconnect",
    SessionStatus.EXPIRED: "Expired",
    SessionStatus.NOT_CONNECTED: "Not connected",
}


@dataclass
class SessionMeta:
    """Non-secret summary of an uploaded storage state.

    Computed from the parsed blob at save time and stored in plaintext so list
    and status views never need to decrypt.
    """

    cookies_count: int
    origins_count: int
    domains: list[str] = field(default_factory=list)
    size_bytes: int = 0
    uploaded_at: str = ""  # ISO 8601
    last_error_reason: Optional[str] = None
    needs_reauth_at: Optional[str] = None


@dataclass
class ExternalSessionRecord:
    """One uploaded browser session per (user_id, site).

    encrypted_storage_state is the iv:tag:ciphertext string; only the
    scraper-facing load() path ever decrypts it.

    id is None before the record is written to the database.
    """

    user_id: int
    site: str
    domain: str
    encrypted_storage_state: str
    status: SessionStatus = SessionStatus.ACTIVE
    meta: Optional[SessionMeta] = None
    account_label: Optional[str] = None
    expires_at: Optional[str] = None  # ISO 8601
    last_used_at: Optional[str] = None
    last_error_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    id: Optional[int] = None


@dataclass(frozen=True)
class UploadResult:
    success: bool
    session_id: int
    message: str
    meta: SessionMeta


@dataclass(frozen=True)
class LoadResult:
    """Outcome of the scraper-facing load().

    storage_state is the decrypted JSON only when the session is usable;
    otherwise it is None and reason says why (not found, needs reauth, expired).
    """

    storage_state: Optional[str]
    record: Optional[ExternalSessionRecord]
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.storage_state is not None


@dataclass(frozen=True)
class ValidationOutcome:
    status: SessionStatus
    message: str
