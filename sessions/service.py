"""
sessions/service.py -- External session credential store: upload, status, and reuse.

SessionCredentialService is the only entry point for session state. It owns
the status lifecycle:

  upload()            -> ACTIVE (always; a new upload fully replaces the old one)
  mark_needs_reauth() -> NEEDS_REAUTH (reported by the scraping worker)
  read paths          -> EXPIRED is derived on read once expires_at has passed,
                         so no sweep job is needed. Only load() persists it.

Upload pipeline (all-or-nothing):
  site registry -> normalize -> schema check -> metadata -> seal -> one upsert.
  Every check runs before the single write, so a rejected upload leaves any
  existing record untouched.

Decryption is reserved for load(), the capability handed to the scraping
worker. Status and list views return metadata only.

Layer rule: imports core/ and sessions/ only.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.config import now_iso
from core.crypto import SecretBox
from core.errors import PayloadTooLargeError, StorageError, ValidationError
from sessions.models import (
    ExternalSessionRecord,
    LoadResult,
    SessionMeta,
    SessionStatus,
    UploadResult,
    ValidationOutcome,
)
from sessions.sites import get_site
from sessions.storage_state import extract_meta, mask_domain, normalize_storage_state, validate_storage_state
from sessions.store import SessionStore

logger = logging.getLogger("radarone.sessions")

DEFAULT_TTL_DAYS = 30


def _parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO 8601 string or datetime; naive values are treated as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid timestamp: {value!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _is_past(expires_at: Optional[str], now: datetime) -> bool:
    if not expires_at:
        return False
    return _parse_timestamp(expires_at) <= now


class SessionCredentialService:
    """Accepts, validates, encrypts, persists and reports on uploaded sessions.

    Usage:
        service = SessionCredentialService(SessionStore(), get_secret_box())
        service.upload(user_id, "MERCADO_LIVRE", storage_state_json)
        service.get_status(user_id, "MERCADO_LIVRE").status  # SessionStatus.ACTIVE
    """

    def __init__(
        self,
        store: SessionStore,
        box: SecretBox,
        ttl_days: int = DEFAULT_TTL_DAYS,
        max_bytes: Optional[int] = None,
    ) -> None:
        self._store = store
        self._box = box
        self._ttl_days = ttl_days
        self._max_bytes = max_bytes

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(
        self,
        user_id: int,
        site: str,
        raw_blob: Any,
        account_label: Optional[str] = None,
        expires_at: datetime | str | None = None,
    ) -> UploadResult:
        """Validate, encrypt and store a storage state for (user_id, site).

        raw_blob may be JSON text, a parsed dict, or base64 text.

        Raises UnsupportedSiteError, MissingSessionStateError,
        InvalidSessionStateError, PayloadTooLargeError, ValidationError (bad
        expires_at), ConfigurationError (no key) or StorageError (database
        failure).
        Nothing is written unless every step succeeds.
        """
        site_info = get_site(site)
        storage_state = normalize_storage_state(raw_blob)
        if self._max_bytes is not None:
            size = len(storage_state.encode("utf-8"))
            if size > self._max_bytes:
                raise PayloadTooLargeError(size, self._max_bytes)
        state = validate_storage_state(storage_state)
        meta = extract_meta(state, storage_state)

        if expires_at is None:
            expiry = datetime.now(timezone.utc) + timedelta(days=self._ttl_days)
        else:
            expiry = _parse_timestamp(expires_at)

        record = ExternalSessionRecord(
            user_id=user_id,
            site=site_info.key,
            domain=site_info.primary_domain,
            encrypted_storage_state=self._box.seal(storage_state),
            status=SessionStatus.ACTIVE,
            meta=meta,
            account_label=account_label or None,
            expires_at=expiry.isoformat(),
            last_used_at=now_iso(),
            last_error_at=None,
        )
        try:
            session_id = self._store.upsert(record)
        except SQLAlchemyError as exc:
            logger.error("Failed to save session user=%s site=%s: %s", user_id, site_info.key, type(exc).__name__)
            raise StorageError("Failed to save session.") from exc

        logger.info(
            "Session saved user=%s site=%s domain=%s cookies=%d origins=%d",
            user_id,
            site_info.key,
            mask_domain(site_info.primary_domain),
            meta.cookies_count,
            meta.origins_count,
        )
        return UploadResult(success=True, session_id=session_id, message="Session saved successfully.", meta=meta)

    # ------------------------------------------------------------------
    # Read paths (no decryption)
    # ------------------------------------------------------------------

    def _effective(self, record: ExternalSessionRecord, now: Optional[datetime] = None) -> ExternalSessionRecord:
        """Return record with ACTIVE downgraded to EXPIRED when expires_at has passed."""
        now = now or datetime.now(timezone.utc)
        if record.status == SessionStatus.ACTIVE and _is_past(record.expires_at, now):
            return dataclasses.replace(record, status=SessionStatus.EXPIRED)
        return record

    def get_status(self, user_id: int, site: str) -> Optional[ExternalSessionRecord]:
        """Return the record with its effective status, or None (NOT_CONNECTED)."""
        get_site(site)
        record = self._store.get(user_id, site)
        return self._effective(record) if record is not None else None

    def get_all(self, user_id: int) -> list[ExternalSessionRecord]:
        now = datetime.now(timezone.utc)
        return [self._effective(r, now) for r in self._store.list_for_user(user_id)]

    def has_active(self, user_id: int, site: str) -> bool:
        record = self.get_status(user_id, site)
        return record is not None and record.status == SessionStatus.ACTIVE

    def validate(self, user_id: int, site: str) -> ValidationOutcome:
        """Map the current status to a message. Read-only; never contacts the site."""
        record = self.get_status(user_id, site)
        if record is None:
            return ValidationOutcome(
                SessionStatus.NOT_CONNECTED,
                "No session found. Upload a new storage state to connect.",
            )
        if record.status == SessionStatus.ACTIVE:
            return ValidationOutcome(record.status, "Session is active.")
        if record.status == SessionStatus.EXPIRED:
            return ValidationOutcome(record.status, "Session has expired. Upload a new storage state.")
        return ValidationOutcome(record.status, "Session needs reauthentication. Upload a new storage state.")

    def delete(self, user_id: int, site: str) -> bool:
        """Remove the session. False when there was nothing to delete."""
        get_site(site)
        deleted = self._store.delete(user_id, site)
        if deleted:
            logger.info("Session deleted user=%s site=%s", user_id, site)
        return deleted

    # ------------------------------------------------------------------
    # Scraping worker capability
    # ------------------------------------------------------------------

    def load(self, user_id: int, site: str) -> LoadResult:
        """Decrypt the stored session for replay by the scraping worker.

        Only ACTIVE sessions are decrypted. A session found past its
        expires_at is persisted as EXPIRED here. FormatError and
        DecryptionError propagate: a corrupted blob is a hard failure, not a
        missing session.
        """
        get_site(site)
        record = self._store.get(user_id, site)
        if record is None:
            return LoadResult(storage_state=None, record=None, reason="Session not found.")

        effective = self._effective(record)
        if effective.status == SessionStatus.NEEDS_REAUTH:
            return LoadResult(storage_state=None, record=effective, reason="Session needs reauthentication.")
        if effective.status == SessionStatus.EXPIRED:
            if record.status == SessionStatus.ACTIVE:
                self._store.update_status(user_id, site, SessionStatus.EXPIRED)
                logger.info("Session expired user=%s site=%s", user_id, site)
            return LoadResult(storage_state=None, record=effective, reason="Session expired.")

        storage_state = self._box.open(record.encrypted_storage_state)
        self._store.touch_last_used(user_id, site)
        return LoadResult(storage_state=storage_state, record=effective)

    def mark_needs_reauth(self, user_id: int, site: str, reason: Optional[str] = None) -> bool:
        """Record that the target site rejected the session. False if no record."""
        get_site(site)
        record = self._store.get(user_id, site)
        if record is None:
            return False
        now = now_iso()
        meta = record.meta or SessionMeta(cookies_count=0, origins_count=0)
        meta = dataclasses.replace(meta, last_error_reason=reason or "Login required by site", needs_reauth_at=now)
        updated = self._store.update_status(user_id, site, SessionStatus.NEEDS_REAUTH, meta=meta, last_error_at=now)
        if updated:
            logger.warning("Session needs reauth user=%s site=%s reason=%s", user_id, site, meta.last_error_reason)
        return updated

    def mark_used(self, user_id: int, site: str) -> bool:
        """Record a successful replay of the session."""
        get_site(site)
        return self._store.touch_last_used(user_id, site)
