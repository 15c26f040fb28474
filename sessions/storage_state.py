"""
sessions/storage_state.py -- Normalization and structural validation of uploaded sessions.

A storage state is the JSON a browser automation tool exports for a logged-in
profile:

    {
      "cookies": [{"name": "...", "value": "...", "domain": "...", ...}],
      "origins": [{"origin": "https://...", "localStorage": [{"name": "...", "value": "..."}]}]
    }

Uploads arrive in three forms -- raw JSON text, an already-parsed object, or
base64 text -- and normalize_storage_state() turns all of them into one JSON
string before anything else looks at it.

check_storage_state() validates against the narrow schema above and returns a
StorageStateCheck listing every problem found, instead of a bare bool, so each
rejection reason is visible to tests and API clients.

Pure functions: no I/O, no crypto, no logging of blob content.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from core.config import now_iso
from core.errors import InvalidSessionStateError, MissingSessionStateError, StorageStateIssue
from sessions.models import SessionMeta


@dataclass
class StorageStateCheck:
    state: Optional[dict] = None
    issues: list[StorageStateIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_storage_state(raw: Any) -> str:
    """Return the upload as a JSON string.

    dict/list  -> serialized with json.dumps
    str/bytes  -> used as-is when it looks like JSON, otherwise base64-decoded

    Raises MissingSessionStateError for None or blank input and
    InvalidSessionStateError when text is neither JSON nor valid base64.
    """
    if raw is None:
        raise MissingSessionStateError("storage state not provided")
    if isinstance(raw, (dict, list)):
        return json.dumps(raw, ensure_ascii=False)
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidSessionStateError([StorageStateIssue("", "upload is not UTF-8 text")]) from None
    if not isinstance(raw, str):
        raise InvalidSessionStateError([StorageStateIssue("", "must be JSON text, a JSON object, or base64 text")])

    text = raw.strip()
    if not text:
        raise MissingSessionStateError("storage state not provided")
    if text[0] in "{[":
        return text

    try:
        decoded = base64.b64decode("".join(text.split()), validate=True).decode("utf-8").strip()
    except ValueError:
        raise InvalidSessionStateError([StorageStateIssue("", "not valid JSON or base64-encoded JSON")]) from None
    if not decoded:
        raise InvalidSessionStateError([StorageStateIssue("", "base64 payload is empty")])
    return decoded


# ---------------------------------------------------------------------------
# Schema check
# ---------------------------------------------------------------------------


def check_storage_state(text: str) -> StorageStateCheck:
    """Validate text against the storage-state schema without raising."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        return StorageStateCheck(issues=[StorageStateIssue("", f"not valid JSON ({exc.msg})")])

    if not isinstance(parsed, dict):
        return StorageStateCheck(issues=[StorageStateIssue("", "must be a JSON object")])

    issues: list[StorageStateIssue] = []

    cookies = parsed.get("cookies")
    if "cookies" not in parsed:
        issues.append(StorageStateIssue("cookies", "is required"))
    elif not isinstance(cookies, list):
        issues.append(StorageStateIssue("cookies", "must be an array"))
    else:
        for i, cookie in enumerate(cookies):
            if not isinstance(cookie, dict):
                issues.append(StorageStateIssue(f"cookies[{i}]", "must be an object"))

    origins = parsed.get("origins")
    if "origins" not in parsed:
        issues.append(StorageStateIssue("origins", "is required"))
    elif not isinstance(origins, list):
        issues.append(StorageStateIssue("origins", "must be an array"))
    else:
        for i, origin in enumerate(origins):
            if not isinstance(origin, dict):
                issues.append(StorageStateIssue(f"origins[{i}]", "must be an object"))
                continue
            if not isinstance(origin.get("origin"), str):
                issues.append(StorageStateIssue(f"origins[{i}].origin", "must be a string"))
            if not isinstance(origin.get("localStorage"), list):
                issues.append(StorageStateIssue(f"origins[{i}].localStorage", "must be an array"))

    if issues:
        return StorageStateCheck(issues=issues)
    return StorageStateCheck(state=parsed)


def validate_storage_state(text: str) -> dict:
    """Return the parsed state or raise InvalidSessionStateError with every issue."""
    check = check_storage_state(text)
    if not check.ok:
        raise InvalidSessionStateError(check.issues)
    return check.state


def is_valid_storage_state(text: str) -> bool:
    return check_storage_state(text).ok


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


def extract_meta(state: dict, text: str) -> SessionMeta:
    """Build the plaintext summary stored next to the ciphertext.

    Must be called with the same parsed state that is about to be encrypted,
    so the counts always describe the stored blob.
    """
    domains: list[str] = []
    for cookie in state["cookies"]:
        domain = cookie.get("domain")
        if isinstance(domain, str) and domain and domain not in domains:
            domains.append(domain)
    return SessionMeta(
        cookies_count=len(state["cookies"]),
        origins_count=len(state["origins"]),
        domains=domains,
        size_bytes=len(text.encode("utf-8")),
        uploaded_at=now_iso(),
    )


def mask_domain(domain: str) -> str:
    """Mask a domain for log lines: "www.mercadolivre.com.br" -> "***.com.br"."""
    if not domain:
        return "***"
    parts = domain.split(".")
    if len(parts) <= 2:
        return f"***.{parts[-1]}"
    return "***." + ".".join(parts[-2:])
