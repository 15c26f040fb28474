"""
core/errors.py -- Error taxonomy shared by the PII encryptor and the session store.

Every failure the core can produce is a RadarOneError subclass. The core raises
and propagates; it never catches-logs-and-continues. api/main.py maps each class
to an HTTP status and the ErrorResponse envelope.

  ConfigurationError  -- encryption key missing or malformed. Fatal for the
                         operation; never fall back to storing plaintext.
  ValidationError     -- caller input fails a format/shape precondition.
  PayloadTooLargeError-- normalized upload over max_upload_bytes (413).
  UnsupportedSiteError-- site key not in the registry.
  FormatError         -- an encrypted value is not iv:tag:ciphertext hex.
  DecryptionError     -- authentication tag did not verify (tampered data or
                         wrong key). Corrupted data is never reported as absent.
  StorageError        -- the persistence layer failed while saving an upload.

Layer rule: no imports from api/, auth/, pii/, or sessions/.
"""

from __future__ import annotations

from dataclasses import dataclass


class RadarOneError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(RadarOneError):
    pass


class ValidationError(RadarOneError):
    pass


class MissingSessionStateError(ValidationError):
    """No storage state was supplied with an upload."""


class PayloadTooLargeError(ValidationError):
    """The normalized storage state exceeds the configured upload limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Storage state is {size} bytes; the limit is {limit} bytes.")


@dataclass(frozen=True)
class StorageStateIssue:
    """One reason a storage state was rejected.

    path is a JSON-pointer-like location ("cookies", "origins[2].localStorage")
    so tests and API clients can see exactly which part of the blob is wrong.
    """

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class InvalidSessionStateError(ValidationError):
    def __init__(self, issues: list[StorageStateIssue]) -> None:
        self.issues = list(issues)
        super().__init__("Invalid storage state: " + "; ".join(str(i) for i in self.issues))


class UnsupportedSiteError(RadarOneError):
    def __init__(self, site: str, supported: list[str]) -> None:
        self.site = site
        self.supported = list(supported)
        super().__init__(f"Unsupported site: {site}. Supported sites: {', '.join(self.supported)}")


class FormatError(RadarOneError):
    pass


class DecryptionError(RadarOneError):
    pass


class StorageError(RadarOneError):
    pass
