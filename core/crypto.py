"""
core/crypto.py -- AES-256-GCM field encryption shared by every encrypted column.

Wire format (bit-exact, shared with existing rows and the scraping worker):

    hex(iv) ":" hex(auth_tag) ":" hex(ciphertext)

    iv        16 random bytes, fresh on every seal()
    auth_tag  16 bytes (GCM default tag length)

cryptography's AESGCM appends the tag to the ciphertext; seal() and open()
split and rejoin it so the stored layout keeps the tag in its own segment.

Key handling:
  SecretBox receives the already-parsed 32-byte key through its constructor.
  get_secret_box() is the settings-backed factory: it parses PII_ENCRYPTION_KEY
  on first use and caches the box, so a missing key fails the first request
  that needs encryption rather than application import.

Known limitation: the format carries no key-version marker. Changing
PII_ENCRYPTION_KEY makes every previously sealed value undecryptable until it
is re-encrypted under the new key.

Layer rule: no imports from api/, auth/, pii/, or sessions/.
"""

from __future__ import annotations

import logging
import os
import re
import secrets
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.config import get_settings
from core.errors import ConfigurationError, DecryptionError, FormatError

logger = logging.getLogger("radarone.crypto")

KEY_LENGTH = 32
KEY_HEX_LENGTH = KEY_LENGTH * 2
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


def parse_key(hex_key: str | None) -> bytes:
    """Decode a 64-character hex key into 32 raw bytes.

    Raises ConfigurationError when the key is missing, has the wrong length,
    or contains non-hex characters. The message never echoes the key.
    """
    if not hex_key:
        raise ConfigurationError("PII_ENCRYPTION_KEY is not configured.")
    if len(hex_key) != KEY_HEX_LENGTH or not _HEX_RE.fullmatch(hex_key):
        raise ConfigurationError(
            f"PII_ENCRYPTION_KEY must be {KEY_HEX_LENGTH} hexadecimal characters ({KEY_LENGTH} bytes)."
        )
    return bytes.fromhex(hex_key)


def generate_key() -> str:
    """Return a new random key suitable for PII_ENCRYPTION_KEY (64 hex chars)."""
    return secrets.token_hex(KEY_LENGTH)


def _decode_hex(part: str, name: str) -> bytes:
    if not _HEX_RE.fullmatch(part) or len(part) % 2:
        raise FormatError(f"Encrypted value has a non-hex {name} segment.")
    return bytes.fromhex(part)


def is_sealed(text: str | None) -> bool:
    """Return True if text has the iv:tag:ciphertext shape. Does not decrypt."""
    if not text:
        return False
    parts = text.split(":")
    if len(parts) != 3:
        return False
    iv_hex, tag_hex, ct_hex = parts
    return (
        len(iv_hex) == IV_LENGTH * 2
        and len(tag_hex) == AUTH_TAG_LENGTH * 2
        and bool(ct_hex)
        and all(_HEX_RE.fullmatch(p) for p in parts)
    )


class SecretBox:
    """Authenticated encryption of text values under a single process key.

    Stateless apart from the key: every seal() draws its own IV, so one
    instance is safe to share between threads.

    Usage:
        box = SecretBox(parse_key(settings.pii_encryption_key))
        token = box.seal("12345678909")
        box.open(token)  # "12345678909"
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(f"Encryption key must be exactly {KEY_LENGTH} bytes.")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, hex_key: str | None) -> "SecretBox":
        return cls(parse_key(hex_key))

    def seal(self, plaintext: str) -> str:
        """Encrypt plaintext and return the iv:tag:ciphertext hex string."""
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def open(self, token: str) -> str:
        """Decrypt an iv:tag:ciphertext string.

        Structural problems raise FormatError before any cipher work happens.
        A tag that does not verify raises DecryptionError; garbage is never
        returned.
        """
        if not isinstance(token, str) or not token:
            raise FormatError("Encrypted value is empty.")
        parts = token.split(":")
        if len(parts) != 3:
            raise FormatError("Invalid encrypted value format (expected iv:authTag:ciphertext).")
        iv = _decode_hex(parts[0], "iv")
        tag = _decode_hex(parts[1], "auth tag")
        ciphertext = _decode_hex(parts[2], "ciphertext")
        if len(iv) != IV_LENGTH:
            raise FormatError(f"Encrypted value IV must be {IV_LENGTH} bytes.")
        if len(tag) != AUTH_TAG_LENGTH:
            raise FormatError(f"Encrypted value auth tag must be {AUTH_TAG_LENGTH} bytes.")
        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionError("Encrypted value failed authentication.") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted value is not valid UTF-8.") from exc


@lru_cache
def get_secret_box() -> SecretBox:
    """Return the process-wide SecretBox built from PII_ENCRYPTION_KEY.

    lru_cache only stores successful results, so a ConfigurationError is
    raised again on every call until the key is fixed. Tests that change the
    key must call get_settings.cache_clear() and get_secret_box.cache_clear().
    """
    box = SecretBox.from_hex(get_settings().pii_encryption_key)
    logger.info("PII encryption key loaded")
    return box
