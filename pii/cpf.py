"""
pii/cpf.py -- Encryption, hashing, validation and formatting of CPF numbers.

A CPF is the 11-digit Brazilian taxpayer ID: nine base digits followed by two
check digits. Every function here first reduces its input to digits only, so
"123.456.789-09" and "12345678909" are the same value.

Pure helpers (no key needed):
  clean_cpf, validate_cpf, format_cpf, mask_cpf, hash_cpf

CpfEncryptor wraps a core.crypto.SecretBox and adds the CPF preconditions.
It is constructed with the box rather than reading configuration itself, so
tests can inject a known key.

Layer rule: imports core/ only.
"""

from __future__ import annotations

import hashlib
import re

from core.crypto import SecretBox
from core.errors import ValidationError
from pii.models import NationalIdRecord

CPF_LENGTH = 11

_NON_DIGIT = re.compile(r"\D")
_CPF_GROUPS = re.compile(r"(\d{3})(\d{3})(\d{3})(\d{2})")


def clean_cpf(value: str) -> str:
    """Strip everything that is not a digit."""
    return _NON_DIGIT.sub("", value or "")


def _require_cpf_digits(value: str) -> str:
    digits = clean_cpf(value)
    if len(digits) != CPF_LENGTH:
        raise ValidationError(f"CPF must have {CPF_LENGTH} digits")
    return digits


def _check_digit(digits: str, first_weight: int) -> int:
    total = sum(int(d) * w for d, w in zip(digits, range(first_weight, 1, -1)))
    remainder = (total * 10) % 11
    return 0 if remainder >= 10 else remainder


def validate_cpf(value: str) -> bool:
    """Return True if value is a CPF with correct check digits.

    Rejects anything not reducible to 11 digits and the repeated-digit
    sequences (00000000000 .. 99999999999), which pass the checksum but are
    never issued.
    """
    digits = clean_cpf(value)
    if len(digits) != CPF_LENGTH:
        return False
    if digits == digits[0] * CPF_LENGTH:
        return False
    if _check_digit(digits[:9], 10) != int(digits[9]):
        return False
    return _check_digit(digits[:10], 11) == int(digits[10])


def format_cpf(value: str) -> str:
    """Render digits as ###.###.###-##. No validation is performed."""
    return _CPF_GROUPS.sub(r"\1.\2.\3-\4", clean_cpf(value), count=1)


def mask_cpf(last4: str) -> str:
    """Display form built from the stored last four digits: ***.***.*77-35."""
    if len(last4) != 4:
        return "***.***.***-**"
    return f"***.***.*{last4[:2]}-{last4[2:]}"


def hash_cpf(value: str) -> str:
    """SHA-256 hex digest of the 11 cleaned digits (no salt, no key)."""
    return hashlib.sha256(_require_cpf_digits(value).encode("utf-8")).hexdigest()


class CpfEncryptor:
    """PII field encryptor for CPF values.

    Usage:
        encryptor = CpfEncryptor(get_secret_box())
        record = encryptor.encrypt("123.456.789-09")
        encryptor.decrypt(record.encrypted)  # "12345678909"
    """

    def __init__(self, box: SecretBox) -> None:
        self._box = box

    def encrypt(self, plaintext: str) -> NationalIdRecord:
        """Encrypt a CPF and return its encrypted, last4 and hash forms.

        Raises ValidationError if the value does not have 11 digits. The
        checksum is not checked here; registration calls validate() first.
        """
        digits = _require_cpf_digits(plaintext)
        return NationalIdRecord(
            encrypted=self._box.seal(digits),
            last4=digits[-4:],
            hash=hash_cpf(digits),
        )

    def decrypt(self, encrypted: str) -> str:
        """Recover the 11 digits. Raises FormatError or DecryptionError."""
        return self._box.open(encrypted)

    def hash(self, plaintext: str) -> str:
        return hash_cpf(plaintext)

    @staticmethod
    def validate(candidate: str) -> bool:
        return validate_cpf(candidate)

    @staticmethod
    def format(candidate: str) -> str:
        return format_cpf(candidate)
