"""
pii/models.py -- Domain dataclass for an encrypted national ID (CPF).

Pattern: Data class (pure data container, zero logic). pii/cpf.py does the work.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NationalIdRecord:
    """The three stored forms of one CPF.

    encrypted -- iv:tag:ciphertext hex over the 11 cleaned digits.
    last4     -- plaintext last four digits, display only.
    hash      -- unsalted SHA-256 hex of the 11 digits. Deterministic on
                 purpose: it is the uniqueness key across users. Because the
                 CPF space is small, a leaked hash column can be brute-forced
                 offline; treat it with the same care as the ciphertext.

    Immutable once created. There is no update path.
    """

    encrypted: str
    last4: str
    hash: str
