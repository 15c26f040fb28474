"""
auth/models.py -- Domain dataclass for user accounts.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in sessions/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or sessions/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A RadarOne account.

    The CPF is stored as the three columns of a pii.models.NationalIdRecord:
    cpf_encrypted (iv:tag:ciphertext), cpf_last4 (display only) and cpf_hash
    (unsalted SHA-256, unique across users). All three are None for users who
    registered without a CPF. cpf_encrypted is never returned by the API.
    """

    email: str
    name: str
    id: int | None = None
    hashed_password: str | None = None
    cpf_encrypted: str | None = None
    cpf_last4: str | None = None
    cpf_hash: str | None = None
    created_at: str | None = None
    last_login: str | None = None
    is_active: bool = True
