"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; api/models.py owns the wire representation.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass
class UserAccount:
    """A registered identity.

    email is always stored lower-cased; the store enforces uniqueness on it.

    Token pairs: email_verification_token/_expires and password_reset_token/
    _expires are always written and cleared together. A token without its
    expiry (or the reverse) is a bug in whoever mutated the record.

    Timestamps are ISO 8601 UTC strings, the same representation the store
    uses for every time column.
    """

    email: str
    full_name: str
    password_hash: str
    role: Role = Role.USER
    id: int | None = None
    is_email_verified: bool = False
    email_verification_token: str | None = None
    email_verification_expires: str | None = None
    password_reset_token: str | None = None
    password_reset_expires: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class TokenPair:
    """Access token for the response body plus refresh token for the cookie."""

    access_token: str
    refresh_token: str
