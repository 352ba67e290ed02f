"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; these classes only own the domain shape.

Layer rule: no imports from notify/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class TokenKind(str, Enum):
    """Purpose of an issued token. Each kind has its own secret and lifetime."""

    ACCESS = "access"
    REFRESH = "refresh"
    VERIFY = "verify"
    RESET_PASSWORD = "reset_password"


@dataclass
class User:
    """A registered identity.

    password_hash is always produced by auth.passwords.hash_password(); the
    plaintext password never lands on this object once signup completes.

    email is unique across users and compared case-sensitively, exactly as
    stored. meta is free-form data merged into notification payloads (first
    name, locale, ...).
    """

    id: UUID
    email: str
    password_hash: str = ""
    phone_number: str = ""
    is_verified: bool = False
    verified_at: datetime | None = None
    meta: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Token:
    """A persisted record of an issued credential.

    value is the signed JWT itself. expires_at mirrors the token's exp claim
    (whole seconds, UTC) so storage can purge expired rows without parsing.
    """

    kind: TokenKind
    value: str
    user_id: UUID
    expires_at: datetime


@dataclass
class SignInResult:
    """Token pair handed back by sign-in and refresh.

    access_expires_at is the exp claim of access_token.
    """

    user_id: UUID
    access_token: str
    refresh_token: str
    access_expires_at: datetime | None = None
