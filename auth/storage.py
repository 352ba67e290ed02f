"""
auth/storage.py -- Capability interfaces for the storage collaborators.

AuthService depends only on these protocols, never on a concrete backend.
Any object with matching coroutine methods satisfies them; no inheritance is
needed. Two implementations ship with the package:

  auth/memory.py -- in-process lists, for tests and local development.
  auth/store.py  -- SQLAlchemy Core tables (SQLite by default).

Contract notes:
  create_tokens() stores the whole batch or nothing.
  get_user_by_email() / get_user_by_id() raise UserNotFoundError for a
  missing user. Signup treats that error (and only that error) as "email is
  free", so adapters must not raise it for connection or query failures.
  The engine never wraps several calls in a transaction. An adapter that
  needs strict single-use refresh semantics must provide them itself.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from auth.models import Token, TokenKind, User


class TokenStorage(Protocol):
    async def create_tokens(self, tokens: list[Token]) -> None: ...

    async def remove_user_tokens(self, user_id: UUID) -> None: ...

    async def remove_user_tokens_by_kind(self, user_id: UUID, kind: TokenKind) -> None: ...

    async def remove_user_token(self, user_id: UUID, token: str) -> None: ...

    async def are_tokens_registered(self, tokens: list[str]) -> bool: ...


class UserStorage(Protocol):
    async def create_user(self, user: User) -> None: ...

    async def update_user_password(self, user_id: UUID, password_hash: str) -> None: ...

    async def verify_user(self, user_id: UUID) -> None: ...

    async def get_user_by_id(self, user_id: UUID) -> User: ...

    async def get_user_by_email(self, email: str) -> User: ...
