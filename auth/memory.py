"""
auth/memory.py -- In-memory storage adapters.

Keeps users and tokens in plain lists behind an asyncio.Lock. Nothing is
persisted; a restart forgets everything. Intended for tests, demos, and
development servers.

Stored and returned users and tokens are copies, so callers cannot mutate
stored state by accident -- the same guarantee the SQL adapter gives for free.
Token fields are all immutable, so a shallow copy is enough there.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from uuid import UUID

from auth.exceptions import UserConflictError, UserNotFoundError
from auth.models import Token, TokenKind, User


class MemoryTokenStorage:
    """TokenStorage backed by a list."""

    def __init__(self, tokens: list[Token] | None = None) -> None:
        self._tokens: list[Token] = [copy.copy(t) for t in tokens or []]
        self._lock = asyncio.Lock()

    async def get_all(self) -> list[Token]:
        async with self._lock:
            return [copy.copy(t) for t in self._tokens]

    async def create_tokens(self, tokens: list[Token]) -> None:
        async with self._lock:
            self._tokens.extend(copy.copy(t) for t in tokens)

    async def remove_user_tokens(self, user_id: UUID) -> None:
        async with self._lock:
            self._tokens = [t for t in self._tokens if t.user_id != user_id]

    async def remove_user_tokens_by_kind(self, user_id: UUID, kind: TokenKind) -> None:
        async with self._lock:
            self._tokens = [t for t in self._tokens if not (t.user_id == user_id and t.kind == kind)]

    async def remove_user_token(self, user_id: UUID, token: str) -> None:
        async with self._lock:
            self._tokens = [t for t in self._tokens if not (t.user_id == user_id and t.value == token)]

    async def are_tokens_registered(self, tokens: list[str]) -> bool:
        async with self._lock:
            stored = {t.value for t in self._tokens}
        return all(t in stored for t in tokens)

    async def list_user_tokens(self, user_id: UUID) -> list[Token]:
        async with self._lock:
            return [copy.copy(t) for t in self._tokens if t.user_id == user_id]


class MemoryUserStorage:
    """UserStorage backed by a list. Emails are unique, compared exactly."""

    def __init__(self, users: list[User] | None = None) -> None:
        self._users: list[User] = [copy.deepcopy(u) for u in users or []]
        self._lock = asyncio.Lock()

    async def get_all(self) -> list[User]:
        async with self._lock:
            return [copy.deepcopy(u) for u in self._users]

    async def create_user(self, user: User) -> None:
        async with self._lock:
            if any(u.email == user.email for u in self._users):
                raise UserConflictError(f"email already registered: {user.email}")
            now = datetime.now(timezone.utc)
            stored = copy.deepcopy(user)
            stored.created_at = stored.created_at or now
            stored.updated_at = now
            self._users.append(stored)

    async def update_user_password(self, user_id: UUID, password_hash: str) -> None:
        async with self._lock:
            user = self._find(user_id)
            user.password_hash = password_hash
            user.updated_at = datetime.now(timezone.utc)

    async def verify_user(self, user_id: UUID) -> None:
        async with self._lock:
            user = self._find(user_id)
            now = datetime.now(timezone.utc)
            user.is_verified = True
            user.verified_at = now
            user.updated_at = now

    async def get_user_by_id(self, user_id: UUID) -> User:
        async with self._lock:
            return copy.deepcopy(self._find(user_id))

    async def get_user_by_email(self, email: str) -> User:
        async with self._lock:
            for u in self._users:
                if u.email == email:
                    return copy.deepcopy(u)
        raise UserNotFoundError(f"no user with email {email}")

    def _find(self, user_id: UUID) -> User:
        for u in self._users:
            if u.id == user_id:
                return u
        raise UserNotFoundError(f"no user with id {user_id}")
