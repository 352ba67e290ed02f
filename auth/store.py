"""
auth/store.py -- SQLAlchemy Core persistence layer for users and tokens.

Pattern: Repository + Data Mapper.
SQLUserStorage and SQLTokenStorage are the repositories; _row_to_user /
_row_to_token are the mappers. The service never touches SQL directly.

Both repositories share one engine (SQLDatabase) so a host can point them at
the same database file. Blocking database work runs in a worker thread via
asyncio.to_thread, which keeps the event loop free and lets task
cancellation reach the awaiting caller.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Only password hashes are stored; token values are stored as issued
  because are_tokens_registered() must match them exactly.

Integrity:
  auth_users.email is UNIQUE. A concurrent signup that slips past the
  service's pre-check hits IntegrityError, which is surfaced as
  UserConflictError.
  create_tokens() inserts the whole batch inside one transaction.

DB path default: auth/passgate_auth.db.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.exceptions import UserConflictError, UserNotFoundError
from auth.models import Token, TokenKind, User

logger = logging.getLogger("passgate.auth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'passgate_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "auth_users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False, server_default=""),
    Column("phone_number", String(32), nullable=False, server_default=""),
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    Column("verified_at", String(32)),
    Column("meta", Text),  # JSON object of str -> str
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_tokens = Table(
    "auth_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(20), nullable=False),
    Column("value", Text, nullable=False, unique=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    # Whole seconds, matching Token.expires_at, so ISO strings compare in order.
    return datetime.now(timezone.utc).replace(microsecond=0)


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SQLDatabase:
    """Owns the SQLAlchemy engine and creates the auth tables on startup.

    Usage:
        db = SQLDatabase("sqlite:///auth.db")
        users, tokens = SQLUserStorage(db), SQLTokenStorage(db)
        ...
        db.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Calls arrive from asyncio.to_thread workers.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SQLUserStorage:
    """UserStorage on the auth_users table."""

    def __init__(self, db: SQLDatabase) -> None:
        self.engine = db.engine

    async def create_user(self, user: User) -> None:
        await asyncio.to_thread(self._create_user, user)

    async def update_user_password(self, user_id: UUID, password_hash: str) -> None:
        await asyncio.to_thread(self._update, user_id, password_hash=password_hash)

    async def verify_user(self, user_id: UUID) -> None:
        await asyncio.to_thread(self._update, user_id, is_verified=True, verified_at=_iso(_now()))

    async def get_user_by_id(self, user_id: UUID) -> User:
        user = await asyncio.to_thread(self._select_one, _users.c.id == str(user_id))
        if user is None:
            raise UserNotFoundError(f"no user with id {user_id}")
        return user

    async def get_user_by_email(self, email: str) -> User:
        """Exact, case-sensitive match on the stored email."""
        user = await asyncio.to_thread(self._select_one, _users.c.email == email)
        if user is None:
            raise UserNotFoundError(f"no user with email {email}")
        return user

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _create_user(self, user: User) -> None:
        now = _iso(_now())
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=str(user.id),
                        email=user.email,
                        password_hash=user.password_hash,
                        phone_number=user.phone_number,
                        is_verified=user.is_verified,
                        verified_at=_iso(user.verified_at),
                        meta=json.dumps(user.meta or {}),
                        created_at=_iso(user.created_at) or now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise UserConflictError(f"email already registered: {user.email}") from exc

    def _update(self, user_id: UUID, **fields) -> None:
        fields["updated_at"] = _iso(_now())
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == str(user_id)).values(**fields))
        if result.rowcount == 0:
            raise UserNotFoundError(f"no user with id {user_id}")

    def _select_one(self, condition) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None


class SQLTokenStorage:
    """TokenStorage on the auth_tokens table."""

    def __init__(self, db: SQLDatabase) -> None:
        self.engine = db.engine

    async def create_tokens(self, tokens: list[Token]) -> None:
        if tokens:
            await asyncio.to_thread(self._insert, tokens)

    async def remove_user_tokens(self, user_id: UUID) -> None:
        await asyncio.to_thread(self._delete, _tokens.c.user_id == str(user_id))

    async def remove_user_tokens_by_kind(self, user_id: UUID, kind: TokenKind) -> None:
        await asyncio.to_thread(
            self._delete,
            (_tokens.c.user_id == str(user_id)) & (_tokens.c.kind == kind.value),
        )

    async def remove_user_token(self, user_id: UUID, token: str) -> None:
        await asyncio.to_thread(
            self._delete,
            (_tokens.c.user_id == str(user_id)) & (_tokens.c.value == token),
        )

    async def are_tokens_registered(self, tokens: list[str]) -> bool:
        wanted = set(tokens)
        if not wanted:
            return True
        found = await asyncio.to_thread(self._count_values, wanted)
        return found == len(wanted)

    async def list_user_tokens(self, user_id: UUID) -> list[Token]:
        """Return every stored token of a user, oldest first."""
        return await asyncio.to_thread(self._select_user, user_id)

    def purge_expired(self) -> int:
        """Delete tokens whose expiry has passed. Returns the number removed.

        Synchronous; hosts call it from a periodic job, not from a request
        path.
        """
        removed = self._delete(_tokens.c.expires_at < _iso(_now()))
        if removed:
            logger.info("Purged %d expired tokens", removed)
        return removed

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _insert(self, tokens: list[Token]) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _tokens.insert(),
                [
                    {
                        "kind": t.kind.value,
                        "value": t.value,
                        "user_id": str(t.user_id),
                        "expires_at": _iso(t.expires_at),
                    }
                    for t in tokens
                ],
            )

    def _delete(self, condition) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(_tokens.delete().where(condition))
        return result.rowcount

    def _count_values(self, values: set[str]) -> int:
        with self.engine.connect() as conn:
            rows = conn.execute(select(_tokens.c.value).where(_tokens.c.value.in_(values)))
            return len({row.value for row in rows})

    def _select_user(self, user_id: UUID) -> list[Token]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tokens.select().where(_tokens.c.user_id == str(user_id)).order_by(_tokens.c.id)
            ).fetchall()
        return [_row_to_token(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=UUID(row.id),
        email=row.email,
        password_hash=row.password_hash,
        phone_number=row.phone_number,
        is_verified=bool(row.is_verified),
        verified_at=_parse(row.verified_at),
        meta=json.loads(row.meta) if row.meta else {},
        created_at=_parse(row.created_at),
        updated_at=_parse(row.updated_at),
    )


def _row_to_token(row) -> Token:
    return Token(
        kind=TokenKind(row.kind),
        value=row.value,
        user_id=UUID(row.user_id),
        expires_at=_parse(row.expires_at),
    )
