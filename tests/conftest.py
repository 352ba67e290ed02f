"""
tests/conftest.py -- Shared test fixtures for the passgate test suite.

This module provides:
  - make_settings(): AuthSettings with fixed, distinct secrets and a bcrypt
    cost of 4 so hashing does not dominate test time
  - storages: (token_storage, user_storage) pair, parametrized over the
    in-memory adapter and the SQLAlchemy adapter on a temporary SQLite file
  - sender: AsyncMock standing in for a notification Sender
  - service: AuthService wired to the above

Design: the SQL adapter runs queries in worker threads (asyncio.to_thread),
so tests use a real SQLite file under tmp_path rather than ':memory:' --
plain in-memory databases are per-connection and each worker thread would
see a blank schema.

Settings are built with _env_file=None so a developer's local .env can
never leak into the test run.
"""

from __future__ import annotations

from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest

from auth.memory import MemoryTokenStorage, MemoryUserStorage
from auth.service import AuthService
from auth.store import SQLDatabase, SQLTokenStorage, SQLUserStorage
from core.config import AuthSettings

TEST_SECRETS = {
    "access_token_secret": "test-access-secret-0123456789abcdef",
    "refresh_token_secret": "test-refresh-secret-0123456789abcdef",
    "verify_token_secret": "test-verify-secret-0123456789abcdef",
    "reset_password_token_secret": "test-reset-secret-0123456789abcdef",
}

TEST_BASE_URL = "https://auth.test"
TEST_EMAIL = "a@b.com"
TEST_PASSWORD = "12345678"


def make_settings(**overrides) -> AuthSettings:
    """Build test settings; keyword arguments override any field."""
    values = {
        **TEST_SECRETS,
        "password_hash_rounds": 4,
        "base_url": TEST_BASE_URL,
        "cookie_secure": False,
        **overrides,
    }
    return AuthSettings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> AuthSettings:
    return make_settings()


@pytest.fixture(params=["memory", "sql"])
def storages(request, tmp_path) -> Generator[tuple, None, None]:
    """Yield (token_storage, user_storage) for each shipped adapter."""
    if request.param == "memory":
        yield MemoryTokenStorage(), MemoryUserStorage()
        return

    db = SQLDatabase(f"sqlite:///{tmp_path / 'auth.db'}")
    yield SQLTokenStorage(db), SQLUserStorage(db)
    db.close()


@pytest.fixture
def token_storage(storages):
    return storages[0]


@pytest.fixture
def user_storage(storages):
    return storages[1]


@pytest.fixture
def sender() -> AsyncMock:
    """Notification sender that records calls and always succeeds."""
    return AsyncMock()


@pytest.fixture
def service(settings, token_storage, user_storage, sender) -> AuthService:
    return AuthService(settings, token_storage=token_storage, user_storage=user_storage, senders=[sender])


def sent_code(sender: AsyncMock, call: int = -1) -> str:
    """Return the one-time code carried by a recorded send_bulk call."""
    template, batch = sender.send_bulk.await_args_list[call].args
    return batch[0]["code"]
