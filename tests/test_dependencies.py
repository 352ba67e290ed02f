"""
tests/test_dependencies.py -- FastAPI integration: cookies, bearer header, 401s.

A throwaway app mounts the auth dependencies on four routes:
  POST /login   -> sign_in + set_auth_cookies
  POST /logout  -> sign_out + clear_auth_cookies (requires auth)
  GET  /me      -> get_current_user (hard 401)
  GET  /maybe   -> try_get_current_user (None when anonymous)

The user is seeded straight into MemoryUserStorage so no event loop is
needed outside the TestClient. Settings use cookie_secure=False because the
TestClient talks plain http and would otherwise drop secure cookies.

Coverage:
  - cookie and bearer authentication
  - missing, garbage, and revoked tokens -> 401 with the standard detail
  - expired access token + refresh cookie -> transparent refresh, new cookies
  - expired access token without a refresh cookie -> 401
  - "ate" is script-readable and mirrors the access token's exp claim
  - a service without storage raises instead of answering 401
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI, Response
from fastapi.testclient import TestClient
from jose import jwt

from auth.dependencies import (
    ACCESS_EXPIRES_COOKIE,
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    clear_auth_cookies,
    get_current_user,
    set_auth_cookies,
    try_get_current_user,
)
from auth.exceptions import StorageRequiredError, WrongCredentialsError
from auth.memory import MemoryTokenStorage, MemoryUserStorage
from auth.models import Token, TokenKind, User
from auth.passwords import hash_password
from auth.service import AuthService
from auth.tokens import issue_token
from conftest import TEST_EMAIL, TEST_PASSWORD

UNAUTHORIZED = {"detail": {"code": "unauthorized", "message": "Authentication required."}}


def _make_app(service: AuthService) -> FastAPI:
    app = FastAPI()
    app.state.auth_service = service

    @app.post("/login")
    async def login(email: str, password: str, response: Response) -> dict:
        result = await service.sign_in(email, password)
        set_auth_cookies(response, result, service.settings)
        return {"user_id": str(result.user_id)}

    @app.post("/logout")
    async def logout(response: Response, user: User = Depends(get_current_user)) -> dict:
        await service.sign_out(user.id)
        clear_auth_cookies(response)
        return {"ok": True}

    @app.get("/me")
    async def me(user: User = Depends(get_current_user)) -> dict:
        return {"email": user.email}

    @app.get("/maybe")
    async def maybe(user: User | None = Depends(try_get_current_user)) -> dict:
        return {"email": user.email if user else None}

    return app


@pytest.fixture
def user() -> User:
    return User(id=uuid.uuid4(), email=TEST_EMAIL, password_hash=hash_password(TEST_PASSWORD, 4), is_verified=True)


def _client(settings, user: User, tokens: list[Token] | None = None) -> TestClient:
    service = AuthService(
        settings,
        token_storage=MemoryTokenStorage(tokens),
        user_storage=MemoryUserStorage([user]),
    )
    return TestClient(_make_app(service))


@pytest.fixture
def client(settings, user) -> TestClient:
    return _client(settings, user)


def _login(client: TestClient) -> None:
    resp = client.post("/login", params={"email": TEST_EMAIL, "password": TEST_PASSWORD})
    assert resp.status_code == 200


class TestCookieAuth:
    def test_login_sets_cookies(self, client, settings) -> None:
        resp = client.post("/login", params={"email": TEST_EMAIL, "password": TEST_PASSWORD})

        assert resp.status_code == 200
        assert resp.cookies.get(ACCESS_TOKEN_COOKIE)
        assert resp.cookies.get(REFRESH_TOKEN_COOKIE)
        assert int(resp.cookies.get(ACCESS_EXPIRES_COOKIE)) > 0
        set_cookie = resp.headers.get_list("set-cookie")
        by_name = {header.split("=", 1)[0]: header for header in set_cookie}
        assert "HttpOnly" in by_name[ACCESS_TOKEN_COOKIE]
        assert "HttpOnly" in by_name[REFRESH_TOKEN_COOKIE]
        assert "HttpOnly" not in by_name[ACCESS_EXPIRES_COOKIE]
        assert all("samesite=lax" in header.lower() for header in set_cookie)
        max_age = int(settings.refresh_token_ttl.total_seconds())
        assert all(f"Max-Age={max_age}" in header for header in set_cookie)

    def test_expiry_cookie_matches_token_exp(self, client) -> None:
        resp = client.post("/login", params={"email": TEST_EMAIL, "password": TEST_PASSWORD})

        claims = jwt.get_unverified_claims(resp.cookies.get(ACCESS_TOKEN_COOKIE))
        assert int(resp.cookies.get(ACCESS_EXPIRES_COOKIE)) == claims["exp"]

    def test_cookie_authenticates(self, client) -> None:
        _login(client)
        resp = client.get("/me")
        assert resp.status_code == 200
        assert resp.json() == {"email": TEST_EMAIL}

    def test_logout_revokes_session(self, client) -> None:
        _login(client)
        stale_access = client.cookies.get(ACCESS_TOKEN_COOKIE)

        assert client.post("/logout").status_code == 200

        resp = client.get("/me", headers={"Authorization": f"Bearer {stale_access}"})
        assert resp.status_code == 401


class TestBearerAuth:
    def test_bearer_header_authenticates(self, client) -> None:
        _login(client)
        access = client.cookies.get(ACCESS_TOKEN_COOKIE)
        client.cookies.clear()

        resp = client.get("/me", headers={"Authorization": f"Bearer {access}"})

        assert resp.status_code == 200

    def test_bearer_overrides_cookie(self, client) -> None:
        _login(client)
        resp = client.get("/me", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401


class TestUnauthenticated:
    def test_no_token(self, client) -> None:
        resp = client.get("/me")
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED

    def test_garbage_cookie(self, client) -> None:
        client.cookies.set(ACCESS_TOKEN_COOKIE, "not-a-jwt")
        assert client.get("/me").status_code == 401

    def test_soft_dependency_returns_none(self, client) -> None:
        resp = client.get("/maybe")
        assert resp.status_code == 200
        assert resp.json() == {"email": None}

    def test_login_wrong_password_raises(self, client) -> None:
        """No exception handler is mounted, so the domain error surfaces."""
        with pytest.raises(WrongCredentialsError):
            client.post("/login", params={"email": TEST_EMAIL, "password": "wrong-password"})

    def test_missing_storage_is_not_a_401(self, settings) -> None:
        """A service wired without storage fails loudly instead of treating everyone as anonymous."""
        client = TestClient(_make_app(AuthService(settings)))
        with pytest.raises(StorageRequiredError):
            client.get("/me", headers={"Authorization": "Bearer some-token"})
        with pytest.raises(StorageRequiredError):
            client.get("/maybe", headers={"Authorization": "Bearer some-token"})


class TestTransparentRefresh:
    @pytest.fixture
    def session(self, settings, user) -> tuple[Token, Token]:
        expired = issue_token(TokenKind.ACCESS, user.id, settings.access_token_secret, timedelta(seconds=-10))
        refresh = issue_token(TokenKind.REFRESH, user.id, settings.refresh_token_secret, timedelta(days=7))
        return expired, refresh

    def test_expired_access_is_refreshed(self, settings, user, session) -> None:
        expired, refresh = session
        client = _client(settings, user, [expired, refresh])
        client.cookies.set(ACCESS_TOKEN_COOKIE, expired.value)
        client.cookies.set(REFRESH_TOKEN_COOKIE, refresh.value)

        resp = client.get("/me")

        assert resp.status_code == 200
        assert resp.json() == {"email": TEST_EMAIL}
        new_access = resp.cookies.get(ACCESS_TOKEN_COOKIE)
        assert new_access and new_access != expired.value
        assert resp.cookies.get(REFRESH_TOKEN_COOKIE) == refresh.value
        claims = jwt.get_unverified_claims(new_access)
        assert int(resp.cookies.get(ACCESS_EXPIRES_COOKIE)) == claims["exp"]

    def test_refreshed_cookie_works_next_time(self, settings, user, session) -> None:
        expired, refresh = session
        client = _client(settings, user, [expired, refresh])
        client.cookies.set(ACCESS_TOKEN_COOKIE, expired.value)
        client.cookies.set(REFRESH_TOKEN_COOKIE, refresh.value)
        new_access = client.get("/me").cookies.get(ACCESS_TOKEN_COOKIE)

        client.cookies.clear()
        resp = client.get("/me", headers={"Authorization": f"Bearer {new_access}"})

        assert resp.status_code == 200

    def test_expired_access_without_refresh(self, settings, user, session) -> None:
        expired, refresh = session
        client = _client(settings, user, [expired, refresh])
        client.cookies.set(ACCESS_TOKEN_COOKIE, expired.value)

        assert client.get("/me").status_code == 401

    def test_revoked_refresh_token(self, settings, user, session) -> None:
        expired, refresh = session
        client = _client(settings, user, [expired])
        client.cookies.set(ACCESS_TOKEN_COOKIE, expired.value)
        client.cookies.set(REFRESH_TOKEN_COOKIE, refresh.value)

        assert client.get("/me").status_code == 401
