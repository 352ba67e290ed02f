"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Token sources, checked in order:
  1. Cookies "at" (access) and "rt" (refresh) -- written by set_auth_cookies()
     after sign-in or refresh.
  2. Authorization: Bearer <token> header -- overrides the access cookie for
     API clients. The refresh token still comes from the cookie.

When the access token has expired and a refresh token is present, the
request is refreshed in place: AuthService.refresh_token() mints a new access
token, the new cookies are written onto the response, and the request
proceeds authenticated.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

The AuthService instance is read from request.app.state.auth_service; the
host wires it up in its lifespan.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, Request, Response

from auth.exceptions import AuthError, StorageRequiredError, TokenExpiredError
from auth.models import SignInResult, User
from auth.service import AuthService
from core.config import AuthSettings

logger = logging.getLogger("passgate.auth.http")

ACCESS_TOKEN_COOKIE = "at"
REFRESH_TOKEN_COOKIE = "rt"
# Epoch seconds of the access token's exp claim. Not httpOnly so client
# script can refresh ahead of expiry; carries no secret.
ACCESS_EXPIRES_COOKIE = "ate"

_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, ACCESS_EXPIRES_COOKIE)
_HTTPONLY_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE)


def get_request_tokens(request: Request) -> tuple[str, str]:
    """Return (access_token, refresh_token) from cookies and headers. Missing -> ""."""
    access = request.cookies.get(ACCESS_TOKEN_COOKIE, "")
    refresh = request.cookies.get(REFRESH_TOKEN_COOKIE, "")

    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer " and auth_header[7:].strip():
        access = auth_header[7:].strip()

    return access, refresh


def set_auth_cookies(response: Response, result: SignInResult, settings: AuthSettings) -> None:
    """Write the token pair and the access expiry as cookies on the response.

    httponly: set on "at" and "rt" so JS cannot read the tokens (XSS
        mitigation). "ate" stays readable.
    "ate": the access token's own exp claim, not a fresh now + ttl.
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: HTTPS only unless AuthSettings.cookie_secure is off (local dev).
    max_age: the refresh token lifetime, so the browser keeps the pair for as
        long as it can still be refreshed.
    """
    max_age = int(settings.refresh_token_ttl.total_seconds())
    access_expires = result.access_expires_at
    if access_expires is None:
        access_expires = datetime.now(timezone.utc) + settings.access_token_ttl
    values = {
        ACCESS_TOKEN_COOKIE: result.access_token,
        REFRESH_TOKEN_COOKIE: result.refresh_token,
        ACCESS_EXPIRES_COOKIE: str(int(access_expires.timestamp())),
    }
    for name, value in values.items():
        response.set_cookie(
            name,
            value=value,
            httponly=name in _HTTPONLY_COOKIES,
            samesite="lax",
            secure=settings.cookie_secure,
            max_age=max_age,
        )


def clear_auth_cookies(response: Response) -> None:
    """Remove every auth cookie (sign-out)."""
    for name in _COOKIES:
        response.delete_cookie(name)


async def try_get_current_user(request: Request, response: Response) -> User | None:
    """Authenticate the request, refreshing an expired access token if possible.

    Returns the authenticated User on success, None on any auth failure.
    Never raises for auth failures -- callers that need a hard 401 should use
    get_current_user(). StorageRequiredError is a wiring fault, not an auth
    failure, and propagates.
    """
    service: AuthService = request.app.state.auth_service
    access, refresh = get_request_tokens(request)
    if not access:
        return None

    try:
        return await service.authenticate(access)
    except TokenExpiredError:
        if not refresh:
            return None
    except StorageRequiredError:
        raise
    except AuthError as exc:
        logger.debug("Request authentication failed: %s", exc)
        return None

    # Access token expired but a refresh token is available.
    try:
        result = await service.refresh_token(access, refresh)
        user = await service.authenticate(result.access_token)
    except StorageRequiredError:
        raise
    except AuthError as exc:
        logger.debug("Transparent token refresh failed: %s", exc)
        return None

    set_auth_cookies(response, result, service.settings)
    return user


async def get_current_user(request: Request, response: Response) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = await try_get_current_user(request, response)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
