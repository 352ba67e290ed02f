"""
auth/tokens.py -- Bearer token issue, verification, and rotation.

Security design decisions:
  JWT: python-jose with HS256. Every token carries sub (user id), exp, iat
       and a random jti, so two tokens for the same user issued within the
       same second still have different values. Only HS256 is accepted on
       decode, which rules out alg=none and algorithm-confusion tricks.

  Secrets: each token kind is signed with its own secret (see
       core.config.AuthSettings). This module is stateless -- the caller
       passes the secret and lifetime for every call.

  Errors: verification distinguishes an expired-but-authentic token
       (TokenExpiredError) from everything else (InvalidTokenError). The
       refresh flow depends on that split: an access token is expected to be
       expired by the time the client refreshes it.

  Rotation never touches storage. AuthService persists the new access token
  and deletes the superseded one.

Layer rule: no imports from notify/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from uuid import UUID

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JOSEError

from auth.exceptions import (
    EmptyTokenError,
    InvalidTokenError,
    TokenExpiredError,
    TokenSigningError,
    WrongUserError,
)
from auth.models import Token, TokenKind

logger = logging.getLogger("passgate.auth")

_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------


def issue_token(kind: TokenKind, user_id: UUID, secret: str, ttl: timedelta) -> Token:
    """Sign a new token for user_id that expires ttl from now.

    A negative ttl yields a token that is already expired; useful in tests,
    harmless otherwise.

    Raises:
        TokenSigningError: if the secret cannot be used as an HMAC key.
    """
    now = datetime.now(timezone.utc)
    # exp is whole seconds, so the stored expiry is truncated to match it.
    expires_at = (now + ttl).replace(microsecond=0)
    payload = {
        "sub": str(user_id),
        "exp": int(expires_at.timestamp()),
        "iat": int(now.timestamp()),
        "jti": uuid.uuid4().hex,
    }
    try:
        value = jwt.encode(payload, secret, algorithm=_ALGORITHM)
    except JOSEError as exc:
        raise TokenSigningError(f"could not sign {kind.value} token: {exc}") from exc
    return Token(kind=kind, value=value, user_id=user_id, expires_at=expires_at)


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


def _decode(raw_token: str, secret: str, verify_exp: bool) -> dict:
    """Verify signature (and optionally expiry) and return the claims.

    ExpiredSignatureError is let through untouched; jose only raises it after
    the signature has checked out.
    """
    # jose turns verify_exp back on whenever require_exp is set, so the two
    # flags have to move together.
    options = {"require_sub": True, "require_exp": verify_exp, "verify_exp": verify_exp}
    try:
        return jwt.decode(raw_token, secret, algorithms=[_ALGORITHM], options=options)
    except ExpiredSignatureError:
        raise
    except JWTError as exc:
        raise InvalidTokenError("token is invalid") from exc


def validate_subject(raw_token: str, secret: str, *, allow_expired: bool = False) -> UUID:
    """Return the user id a token was issued for.

    With allow_expired=True an authentic token whose expiry has passed still
    yields its subject instead of raising TokenExpiredError.

    Raises:
        EmptyTokenError:   raw_token is empty.
        TokenExpiredError: signature valid, expiry passed.
        InvalidTokenError: anything else -- bad signature, wrong secret,
                           malformed token, missing or non-UUID subject.
    """
    if not raw_token:
        raise EmptyTokenError("token is empty")

    try:
        claims = _decode(raw_token, secret, verify_exp=True)
    except ExpiredSignatureError:
        if not allow_expired:
            raise TokenExpiredError("token has expired") from None
        claims = _decode(raw_token, secret, verify_exp=False)

    try:
        return UUID(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError("token subject is invalid") from exc


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------


def rotate_access_token(
    access_token: str,
    refresh_token: str,
    access_secret: str,
    refresh_secret: str,
    ttl: timedelta,
) -> Token:
    """Mint a new access token from an (possibly expired) access/refresh pair.

    1. The access token must be authentic; expiry is tolerated.
    2. The refresh token must be authentic and still live.
    3. Both must name the same user. This stops an attacker from pairing their
       own refresh token with someone else's stale access token.
    4. A new ACCESS token is issued for that user with the given ttl.

    Raises:
        WrongUserError: subjects differ.
        TokenError subclasses from validate_subject() for either token.
    """
    access_user_id = validate_subject(access_token, access_secret, allow_expired=True)
    refresh_user_id = validate_subject(refresh_token, refresh_secret)

    if access_user_id != refresh_user_id:
        logger.warning("Token rotation rejected: access and refresh tokens belong to different users")
        raise WrongUserError("access and refresh tokens belong to different users")

    return issue_token(TokenKind.ACCESS, refresh_user_id, access_secret, ttl)
