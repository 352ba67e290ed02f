"""Typed exceptions for authentication failures.

Every flow in auth.service either returns a typed result or raises one of
these. None of them is recovered internally.
"""

from __future__ import annotations

from uuid import UUID


class AuthError(Exception):
    """Base class for authentication errors."""


class StorageRequiredError(AuthError):
    """A storage collaborator needed by the operation was never configured."""


class WrongCredentialsError(AuthError):
    """
    Email/password pair rejected.

    Raised for both unknown email and wrong password so callers cannot
    enumerate accounts.
    """


class UserConflictError(AuthError):
    """Email is already registered."""


class UserNotFoundError(AuthError):
    """
    No user matches the lookup.

    Storage adapters must raise this (and only this) for a missing user.
    Signup relies on it to decide that an email is free.
    """


class CredentialPolicyError(AuthError):
    """Input rejected by the validation policy. The message names the rule."""


class InvalidEmailError(CredentialPolicyError):
    """Email is not structurally valid."""


class WeakPasswordError(CredentialPolicyError):
    """Password does not meet the length policy."""


class TokenError(AuthError):
    """Base class for token failures."""


class EmptyTokenError(TokenError):
    """Token string has zero length."""


class TokenExpiredError(TokenError):
    """Signature is valid but the token's expiry has passed."""


class InvalidTokenError(TokenError):
    """Bad signature, wrong secret, malformed structure or subject."""


class WrongUserError(TokenError):
    """Access and refresh tokens belong to different users."""


class TokenNotRegisteredError(TokenError):
    """
    Token is validly signed but not present in storage.

    Covers consumed, revoked, and forged-after-secret-rotation tokens.
    """


class TokenSigningError(TokenError):
    """Token could not be signed (unusable secret)."""


class NotificationError(AuthError):
    """
    One or more notifications could not be delivered.

    Raised after all credential state has been persisted, so the operation
    itself succeeded. errors holds every underlying failure; user_id is set
    when the flow created or targeted a user.
    """

    def __init__(self, errors: list[Exception], user_id: UUID | None = None):
        self.errors = list(errors)
        self.user_id = user_id
        detail = "; ".join(str(e) for e in self.errors) or "unknown error"
        super().__init__(f"Notification delivery failed: {detail}")
