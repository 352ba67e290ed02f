"""
auth/service.py -- Credential lifecycle orchestration.

AuthService composes the password policy, the token engine, the two storage
collaborators, and the notification senders into the user-facing flows:

  sign_up -> sign_up_verify -> sign_in -> refresh_token -> sign_out
  request_reset_password -> reset_password
  authenticate (per request)

The service keeps no mutable state of its own; every piece of state lives in
the injected storages, so one instance can serve any number of concurrent
tasks.

Ordering rule: a flow that both mutates state and notifies someone always
persists first. Notification failures are raised as NotificationError only
after the state change is complete -- credentials must never depend on an
unreliable channel like email, but the caller still learns that delivery
failed.

The engine does not wrap multi-step storage sequences in transactions. Two
concurrent refresh_token() calls for the same access token can both succeed;
an adapter that needs strict single-use semantics must guard it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from uuid import UUID

from auth.exceptions import (
    NotificationError,
    StorageRequiredError,
    TokenNotRegisteredError,
    UserConflictError,
    UserNotFoundError,
    WrongCredentialsError,
)
from auth.models import SignInResult, Token, TokenKind, User
from auth.passwords import dummy_hash, hash_password, verify_password
from auth.storage import TokenStorage, UserStorage
from auth.tokens import issue_token, rotate_access_token, validate_subject
from auth.validation import validate_email, validate_password
from core.config import AuthSettings
from notify.sender import Sender, Template, build_notification_data, send_bulk

logger = logging.getLogger("passgate.auth")


class AuthService:
    """Orchestrates signup, verification, login, logout, reset and refresh.

    Storages are optional at construction so a host can wire only what it
    needs (e.g. a token-only verifier). Each operation checks for the
    collaborators it uses and raises StorageRequiredError if one is missing.
    """

    def __init__(
        self,
        settings: AuthSettings,
        token_storage: TokenStorage | None = None,
        user_storage: UserStorage | None = None,
        senders: Sequence[Sender] = (),
    ):
        self._settings = settings
        self._token_storage = token_storage
        self._user_storage = user_storage
        self._senders = tuple(senders)

    @property
    def settings(self) -> AuthSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _tokens(self) -> TokenStorage:
        if self._token_storage is None:
            raise StorageRequiredError("token storage is required")
        return self._token_storage

    def _users(self) -> UserStorage:
        if self._user_storage is None:
            raise StorageRequiredError("user storage is required")
        return self._user_storage

    def _issue(self, kind: TokenKind, user_id: UUID) -> Token:
        return issue_token(kind, user_id, self._settings.secret_for(kind), self._settings.ttl_for(kind))

    async def _require_registered(self, token: str) -> None:
        if not await self._tokens().are_tokens_registered([token]):
            raise TokenNotRegisteredError("token not registered")

    async def _notify(self, template: Template, user: User, code: str) -> None:
        """Dispatch a notification; raise NotificationError if any sender failed."""
        data = build_notification_data(self._settings.base_url, [user], {"code": code})
        errors = await send_bulk(self._senders, template, data)
        if errors:
            raise NotificationError(errors, user_id=user.id)

    # ------------------------------------------------------------------
    # Sign in / sign out
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> SignInResult:
        """Check credentials and issue a persisted access/refresh token pair.

        Always runs bcrypt whether or not the email exists, so response time
        does not reveal which accounts are registered. Unknown email and
        wrong password both raise WrongCredentialsError.

        Raises:
            StorageRequiredError: user or token storage missing.
            WrongCredentialsError: unknown email or wrong password.
        """
        users = self._users()
        tokens = self._tokens()

        try:
            user = await users.get_user_by_email(email)
        except UserNotFoundError:
            # Equalize timing -- do NOT return before running bcrypt
            verify_password(dummy_hash(self._settings.password_hash_rounds), password)
            logger.warning("Sign-in rejected: unknown email")
            raise WrongCredentialsError("wrong credentials") from None

        if not verify_password(user.password_hash, password):
            logger.warning("Sign-in rejected for user %s: wrong password", user.id)
            raise WrongCredentialsError("wrong credentials")

        access = self._issue(TokenKind.ACCESS, user.id)
        refresh = self._issue(TokenKind.REFRESH, user.id)
        await tokens.create_tokens([access, refresh])

        logger.info("User %s signed in", user.id)
        return SignInResult(
            user_id=user.id,
            access_token=access.value,
            refresh_token=refresh.value,
            access_expires_at=access.expires_at,
        )

    async def sign_out(self, user_id: UUID) -> None:
        """Revoke every token the user holds (all sessions, pending links)."""
        await self._tokens().remove_user_tokens(user_id)
        logger.info("User %s signed out", user_id)

    # ------------------------------------------------------------------
    # Sign up
    # ------------------------------------------------------------------

    async def sign_up(
        self,
        email: str,
        password: str,
        phone_number: str = "",
        meta: dict[str, str] | None = None,
    ) -> UUID:
        """Register a new user and start email verification.

        Flow:
        1. Validate email format and password strength
        2. Reject an already-registered email
        3. Create the user with a fresh id and a hashed password
        4. Auto-verify mode: mark verified and stop here
        5. Issue and persist a verify token
        6. Send the signup notification carrying the token

        Returns:
            The new user's id.

        Raises:
            StorageRequiredError: user or token storage missing.
            InvalidEmailError / WeakPasswordError: input rejected. Nothing is written.
            UserConflictError: email already registered. Nothing is written.
            NotificationError: the user and token exist, but delivery failed.
                The error carries user_id.
        """
        users = self._users()
        tokens = self._tokens()

        validate_email(email)
        validate_password(password)

        try:
            await users.get_user_by_email(email)
        except UserNotFoundError:
            pass
        else:
            raise UserConflictError("user conflict")

        user = User(
            id=uuid.uuid4(),
            email=email,
            password_hash=hash_password(password, self._settings.password_hash_rounds),
            phone_number=phone_number,
            meta=dict(meta or {}),
        )
        await users.create_user(user)
        logger.info("User %s signed up", user.id)

        # Development shortcut: skip the email round-trip entirely.
        if self._settings.auto_verify_user:
            await users.verify_user(user.id)
            logger.info("User %s auto-verified", user.id)
            return user.id

        token = self._issue(TokenKind.VERIFY, user.id)
        await tokens.create_tokens([token])

        await self._notify(Template.SIGN_UP, user, token.value)
        return user.id

    async def sign_up_verify(self, token: str) -> None:
        """Consume a verify token and mark its user verified.

        The storage lookup comes first: a token that is correctly signed but
        no longer stored (already used, revoked, or minted with an old secret)
        is rejected before it is even parsed.

        Raises:
            StorageRequiredError: user or token storage missing.
            TokenNotRegisteredError: token not in storage.
            TokenError subclasses: token fails verification.
        """
        users = self._users()
        tokens = self._tokens()

        await self._require_registered(token)
        user_id = validate_subject(token, self._settings.secret_for(TokenKind.VERIFY))

        await tokens.remove_user_tokens(user_id)
        await users.verify_user(user_id)
        logger.info("User %s verified", user_id)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def request_reset_password(self, email: str) -> None:
        """Issue a reset token for email and send it out.

        Any earlier unconsumed reset token of the user is removed first, so
        only the most recent reset link works.

        Raises:
            StorageRequiredError: user or token storage missing.
            UserNotFoundError: no user with that email. Hosts that must not
                reveal registered emails should swallow it.
            NotificationError: the token exists, but delivery failed.
        """
        users = self._users()
        tokens = self._tokens()

        user = await users.get_user_by_email(email)

        token = self._issue(TokenKind.RESET_PASSWORD, user.id)
        await tokens.remove_user_tokens_by_kind(user.id, TokenKind.RESET_PASSWORD)
        await tokens.create_tokens([token])
        logger.info("Password reset requested for user %s", user.id)

        await self._notify(Template.RESET_PASSWORD, user, token.value)

    async def reset_password(self, token: str, password: str) -> None:
        """Consume a reset token and store the new password.

        All of the user's tokens are revoked, which also ends every session.

        Raises:
            StorageRequiredError: user or token storage missing.
            WeakPasswordError: new password rejected. The token stays valid.
            TokenNotRegisteredError: token not in storage.
            TokenError subclasses: token fails verification.
        """
        users = self._users()
        tokens = self._tokens()

        validate_password(password)
        await self._require_registered(token)
        user_id = validate_subject(token, self._settings.secret_for(TokenKind.RESET_PASSWORD))

        await tokens.remove_user_tokens(user_id)
        await users.update_user_password(user_id, hash_password(password, self._settings.password_hash_rounds))
        logger.info("Password reset for user %s", user_id)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh_token(self, access_token: str, refresh_token: str) -> SignInResult:
        """Swap an (expired) access token for a new one, keeping the refresh token.

        Flow:
        1. Refresh token must be in storage
        2. Rotate: both tokens authentic, same user, refresh still live
        3. Delete the superseded access token, persist the new one

        Raises:
            StorageRequiredError: token storage missing.
            TokenNotRegisteredError: refresh token not in storage.
            WrongUserError: tokens belong to different users.
            TokenError subclasses: either token fails verification.
        """
        tokens = self._tokens()
        access_secret = self._settings.secret_for(TokenKind.ACCESS)

        await self._require_registered(refresh_token)
        new_token = rotate_access_token(
            access_token,
            refresh_token,
            access_secret,
            self._settings.secret_for(TokenKind.REFRESH),
            self._settings.ttl_for(TokenKind.ACCESS),
        )
        # Same subject rotate_access_token() already checked; needed to address the row.
        user_id = validate_subject(access_token, access_secret, allow_expired=True)

        await tokens.remove_user_token(user_id, access_token)
        await tokens.create_tokens([new_token])

        logger.info("Access token refreshed for user %s", user_id)
        return SignInResult(
            user_id=user_id,
            access_token=new_token.value,
            refresh_token=refresh_token,
            access_expires_at=new_token.expires_at,
        )

    # ------------------------------------------------------------------
    # Per-request authentication
    # ------------------------------------------------------------------

    async def authenticate(self, access_token: str) -> User:
        """Resolve a live access token to its user.

        Besides the signature and expiry checks, the token must still be in
        storage: tokens revoked by sign_out(), reset_password() or a refresh
        are rejected even though they are still validly signed.

        Raises:
            StorageRequiredError: user or token storage missing.
            TokenExpiredError: access token expired -- the client should refresh.
            TokenNotRegisteredError: token revoked or superseded.
            TokenError subclasses: token fails verification.
            UserNotFoundError: the user no longer exists.
        """
        users = self._users()

        user_id = validate_subject(access_token, self._settings.secret_for(TokenKind.ACCESS))
        await self._require_registered(access_token)
        return await users.get_user_by_id(user_id)
