"""
core/config.py -- Engine configuration via pydantic-settings.

All environment variable reads for passgate happen here. The engine never
calls os.getenv() itself -- a host builds an AuthSettings (directly, or via
get_settings()) and hands it to AuthService.

Design patterns used:
  BaseSettings (pydantic-settings): Reads values from PASSGATE_* environment
      variables and an optional .env file. Field names map to env var names
      (e.g. access_token_secret -> PASSGATE_ACCESS_TOKEN_SECRET). Durations
      accept seconds or ISO 8601 strings ("PT15M").

  Frozen model: an AuthSettings instance is immutable once constructed. The
      engine owns its settings for its whole lifetime; there is no builder and
      no module-level mutable default.

  Singleton via lru_cache: get_settings() is a convenience for hosts that want
      one process-wide instance. The engine itself never calls it.

Security notes:
  Each token kind has its own signing secret so that a leaked verify-email
  secret cannot mint access tokens. The four secrets must be distinct and at
  least 32 characters long. Outside debug mode a missing secret is a hard
  startup failure.

Layer rule: core/ is the kernel. This module may not import from auth/ or
notify/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("passgate.config")

MIN_SECRET_LENGTH = 32

# Field names of the per-kind signing secrets, in TokenKind order.
SECRET_FIELDS = (
    "access_token_secret",
    "refresh_token_secret",
    "verify_token_secret",
    "reset_password_token_secret",
)

_TRUTHY = {"1", "true", "yes", "on"}


class AuthSettings(BaseSettings):
    """Engine settings loaded from environment variables and .env file.

    Every field has a default except the secrets, which are either supplied,
    generated (debug mode only), or rejected by the validators below.
    """

    model_config = SettingsConfigDict(
        env_prefix="PASSGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False

    # ------------------------------------------------------------------
    # Signing secrets (one per token kind)
    # ------------------------------------------------------------------

    access_token_secret: str = ""
    refresh_token_secret: str = ""
    verify_token_secret: str = ""
    reset_password_token_secret: str = ""

    # ------------------------------------------------------------------
    # Token lifetimes
    # ------------------------------------------------------------------

    access_token_ttl: timedelta = timedelta(days=1)
    refresh_token_ttl: timedelta = timedelta(days=7)
    verify_token_ttl: timedelta = timedelta(days=1)
    reset_password_token_ttl: timedelta = timedelta(days=1)

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    # Skip email verification on signup. Meant for local development and
    # test environments only.
    auto_verify_user: bool = False
    # Prefix for links embedded in notifications (verify / reset pages).
    base_url: str = "http://localhost"

    # bcrypt cost factor. 12 is the production default; tests drop to 4.
    password_hash_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # HTTP integration
    # ------------------------------------------------------------------

    cookie_secure: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def generate_debug_secrets(cls, data: Any) -> Any:
        """Fill in missing secrets with random values when DEBUG is on.

        Runs before field validation because the model is frozen. Tokens
        signed with generated secrets do not survive a restart -- acceptable
        for local development only.
        """
        if not isinstance(data, dict):
            return data
        if str(data.get("debug", "")).strip().lower() not in _TRUTHY:
            return data
        data = dict(data)
        for name in SECRET_FIELDS:
            if not data.get(name):
                data[name] = secrets.token_hex(32)
                logger.warning("Using auto-generated %s. Issued tokens will not survive a restart.", name)
        return data

    @model_validator(mode="after")
    def validate_secrets(self) -> "AuthSettings":
        """Enforce the signing-secret policy.

        Production mode: every secret must be set.
        Both modes: secrets shorter than 32 characters are rejected, and no
            two token kinds may share a secret.
        """
        values = [getattr(self, name) for name in SECRET_FIELDS]
        for name, value in zip(SECRET_FIELDS, values):
            if not value:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    f"Set PASSGATE_{name.upper()} in your environment or .env file. "
                    "To run in development mode, set PASSGATE_DEBUG=true."
                )
            if len(value) < MIN_SECRET_LENGTH:
                raise ValueError(f"{name} must be at least {MIN_SECRET_LENGTH} characters.")
        if len(set(values)) != len(values):
            raise ValueError("Token secrets must be distinct for every token kind.")
        return self

    # ------------------------------------------------------------------
    # Per-kind lookup
    # ------------------------------------------------------------------

    def secret_for(self, kind: Enum) -> str:
        """Return the signing secret for a token kind (auth.models.TokenKind)."""
        return getattr(self, f"{kind.value}_token_secret")

    def ttl_for(self, kind: Enum) -> timedelta:
        """Return the lifetime for a token kind (auth.models.TokenKind)."""
        return getattr(self, f"{kind.value}_token_ttl")


@lru_cache
def get_settings() -> AuthSettings:
    """Return a process-wide AuthSettings built from the environment.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return AuthSettings()
