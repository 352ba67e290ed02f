"""Input validation policy for signup and password changes."""

from __future__ import annotations

import re

from auth.exceptions import InvalidEmailError, WeakPasswordError

PASSWORD_MIN_LENGTH = 8
# bcrypt's native input limit; passwords within it are hashed without the
# SHA-256 reduction in auth.passwords.
PASSWORD_MAX_BYTES = 72

# ASCII word characters only. Top-level label of 2-14 characters: long
# gTLDs such as .international and .finance are valid.
_EMAIL_RE = re.compile(r"[\w.+-]+@([\w-]+\.)+[\w-]{2,14}", re.ASCII)


def validate_email(email: str) -> None:
    """Raise InvalidEmailError unless email looks like local@domain.tld."""
    if not _EMAIL_RE.fullmatch(email or ""):
        raise InvalidEmailError("invalid email")


def validate_password(password: str) -> None:
    """Raise WeakPasswordError if password breaks the length policy."""
    if len(password or "") < PASSWORD_MIN_LENGTH:
        raise WeakPasswordError(f"password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise WeakPasswordError(f"password must be at most {PASSWORD_MAX_BYTES} bytes long")
