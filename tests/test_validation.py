"""
tests/test_validation.py -- Email format and password length policy.
"""

from __future__ import annotations

import pytest

from auth.exceptions import CredentialPolicyError, InvalidEmailError, WeakPasswordError
from auth.validation import validate_email, validate_password


@pytest.mark.parametrize(
    "email",
    [
        "a@b.com",
        "first.last+tag@example.co.uk",
        "user-name@sub.domain.io",
        "jane@example.international",
    ],
)
def test_valid_email(email: str) -> None:
    validate_email(email)


@pytest.mark.parametrize(
    "email",
    [
        "",
        "not-an-email",
        "@example.com",
        "user@",
        "user@example",
        "user@example.c",
        "user@example.abcdefghijklmno",
        "user name@example.com",
        "a@b.com extra",
        "jos\u00e9@ex\u00e4mple.com",
        "user@ex\u00e4mple.com",
    ],
)
def test_invalid_email(email: str) -> None:
    with pytest.raises(InvalidEmailError):
        validate_email(email)


def test_password_at_minimum_length_accepted() -> None:
    validate_password("12345678")


def test_short_password_rejected() -> None:
    with pytest.raises(WeakPasswordError, match="at least 8"):
        validate_password("1234567")


def test_empty_password_rejected() -> None:
    with pytest.raises(WeakPasswordError):
        validate_password("")


def test_password_limit_counts_bytes() -> None:
    """The cap is in UTF-8 bytes, so multi-byte characters count double."""
    validate_password("é" * 36)
    with pytest.raises(WeakPasswordError, match="72 bytes"):
        validate_password("é" * 37)


def test_policy_errors_share_a_base() -> None:
    assert issubclass(InvalidEmailError, CredentialPolicyError)
    assert issubclass(WeakPasswordError, CredentialPolicyError)
