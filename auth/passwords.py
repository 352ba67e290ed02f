"""
auth/passwords.py -- Password hashing policy.

bcrypt is used directly (no passlib wrapper). Its cost factor makes
brute-forcing low-entropy secrets expensive, and checkpw() compares in
constant time.

The cost factor is fixed per deployment (AuthSettings.password_hash_rounds)
and passed in by the caller; hashes produced at one cost still verify after
the setting changes because bcrypt embeds the cost in the hash.

Long inputs: bcrypt refuses more than 72 bytes. A password longer than that
is first reduced to base64(SHA-256(password)) -- 44 ASCII bytes -- in both
hash_password() and verify_password(), so every non-empty password hashes
and verifies, and two long passwords sharing a 72-byte prefix stay distinct.
Passwords of 72 bytes or fewer go to bcrypt unchanged.

Layer rule: no imports from notify/ or core/.
"""

from __future__ import annotations

import base64
import hashlib
from functools import lru_cache

import bcrypt

DEFAULT_ROUNDS = 12

_BCRYPT_MAX_BYTES = 72


def _secret_bytes(plain: str) -> bytes:
    raw = plain.encode("utf-8")
    if len(raw) > _BCRYPT_MAX_BYTES:
        raw = base64.b64encode(hashlib.sha256(raw).digest())
    return raw


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a bcrypt hash of the given plaintext password.

    An empty password is returned unchanged, so callers can tell "no
    password set" apart from a hashing failure. Any other input, whatever
    its length, yields a hash that verify_password() accepts.
    """
    if not plain:
        return plain
    return bcrypt.hashpw(_secret_bytes(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(hashed: str, plain: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: empty inputs and malformed hashes are simply a mismatch.
    """
    if not hashed or not plain:
        return False
    try:
        return bcrypt.checkpw(_secret_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache
def dummy_hash(rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a throwaway hash at the given cost for timing equalization.

    Sign-in runs verify_password() against this when the email is unknown,
    so the response time does not reveal whether an account exists.
    """
    return hash_password("passgate_timing_dummy", rounds)
