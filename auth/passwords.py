"""
auth/passwords.py -- Password hashing (bcrypt, direct usage, no passlib wrapper).

bcrypt is the right choice for low-entropy secrets because its cost factor
makes brute force expensive. Every hash_password() call draws a fresh salt,
so hashing the same plaintext twice yields different digests.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

dummy_hash() enables timing equalization in AuthService.login() so response
time does not reveal whether a username exists. It is computed on first use,
not at import, so importing this module never reads settings.
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

from core.config import get_settings


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer
    caps password length at 128 characters.
    """
    salt = bcrypt.gensalt(rounds=rounds or get_settings().bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error: the
    caller can only answer "invalid credentials" either way.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache
def dummy_hash() -> str:
    """Bcrypt hash of a fixed string, at the configured cost.

    The API lifespan calls this once at startup so the first login is not
    measurably slower than later ones.
    """
    return hash_password("sessiongate_timing_dummy")
