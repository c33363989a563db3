"""
Password hashing for email/password identities.

Hashes are argon2id strings carrying their own parameters, so a hash made
under older settings still verifies and can be upgraded at the next sign-in.
"""

from __future__ import annotations

import argon2

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)

MAX_PASSWORD_LENGTH = 128


class PasswordStrengthError(ValueError):
    """The password does not meet the provider's minimum requirements."""


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """True if ``password`` matches; a malformed stored hash counts as a mismatch."""
    try:
        return _hasher.verify(password_hash, password)
    except (argon2.exceptions.VerifyMismatchError, argon2.exceptions.InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """True when the hash was made with parameters other than the current ones."""
    return _hasher.check_needs_rehash(password_hash)


def validate_password_strength(password: str, min_length: int = 6) -> None:
    """Length is the only rule: at least ``min_length``, at most 128 characters."""
    if not password:
        msg = "Password required"
        raise PasswordStrengthError(msg)
    if len(password) < min_length:
        msg = f"Password must be at least {min_length} characters"
        raise PasswordStrengthError(msg)
    if len(password) > MAX_PASSWORD_LENGTH:
        msg = f"Password must not exceed {MAX_PASSWORD_LENGTH} characters"
        raise PasswordStrengthError(msg)
