"""Snippet password generation, hashing and verification."""

from __future__ import annotations

import secrets

import bcrypt

# Excludes 0/O/o and 1/l/I/i.
PASSWORD_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz"
PASSWORD_LENGTH = 16
BCRYPT_ROUNDS = 10
MAX_PASSWORD_BYTES = 72


def generate_password() -> str:
    """Return a random 16 character password from an unambiguous alphabet."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(PASSWORD_LENGTH))


def hash_password(plaintext: str) -> str:
    """Hash ``plaintext`` with bcrypt at cost factor 10."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("ascii")


def verify_password(plaintext: str, password_hash: str) -> bool:
    """Check ``plaintext`` against a bcrypt hash.

    Comparison is delegated to bcrypt. A malformed hash or an over-long
    password is reported as a mismatch.
    """
    try:
        return bcrypt.checkpw(plaintext.encode("utf-8"), password_hash.encode("ascii"))
    except (ValueError, TypeError, UnicodeEncodeError):
        return False
