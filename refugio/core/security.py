"""Password hashing and opaque bearer-token generation for self-managed authentication."""

import hashlib
import re
import secrets

import bcrypt

from refugio.core.config import settings
from refugio.core.exceptions import WeakPassword

# Min/max lengths for email and password validation.
EMAIL_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

# 32 random bytes -> 43 url-safe characters.
SESSION_TOKEN_BYTES = 32

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"[0-9]")


def hash_password(plain_password: str, rounds: int | None = None) -> str:
    """Hash a plain-text password for storage. Salt is generated per call."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    cost = rounds if rounds is not None else settings.BCRYPT_ROUNDS
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain_password: str, hashed: str | None) -> bool:
    """Verify a plain password against a stored hash. Missing or malformed hashes never match."""
    if not hashed:
        return False
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def validate_password(plain_password: str) -> None:
    """Raise WeakPassword unless the password meets the length and character rules."""
    if not (PASSWORD_MIN_LEN <= len(plain_password) <= PASSWORD_MAX_LEN):
        raise WeakPassword(
            f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters long."
        )
    if not _LETTER.search(plain_password):
        raise WeakPassword("Password must contain at least one letter.")
    if not _DIGIT.search(plain_password):
        raise WeakPassword("Password must contain at least one digit.")


def generate_session_token() -> str:
    """Return a fresh bearer token from the OS CSPRNG."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a bearer token; the session table is keyed by this, never the raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
