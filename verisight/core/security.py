"""
security.py — PIN hashing and session-token utilities.

Uses:
  - bcrypt (direct, no passlib) for hashing the 6-digit unlock PIN
  - python-jose for the session JWT issued after a successful unlock

Configuration is read from verisight.core.config.settings so all secrets
live in environment variables / .env files, never in code.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from verisight.core.config import settings

# ── PIN hashing ───────────────────────────────────────────────────────────────

def hash_pin(plain: str) -> str:
    """Return the bcrypt hash of *plain*."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_pin(plain: str, hashed: str) -> bool:
    """Return True if *plain* matches *hashed*. A malformed hash never matches."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ── JWT ───────────────────────────────────────────────────────────────────────

def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT.

    Args:
        subject:       The session owner (the device's single local user).
        expires_delta: Custom TTL; defaults to settings.jwt_expiry_hours.
    """
    delta = expires_delta or timedelta(hours=settings.jwt_expiry_hours)
    expire = datetime.now(tz=timezone.utc) + delta
    payload = {"sub": subject, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[str]:
    """
    Decode and validate a JWT.

    Returns the *sub* claim on success, or None if the token is missing,
    expired, or otherwise invalid.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        return payload.get("sub")
    except JWTError:
        return None
