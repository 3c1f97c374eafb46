"""
Security utilities for JWT authentication and password hashing.

Access tokens are HS256-signed JWTs carrying the user id, email, username,
issue time, expiry and a unique token id (jti). Logout revokes a token by
storing its jti in the shared key-value store until the token would have
expired anyway. Passwords are hashed using bcrypt.
"""

import math
import secrets
import time
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from codex.core.config import settings
from codex.core.kv_store import KeyValueStore

# Password hashing context (bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

REQUIRED_CLAIMS = ("sub", "email", "iat", "exp", "jti")


class InvalidTokenError(Exception):
    """Raised when a token is malformed, tampered with, expired or revoked."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    # Bcrypt has a 72-byte limit - truncate if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    return pwd_context.verify(password_bytes, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Passwords longer than 72 bytes are truncated to bcrypt's limit.
    """
    password_bytes = password.encode('utf-8')[:72]
    return pwd_context.hash(password_bytes)


def unusable_password_hash() -> str:
    """Hash of a random secret, for accounts that sign in through OAuth only."""
    return get_password_hash(secrets.token_urlsafe(32))


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """Fixed hash to verify against when no account matches, so timing is the same."""
    return get_password_hash(secrets.token_urlsafe(32))


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user: User whose identity the token asserts
        expires_delta: Optional lifetime (default: ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT token as a string
    """
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "iat": int(issued_at.timestamp()),
        "exp": int(expire.timestamp()),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT token.

    The signature and expiry are checked by python-jose; the required claims
    are checked here.

    Raises:
        InvalidTokenError: If the token is invalid, expired or incomplete
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        raise InvalidTokenError(str(e)) from e

    missing = [claim for claim in REQUIRED_CLAIMS if payload.get(claim) in (None, "")]
    if missing:
        raise InvalidTokenError(f"Token missing claims: {', '.join(missing)}")

    try:
        uuid.UUID(str(payload["sub"]))
    except ValueError as e:
        raise InvalidTokenError("Token subject is not a user id") from e

    return payload


def _revocation_key(jti: str) -> str:
    return f"revoked_token:{jti}"


def revoke_token(store: KeyValueStore, payload: dict) -> None:
    """Deny a token's jti until its own expiry."""
    ttl = max(1, math.ceil(payload["exp"] - time.time()))
    store.put(_revocation_key(payload["jti"]), {"revoked_at": int(time.time())}, ttl)


def is_token_revoked(store: KeyValueStore, jti: str) -> bool:
    return store.get(_revocation_key(jti)) is not None
