"""
FastAPI dependencies for authentication.

Protected endpoints receive an explicit AuthContext instead of reading
identity off the request object.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import redis
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from codex.core.database import get_db
from codex.core.exceptions import UnauthorizedError
from codex.core.kv_store import KeyValueStore, get_kv_store
from codex.core.security import InvalidTokenError, decode_token, is_token_revoked
from codex.models.user import User

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme (Authorization: Bearer <token>); missing header is handled below
security = HTTPBearer(auto_error=False)

INVALID_CREDENTIALS_MESSAGE = "Invalid or missing credentials"


@dataclass
class AuthContext:
    """The authenticated user and the claims of the token they presented"""
    user: User
    token_payload: dict

    @property
    def id(self) -> uuid.UUID:
        return self.user.id

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def username(self) -> str:
        return self.user.username


def _credentials_error() -> UnauthorizedError:
    return UnauthorizedError(INVALID_CREDENTIALS_MESSAGE, headers={"WWW-Authenticate": "Bearer"})


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store),
) -> AuthContext:
    """
    Extract and validate the current user from the bearer token.

    This dependency:
    1. Extracts the Bearer token from the Authorization header
    2. Decodes and validates the JWT
    3. Rejects tokens revoked by logout
    4. Fetches the user and rejects accounts marked for deletion

    Raises:
        UnauthorizedError: On any of the above failing
    """
    if not credentials:
        raise _credentials_error()

    try:
        payload = decode_token(credentials.credentials)
    except InvalidTokenError:
        raise _credentials_error()

    try:
        revoked = is_token_revoked(store, payload["jti"])
    except redis.RedisError as e:
        # Revocation list unavailable: accept the signed token
        logger.error(f"Token revocation check failed: {e}")
        revoked = False
    if revoked:
        raise _credentials_error()

    user = db.query(User).filter(User.id == uuid.UUID(payload["sub"])).first()
    if user is None or user.marked_for_deletion:
        raise _credentials_error()

    return AuthContext(user=user, token_payload=payload)


def get_optional_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[dict]:
    """Decoded claims if a valid bearer token was sent, otherwise None."""
    if not credentials:
        return None
    try:
        return decode_token(credentials.credentials)
    except InvalidTokenError:
        return None
