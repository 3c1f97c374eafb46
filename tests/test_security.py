"""
Tests for password hashing, access tokens and revocation.
"""

import time
import uuid
from datetime import timedelta
from types import SimpleNamespace

import pytest
from jose import jwt

from codex.core.config import settings
from codex.core.kv_store import MemoryKeyValueStore
from codex.core.security import (
    InvalidTokenError,
    create_access_token,
    decode_token,
    get_password_hash,
    is_token_revoked,
    revoke_token,
    verify_password,
)


@pytest.fixture
def user():
    return SimpleNamespace(id=uuid.uuid4(), email="a@x.com", username="auser")


class TestPasswordHashing:

    def test_hash_and_verify(self):
        hashed = get_password_hash("Abcd1234!")

        assert hashed != "Abcd1234!"
        assert verify_password("Abcd1234!", hashed) is True
        assert verify_password("abcd1234!", hashed) is False

    def test_long_passwords_are_accepted(self):
        password = "Aa1!" * 30
        assert verify_password(password, get_password_hash(password)) is True


class TestAccessTokens:

    def test_claims(self, user):
        payload = decode_token(create_access_token(user))

        assert payload["sub"] == str(user.id)
        assert payload["email"] == "a@x.com"
        assert payload["username"] == "auser"
        assert payload["exp"] - payload["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert payload["jti"]

    def test_default_horizon_is_seven_days(self):
        assert settings.ACCESS_TOKEN_EXPIRE_MINUTES == 7 * 24 * 60

    def test_each_token_has_unique_id(self, user):
        first = decode_token(create_access_token(user))
        second = decode_token(create_access_token(user))

        assert first["jti"] != second["jti"]

    def test_expired_token_rejected(self, user):
        token = create_access_token(user, expires_delta=timedelta(seconds=-10))

        with pytest.raises(InvalidTokenError):
            decode_token(token)

    def test_wrong_signature_rejected(self, user):
        claims = jwt.get_unverified_claims(create_access_token(user))
        forged = jwt.encode(claims, "some-other-secret", algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            decode_token(forged)

    def test_malformed_token_rejected(self):
        with pytest.raises(InvalidTokenError):
            decode_token("not.a.jwt")

    def test_missing_claims_rejected(self, user):
        now = int(time.time())
        token = jwt.encode(
            {"sub": str(user.id), "iat": now, "exp": now + 60},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM
        )

        with pytest.raises(InvalidTokenError):
            decode_token(token)

    def test_non_uuid_subject_rejected(self):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "42", "email": "a@x.com", "iat": now, "exp": now + 60, "jti": "abc"},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM
        )

        with pytest.raises(InvalidTokenError):
            decode_token(token)


class TestRevocation:

    def test_revoke_token(self, user):
        store = MemoryKeyValueStore()
        payload = decode_token(create_access_token(user))

        assert is_token_revoked(store, payload["jti"]) is False
        revoke_token(store, payload)
        assert is_token_revoked(store, payload["jti"]) is True

    def test_revocation_expires_with_token(self, user):
        now = [time.time()]
        store = MemoryKeyValueStore(clock=lambda: now[0])
        payload = decode_token(create_access_token(user, expires_delta=timedelta(minutes=5)))

        revoke_token(store, payload)
        now[0] += 6 * 60

        assert is_token_revoked(store, payload["jti"]) is False
