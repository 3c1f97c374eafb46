"""
Tests for Google sign-in.

Outbound calls to Google are replaced by a fake service.
"""

import pytest
from urllib.parse import parse_qs, urlparse

from codex.api.endpoints import oauth
from codex.core.config import settings
from codex.core.security import decode_token
from codex.models.user import User
from codex.services.google_oauth import GoogleOAuthError, GoogleOAuthService, get_google_oauth_service
from main import app
from conftest import STRONG_PASSWORD, register


class FakeGoogleOAuthService(GoogleOAuthService):

    def __init__(self, profile=None, fail=False):
        self.client_id = "client-id"
        self.client_secret = "client-secret"
        self.redirect_uri = "http://testserver/api/auth/callback/google"
        self.profile = profile or {
            "sub": "google-123",
            "email": "g@x.com",
            "email_verified": True,
            "name": "Grace Hopper",
        }
        self.fail = fail
        self.exchanged_codes = []

    async def exchange_code_for_token(self, code):
        if self.fail:
            raise GoogleOAuthError("invalid_grant")
        self.exchanged_codes.append(code)
        return {"access_token": "google-access-token"}

    async def get_user_info(self, access_token):
        return self.profile


@pytest.fixture
def google(client):
    service = FakeGoogleOAuthService()
    app.dependency_overrides[get_google_oauth_service] = lambda: service
    return service


def _start(client):
    response = client.get("/auth/google")
    assert response.status_code == 200
    return response.json()


class TestGoogleLogin:

    def test_not_configured(self, client):
        response = client.get("/auth/google")

        assert response.status_code == 501
        assert response.json()["error"]["code"] == "NOT_IMPLEMENTED"

    def test_authorization_url(self, client, google, kv_store):
        data = _start(client)

        url = urlparse(data["url"])
        params = parse_qs(url.query)
        assert url.netloc == "accounts.google.com"
        assert params["state"] == [data["state"]]
        assert params["client_id"] == ["client-id"]
        assert kv_store.get(f"oauth_state:google:{data['state']}") is not None


class TestGoogleCallback:

    def test_creates_verified_user_and_redirects(self, client, google, db_session):
        state = _start(client)["state"]

        response = client.get(
            "/auth/callback/google",
            params={"code": "auth-code", "state": state},
            follow_redirects=False
        )

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith(f"{settings.FRONTEND_URL}/dashboard#token=")
        assert google.exchanged_codes == ["auth-code"]

        user = db_session.query(User).filter(User.email == "g@x.com").first()
        assert user.email_verified is True
        assert user.oauth_provider == "google"
        assert user.oauth_id == "google-123"
        assert user.username == "Grace_Hopper"

        payload = decode_token(location.split("#token=", 1)[1])
        assert payload["sub"] == str(user.id)

    def test_existing_user_signs_in(self, client, google, db_session):
        register(client, email="g@x.com", username="grace", password=STRONG_PASSWORD)
        state = _start(client)["state"]

        response = client.get(
            "/auth/callback/google",
            params={"code": "auth-code", "state": state},
            follow_redirects=False
        )

        assert response.status_code == 302
        users = db_session.query(User).filter(User.email == "g@x.com").all()
        assert len(users) == 1
        assert users[0].username == "grace"
        assert users[0].email_verified is True

    def test_missing_params(self, client, google):
        response = client.get("/auth/callback/google", params={"state": "abc"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CALLBACK"

    def test_unknown_state(self, client, google):
        response = client.get("/auth/callback/google", params={"code": "auth-code", "state": "forged"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CALLBACK"

    def test_state_is_single_use(self, client, google):
        state = _start(client)["state"]
        params = {"code": "auth-code", "state": state}

        assert client.get("/auth/callback/google", params=params, follow_redirects=False).status_code == 302
        assert client.get("/auth/callback/google", params=params, follow_redirects=False).status_code == 400

    def test_google_rejects_code(self, client, google):
        google.fail = True
        state = _start(client)["state"]

        response = client.get(
            "/auth/callback/google",
            params={"code": "bad-code", "state": state},
            follow_redirects=False
        )

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "OAUTH_ERROR"

    def test_unverified_google_email_cannot_take_over_account(self, client, google, verified_user):
        google.profile = {"sub": "google-999", "email": "a@x.com", "email_verified": False, "name": "Mallory"}
        state = _start(client)["state"]

        response = client.get(
            "/auth/callback/google",
            params={"code": "auth-code", "state": state},
            follow_redirects=False
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "EMAIL_NOT_VERIFIED"
        assert "location" not in response.headers

    def test_unverified_google_email_does_not_create_account(self, client, google, db_session):
        google.profile = {"sub": "google-999", "email": "new@x.com", "email_verified": False}
        state = _start(client)["state"]

        response = client.get(
            "/auth/callback/google",
            params={"code": "auth-code", "state": state},
            follow_redirects=False
        )

        assert response.status_code == 401
        assert db_session.query(User).filter(User.email == "new@x.com").first() is None

    def test_account_work_runs_in_threadpool(self, client, google, monkeypatch):
        offloaded = []
        real_run_in_threadpool = oauth.run_in_threadpool

        async def recording_run_in_threadpool(func, *args, **kwargs):
            offloaded.append(func)
            return await real_run_in_threadpool(func, *args, **kwargs)

        monkeypatch.setattr(oauth, "run_in_threadpool", recording_run_in_threadpool)
        state = _start(client)["state"]

        response = client.get(
            "/auth/callback/google",
            params={"code": "auth-code", "state": state},
            follow_redirects=False
        )

        assert response.status_code == 302
        assert offloaded == [oauth._sign_in_google_user]
