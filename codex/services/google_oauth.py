"""
Google OAuth 2.0 sign-in.

Authorization-code flow:
1. get_authorization_url() builds the consent URL and a random state
2. The state is kept in the key-value store for 15 minutes, single use
3. The callback exchanges the code for tokens and fetches the userinfo profile
"""

import logging
import secrets
import httpx
from typing import Dict, Tuple
from urllib.parse import urlencode

from codex.core.config import settings
from codex.core.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 15 * 60


class GoogleOAuthError(Exception):
    """Raised when Google rejects the code exchange or profile request"""


def _state_key(state: str) -> str:
    return f"oauth_state:google:{state}"


class GoogleOAuthService:
    """
    Google sign-in client.

    Handles:
    - Authorization URL and state generation
    - State storage and single-use validation
    - Code-for-token exchange
    - Userinfo lookup
    """

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

    SCOPES = ["openid", "email", "profile"]

    def __init__(self):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.GOOGLE_REDIRECT_URI

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def get_authorization_url(self) -> Tuple[str, str]:
        """
        Generate the Google consent URL.

        Returns:
            Tuple of (authorization_url, state)
        """
        state = secrets.token_urlsafe(32)  # CSRF protection

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.SCOPES),
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }

        return f"{self.AUTH_URL}?{urlencode(params)}", state

    def store_state(self, store: KeyValueStore, state: str) -> None:
        store.put(_state_key(state), {"provider": "google"}, STATE_TTL_SECONDS)

    def consume_state(self, store: KeyValueStore, state: str) -> bool:
        """True if the state was issued by us and not used before"""
        if not state:
            return False
        return store.delete(_state_key(state))

    async def exchange_code_for_token(self, code: str) -> Dict:
        """
        Exchange an authorization code for tokens.

        Raises:
            GoogleOAuthError: If the token exchange fails
        """
        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=30.0
            )

            if response.status_code != 200:
                logger.error(f"Google token exchange failed: {response.text}")
                raise GoogleOAuthError("Failed to obtain access token from Google")

            return response.json()

    async def get_user_info(self, access_token: str) -> Dict:
        """
        Fetch the signed-in user's profile (sub, email, email_verified, name).

        Raises:
            GoogleOAuthError: If the request fails
        """
        async with httpx.AsyncClient() as client:
            response = await client.get(
                self.USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=30.0
            )

            if response.status_code != 200:
                logger.error(f"Google userinfo request failed: {response.text}")
                raise GoogleOAuthError("Failed to fetch Google profile")

            return response.json()


# Singleton instance
google_oauth_service = GoogleOAuthService()


def get_google_oauth_service() -> GoogleOAuthService:
    """FastAPI dependency returning the Google sign-in client"""
    return google_oauth_service
