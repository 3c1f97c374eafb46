"""
Google sign-in endpoints.

- GET /google: Returns the consent URL and stores its state
- GET /callback/google: Validates state, signs the user in (creating a
  pre-verified account on first sign-in) and redirects to the dashboard
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codex import crud
from codex.core.config import settings
from codex.core.database import get_db
from codex.core.exceptions import NotImplementedApiError, ServerError, UnauthorizedError, ValidationError
from codex.core.kv_store import KeyValueStore, get_kv_store
from codex.core.security import create_access_token, unusable_password_hash
from codex.core.verification import clear_verification
from codex.services.google_oauth import GoogleOAuthError, GoogleOAuthService, get_google_oauth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Google Sign-In"])


def _require_configured(service: GoogleOAuthService) -> None:
    if not service.is_configured:
        raise NotImplementedApiError("Google authentication is not configured")


@router.get("/google")
async def initiate_google_login(
    service: GoogleOAuthService = Depends(get_google_oauth_service),
    store: KeyValueStore = Depends(get_kv_store)
):
    """
    Step 1: Start Google sign-in.

    Returns:
        dict: url to redirect the browser to, and the state bound to it
    """
    _require_configured(service)

    url, state = service.get_authorization_url()
    service.store_state(store, state)

    return {"url": url, "state": state}


def _sign_in_google_user(db: Session, profile: dict) -> str:
    """Find or create the account for a verified Google profile and issue a token."""
    email = profile["email"]

    user = crud.user.get_active_by_email(db, email)
    if user is None:
        username = crud.user.derive_username(db, profile.get("name") or email)
        try:
            user = crud.user.create(
                db,
                email=email,
                username=username,
                hashed_password=unusable_password_hash(),
                email_verified=True,
                oauth_provider="google",
                oauth_id=profile.get("sub"),
            )
        except IntegrityError:
            db.rollback()
            raise ServerError("Failed to create account from Google profile", code="OAUTH_ERROR")
        logger.info(f"New user created from Google sign-in: {user.email}")
    else:
        if not user.email_verified:
            # Google has confirmed ownership of the address
            clear_verification(user)
            db.commit()
            db.refresh(user)
        logger.info(f"Existing user signed in with Google: {user.email}")

    return create_access_token(user)


@router.get("/callback/google")
async def google_callback(
    code: Optional[str] = Query(default=None, description="Authorization code from Google"),
    state: Optional[str] = Query(default=None, description="State parameter for CSRF protection"),
    service: GoogleOAuthService = Depends(get_google_oauth_service),
    store: KeyValueStore = Depends(get_kv_store),
    db: Session = Depends(get_db)
):
    """
    Step 2: Handle the redirect back from Google.

    Only profiles whose email Google reports as verified are signed in.
    Redirects (302) to the frontend dashboard with the token in the URL fragment.
    """
    _require_configured(service)

    if not code or not state:
        raise ValidationError("Invalid OAuth callback parameters", code="INVALID_CALLBACK")

    if not service.consume_state(store, state):
        raise ValidationError("Invalid or expired OAuth state. Please sign in again.", code="INVALID_CALLBACK")

    try:
        token_data = await service.exchange_code_for_token(code)
        profile = await service.get_user_info(token_data["access_token"])
    except (GoogleOAuthError, KeyError) as e:
        logger.error(f"Google OAuth callback error: {e}")
        raise ServerError("Failed to authenticate with Google", code="OAUTH_ERROR")

    if not profile.get("email"):
        raise ServerError("Google did not return an email address", code="OAUTH_ERROR")

    if profile.get("email_verified") is not True:
        logger.warning(f"Google sign-in rejected for unverified email: {profile.get('email')}")
        raise UnauthorizedError(
            "Your Google account email is not verified",
            code="EMAIL_NOT_VERIFIED",
        )

    # Database work and bcrypt hashing are blocking
    token = await run_in_threadpool(_sign_in_google_user, db, profile)

    return RedirectResponse(
        url=f"{settings.FRONTEND_URL}/dashboard#token={token}",
        status_code=status.HTTP_302_FOUND
    )
