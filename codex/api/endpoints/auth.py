"""
Authentication and account lifecycle endpoints.

- POST /register: Create an account (pending verification) and log it in
- POST /login: Rate-limited email/password login
- POST /logout: Revoke the presented token
- GET /me, PUT /me: Read or update the current profile
- DELETE /delete: Soft-delete the account (7-day retention)
- POST /cancel-deletion: Restore a soft-deleted account
- GET /process-deletions: Purge accounts past retention (cron trigger)
"""

import logging
import secrets
from typing import Optional

import redis
from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codex import crud
from codex.core.config import settings
from codex.core.database import get_db
from codex.core.deps import AuthContext, get_auth_context, get_optional_token_payload
from codex.core.exceptions import (
    ApiError,
    ConflictError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    UnauthorizedError,
    ValidationError,
)
from codex.core.kv_store import KeyValueStore, get_kv_store
from codex.core.purge import RETENTION_DAYS, purge_expired_accounts, retention_deadline
from codex.core.rate_limiter import LoginRateLimiter, get_client_ip, get_login_rate_limiter
from codex.core.security import create_access_token, dummy_password_hash, revoke_token, verify_password
from codex.core.storage import StorageBackend, get_storage
from codex.core.verification import ensure_pending_code, issue_and_dispatch, utcnow
from codex.schemas.user import (
    AuthResponse,
    CancelDeletionRequest,
    DeletionRunResponse,
    DeletionScheduledResponse,
    MessageResponse,
    ProfileUpdateResponse,
    UpdateProfileRequest,
    UserLoginRequest,
    UserRegisterRequest,
    UserSummary,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)


def _auth_response(user) -> AuthResponse:
    return AuthResponse(token=create_access_token(user), user=UserSummary.model_validate(user))


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=AuthResponse)
def register(
    request: UserRegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Register a new user account.

    The account starts pending verification: a 6-digit code is emailed and a
    token is returned right away so the client can show the verification screen.
    """
    if crud.user.email_taken(db, request.email):
        raise ConflictError("An account with this email already exists")
    if crud.user.username_taken(db, request.username):
        raise ConflictError("This username is already taken")

    try:
        user = crud.user.create(
            db,
            email=request.email,
            username=request.username,
            password=request.password,
        )
    except IntegrityError:
        # Lost a race with a concurrent registration
        db.rollback()
        raise ConflictError("An account with this email or username already exists")

    logger.info(f"New user registered: {user.email}")

    issue_and_dispatch(db, user)

    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
def login(
    request: UserLoginRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    limiter: LoginRateLimiter = Depends(get_login_rate_limiter)
):
    """
    Authenticate with email and password.

    Unverified accounts get a 401 with requiresVerification; a new code is
    only sent if the previous one has expired.
    """
    if not request.email or not request.password:
        raise ValidationError("Email and password are required")

    ip_address = get_client_ip(http_request)

    rate_status = limiter.check(ip_address, request.email)
    if rate_status.limited:
        raise RateLimitedError(
            rate_status.message,
            retry_after_seconds=rate_status.retry_after_seconds,
            time_left_minutes=rate_status.time_left_minutes,
        )

    user = crud.user.get_active_by_email(db, request.email)
    # Unknown emails still pay for a bcrypt check
    hashed_password = user.hashed_password if user else dummy_password_hash()
    password_ok = verify_password(request.password, hashed_password)
    if not user or not password_ok:
        limiter.record_failure(ip_address, request.email)
        logger.info(f"Failed login for {request.email} from {ip_address}")
        raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

    if not user.email_verified:
        expires_at, reissued = ensure_pending_code(db, user)
        logger.info(f"Login blocked for unverified user {user.email} (new code sent: {reissued})")
        raise UnauthorizedError(
            "Please verify your email before logging in",
            code="EMAIL_NOT_VERIFIED",
            extra={
                "requiresVerification": True,
                "email": user.email,
                "expiresAt": expires_at.isoformat(),
            },
        )

    limiter.reset(ip_address, request.email)
    logger.info(f"User logged in: {user.email}")

    return _auth_response(user)


@router.post("/logout", response_model=MessageResponse)
def logout(
    payload: Optional[dict] = Depends(get_optional_token_payload),
    store: KeyValueStore = Depends(get_kv_store)
):
    """Revoke the presented token. Succeeds even without a valid token."""
    if payload is None:
        return MessageResponse(message="Already logged out")

    try:
        revoke_token(store, payload)
    except redis.RedisError as e:
        # Client discards the token either way
        logger.error(f"Could not revoke token for {payload.get('email')}: {e}")
    logger.info(f"User logged out: {payload.get('email')}")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserSummary)
def get_me(auth: AuthContext = Depends(get_auth_context)):
    """Get the current user's profile."""
    return auth.user


@router.put("/me", response_model=ProfileUpdateResponse)
def update_me(
    request: UpdateProfileRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """
    Update username, email and/or password.

    Only supplied fields change. A new email or username must not belong to
    another account.
    """
    user = crud.user.get_by_id(db, auth.id)
    if user is None:
        raise NotFoundError("User not found")

    if request.email is not None and request.email != user.email:
        if crud.user.email_taken(db, request.email, exclude_user_id=user.id):
            raise ConflictError("An account with this email already exists")
    if request.username is not None and request.username != user.username:
        if crud.user.username_taken(db, request.username, exclude_user_id=user.id):
            raise ConflictError("This username is already taken")

    try:
        user = crud.user.update_profile(
            db,
            user,
            username=request.username,
            email=request.email,
            password=request.password,
        )
    except IntegrityError:
        db.rollback()
        raise ConflictError("An account with this email or username already exists")

    logger.info(f"Profile updated for user {user.id}")

    return ProfileUpdateResponse(
        message="Profile updated successfully",
        user=UserSummary.model_validate(user)
    )


@router.delete("/delete", response_model=DeletionScheduledResponse)
def delete_account(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    store: KeyValueStore = Depends(get_kv_store)
):
    """
    Schedule the current account for deletion.

    The account is anonymized right away and permanently removed, together
    with its prompts and responses, after the retention period. It can be
    restored with /cancel-deletion until then.
    """
    original_email = auth.email
    now = utcnow()

    if not crud.user.mark_for_deletion(db, auth.user, now):
        raise NotFoundError("Account not found or already scheduled for deletion")

    try:
        revoke_token(store, auth.token_payload)
    except redis.RedisError as e:
        # The account is already anonymized; the token stops working once the user is gone
        logger.error(f"Could not revoke token for deleted user {auth.id}: {e}")
    logger.info(f"Account scheduled for deletion: {original_email} (user {auth.id})")

    return DeletionScheduledResponse(
        message=f"Your account has been scheduled for deletion. It will be permanently removed in {RETENTION_DAYS} days.",
        retention_period_days=RETENTION_DAYS,
        schedule_deleted_at=retention_deadline(now)
    )


@router.post("/cancel-deletion", response_model=AuthResponse)
def cancel_deletion(
    request: CancelDeletionRequest,
    db: Session = Depends(get_db)
):
    """
    Restore an account that is scheduled for deletion.

    The email must be the one the account had when it was deleted and the
    password must match. A fresh username is derived from the email.
    """
    candidates = crud.user.find_deleted_by_original_email(db, request.email)
    user = next(
        (c for c in candidates if verify_password(request.password, c.hashed_password)),
        None
    )
    if user is None:
        raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")

    if crud.user.email_taken(db, request.email):
        raise ConflictError("This email is now used by another account")

    username = crud.user.derive_username(db, request.email)
    if not crud.user.restore(db, user, request.email, username):
        raise ConflictError("Account is no longer scheduled for deletion")

    logger.info(f"Account restored: {user.email} (user {user.id})")

    return _auth_response(user)


@router.get("/process-deletions", response_model=DeletionRunResponse)
def process_deletions(
    x_cron_secret: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    blob_storage: StorageBackend = Depends(get_storage)
):
    """
    Permanently delete accounts past the retention period.

    Normally run by the Celery beat schedule; this endpoint lets an external
    cron trigger it. Requires X-Cron-Secret when CRON_SECRET is configured.
    """
    if settings.CRON_SECRET:
        if not x_cron_secret or not secrets.compare_digest(x_cron_secret, settings.CRON_SECRET):
            raise UnauthorizedError("Invalid or missing cron secret")

    try:
        deleted_count = purge_expired_accounts(db, blob_storage)
    except ApiError:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error processing account deletions: {e}", exc_info=True)
        raise ServerError("Failed to process account deletions")

    return DeletionRunResponse(deleted_count=deleted_count)
