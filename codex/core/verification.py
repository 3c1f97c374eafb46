"""
Core email verification logic.

Codes are 6-digit numeric strings stored on the user row together with an
expiry 30 minutes after issuance. Sending the email is best-effort: a
failure is logged and never aborts the operation that issued the code, since
the user can request a resend.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from sqlalchemy.orm import Session

from codex.core.celery_utils import queue_task_safely
from codex.models.user import User
from codex.tasks.email_tasks import send_verification_email_task

logger = logging.getLogger(__name__)

CODE_EXPIRATION_MINUTES = 30
MAX_VERIFICATION_ATTEMPTS = 5
CODE_MIN = 100000
CODE_MAX = 999999


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_verification_code() -> str:
    """
    Generate a 6-digit verification code, uniform over 100000-999999.

    Uses the secrets module so codes cannot be predicted.
    """
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def is_code_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """A missing expiry counts as expired."""
    if expires_at is None:
        return True
    return (now or utcnow()) >= as_utc(expires_at)


def issue_verification_code(db: Session, user: User) -> Tuple[str, datetime]:
    """
    Store a fresh code on the user, replacing any previous one.

    Returns:
        Tuple[str, datetime]: (code, expires_at)
    """
    code = generate_verification_code()
    expires_at = utcnow() + timedelta(minutes=CODE_EXPIRATION_MINUTES)

    user.verification_code = code
    user.verification_code_expires_at = expires_at
    user.verification_attempts = 0
    db.commit()
    db.refresh(user)

    return code, expires_at


def clear_verification(user: User) -> None:
    """Mark the user verified and drop the code fields (caller commits)."""
    user.email_verified = True
    user.verification_code = None
    user.verification_code_expires_at = None
    user.verification_attempts = 0


def record_failed_attempt(db: Session, user: User) -> bool:
    """
    Count a wrong code against the current one.

    After MAX_VERIFICATION_ATTEMPTS failures the code is discarded, so it
    answers as expired until a new one is issued.

    Returns:
        bool: True if the code was discarded
    """
    user.verification_attempts = (user.verification_attempts or 0) + 1
    exhausted = user.verification_attempts >= MAX_VERIFICATION_ATTEMPTS
    if exhausted:
        user.verification_code = None
        user.verification_code_expires_at = None
    db.commit()
    return exhausted


def dispatch_verification_email(to_email: str, code: str, username: Optional[str] = None) -> bool:
    """
    Queue the verification email.

    Returns:
        bool: True if queued; failures are logged, never raised
    """
    try:
        queued = queue_task_safely(
            send_verification_email_task,
            to_email=to_email,
            verification_code=code,
            username=username,
            expires_in_minutes=CODE_EXPIRATION_MINUTES
        )
    except Exception as e:
        logger.error(f"Error queueing verification email for {to_email}: {e}", exc_info=True)
        return False

    if queued:
        logger.info(f"Verification email queued for {to_email}")
    else:
        # Don't fail the caller - user can request resend
        logger.error(f"Failed to queue verification email for {to_email}")
    return queued


def issue_and_dispatch(db: Session, user: User) -> Tuple[str, datetime]:
    """Issue a new code and send it."""
    code, expires_at = issue_verification_code(db, user)
    dispatch_verification_email(user.email, code, user.username)
    return code, expires_at


def ensure_pending_code(db: Session, user: User) -> Tuple[datetime, bool]:
    """
    Reissue policy for unverified logins.

    Keeps an unexpired code as it is; otherwise issues and dispatches a new one.

    Returns:
        Tuple[datetime, bool]: (current expires_at, whether a new code was issued)
    """
    if user.verification_code and not is_code_expired(user.verification_code_expires_at):
        return as_utc(user.verification_code_expires_at), False

    _, expires_at = issue_and_dispatch(db, user)
    return expires_at, True
