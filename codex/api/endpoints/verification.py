"""
Email verification endpoints.

Handles verifying and resending 6-digit email verification codes. Both are
public: the client identifies the account by email.
"""

import logging
import secrets
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from codex import crud
from codex.core.database import get_db
from codex.core.exceptions import ValidationError
from codex.core.security import create_access_token
from codex.core.verification import (
    clear_verification,
    is_code_expired,
    issue_and_dispatch,
    record_failed_attempt,
)
from codex.schemas.user import AuthResponse, UserSummary
from codex.schemas.verification import (
    ResendVerificationRequest,
    ResendVerificationResponse,
    VerifyEmailRequest,
)

router = APIRouter(prefix="/auth", tags=["Email Verification"])
logger = logging.getLogger(__name__)

RESEND_MESSAGE = "If an account with that email exists, a new verification code has been sent."


def _invalid_code() -> ValidationError:
    return ValidationError(
        "Invalid verification code",
        code="INVALID_VERIFICATION_CODE",
        extra={"expired": False},
    )


def _expired_code() -> ValidationError:
    return ValidationError(
        "Verification code has expired. Please request a new one.",
        code="VERIFICATION_CODE_EXPIRED",
        extra={"expired": True},
    )


@router.post("/verify-email", response_model=AuthResponse)
def verify_email(
    request: VerifyEmailRequest,
    db: Session = Depends(get_db)
):
    """
    Verify a user's email with a 6-digit code.

    Returns:
        AuthResponse: A token for the now active account

    Raises:
        ValidationError 400: Already verified, wrong code (expired=false),
            expired code (expired=true) or too many wrong codes (expired=true)
    """
    user = crud.user.get_active_by_email(db, request.email)
    if user is None:
        # Same answer as a wrong code
        raise _invalid_code()

    if user.email_verified:
        raise ValidationError("Email is already verified", code="ALREADY_VERIFIED")

    if not user.verification_code:
        raise _expired_code()

    if not secrets.compare_digest(user.verification_code, request.code):
        logger.info(f"Invalid verification code submitted for {user.email}")
        if record_failed_attempt(db, user):
            logger.warning(f"Verification code discarded after too many attempts for {user.email}")
            raise ValidationError(
                "Too many attempts. Please request a new code.",
                code="TOO_MANY_ATTEMPTS",
                extra={"expired": True},
            )
        raise _invalid_code()

    if is_code_expired(user.verification_code_expires_at):
        logger.info(f"Expired verification code submitted for {user.email}")
        raise _expired_code()

    clear_verification(user)
    db.commit()
    db.refresh(user)

    logger.info(f"Email verified for user {user.email}")

    return AuthResponse(token=create_access_token(user), user=UserSummary.model_validate(user))


@router.post("/resend-verification", response_model=ResendVerificationResponse)
def resend_verification(
    request: ResendVerificationRequest,
    db: Session = Depends(get_db)
):
    """
    Send a new verification code, replacing the previous one.

    Always returns success so the response does not reveal whether the email
    is registered.
    """
    user = crud.user.get_active_by_email(db, request.email)

    if user is None:
        logger.info(f"Verification resend requested for unknown email: {request.email}")
        return ResendVerificationResponse(message=RESEND_MESSAGE)

    if user.email_verified:
        return ResendVerificationResponse(
            message="Email is already verified",
            already_verified=True
        )

    issue_and_dispatch(db, user)
    logger.info(f"Verification code resent to {user.email}")

    return ResendVerificationResponse(message=RESEND_MESSAGE)
