"""
Celery tasks for email operations.
"""

import logging
from typing import Optional
from celery import shared_task
from codex.services.email_service import email_service

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


@shared_task(
    bind=True,
    name="send_verification_email_task",
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=600,  # Max 10 minutes between retries
    retry_jitter=True
)
def send_verification_email_task(
    self,
    to_email: str,
    verification_code: str,
    username: Optional[str] = None,
    expires_in_minutes: int = 30
):
    """
    Send a verification email, retrying with exponential backoff.

    Args:
        to_email: Recipient email address
        verification_code: 6-digit verification code
        username: Optional username for the greeting
        expires_in_minutes: Code lifetime shown in the email
    """
    logger.info(f"Sending verification email to {to_email} (attempt {self.request.retries + 1})")

    success = email_service.send_verification_email(
        to_email=to_email,
        verification_code=verification_code,
        username=username,
        expires_in_minutes=expires_in_minutes
    )

    if not success:
        if self.request.retries >= self.max_retries:
            logger.error(f"All retry attempts exhausted for {to_email}")
        raise EmailDeliveryError(f"Failed to send verification email to {to_email}")

    logger.info(f"Verification email sent successfully to {to_email}")
    return {"status": "success", "email": to_email}
