"""
AWS SES Email Service for transactional emails.

Sends {to, subject, html} messages; templates for the account lifecycle
emails live here too.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from codex.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending emails via AWS SES.
    """

    def __init__(self):
        self._ses_client = None

    @property
    def ses_client(self):
        # Created on first send so importing the module needs no AWS config
        if self._ses_client is None:
            session_kwargs = {'region_name': settings.AWS_REGION}

            # Add credentials if provided (otherwise uses IAM role)
            if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
                session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
                session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

            self._ses_client = boto3.client('ses', **session_kwargs)
        return self._ses_client

    def send_email(self, to_email: str, subject: str, html: str) -> bool:
        """
        Send an HTML email.

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        try:
            response = self.ses_client.send_email(
                Source=f"{settings.AWS_SES_FROM_NAME} <{settings.AWS_SES_FROM_EMAIL}>",
                Destination={'ToAddresses': [to_email]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {'Html': {'Data': html, 'Charset': 'UTF-8'}},
                }
            )

            message_id = response.get('MessageId')
            logger.info(f"Email '{subject}' sent to {to_email} (MessageId: {message_id})")
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            logger.error(f"AWS SES ClientError: {error_code} - {error_message}")

            if error_code == 'MessageRejected':
                logger.error(f"Email rejected: {error_message}")
            elif error_code == 'MailFromDomainNotVerified':
                logger.error("Sender email not verified in SES")

            return False

        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False

    def send_verification_email(
        self,
        to_email: str,
        verification_code: str,
        username: Optional[str] = None,
        expires_in_minutes: int = 30
    ) -> bool:
        """
        Send a verification code email to a user.

        Args:
            to_email: Recipient email address
            verification_code: 6-digit verification code
            username: Optional username for the greeting
            expires_in_minutes: Lifetime shown in the email
        """
        subject = "Verify your email for Codex"
        html = self._build_verification_html(verification_code, username, expires_in_minutes)
        return self.send_email(to_email, subject, html)

    def _build_verification_html(self, code: str, username: Optional[str], expires_in_minutes: int) -> str:
        greeting = f"Hello {username}," if username else "Hello,"
        year = datetime.now(timezone.utc).year

        return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background-color: #4F46E5; color: white; padding: 20px; text-align: center; }}
    .content {{ padding: 20px; background-color: #f9f9f9; }}
    .code {{ font-size: 32px; font-weight: bold; letter-spacing: 5px; text-align: center; margin: 30px 0; color: #4F46E5; }}
    .footer {{ text-align: center; font-size: 12px; color: #666; margin-top: 30px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>Welcome to Codex</h1></div>
    <div class="content">
      <p>{greeting}</p>
      <p>Thank you for registering with Codex. To complete your registration, please enter the verification code below:</p>
      <div class="code">{code}</div>
      <p>This code will expire in {expires_in_minutes} minutes.</p>
      <p>If you did not create an account with Codex, please ignore this email.</p>
    </div>
    <div class="footer">
      <p>This is an automated message, please do not reply to this email.</p>
      <p>&copy; {year} Codex. All rights reserved.</p>
    </div>
  </div>
</body>
</html>
"""


# Singleton instance
email_service = EmailService()
