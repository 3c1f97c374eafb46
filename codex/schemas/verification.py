"""
Pydantic schemas for email verification endpoints.
"""

from pydantic import EmailStr, Field, field_validator
import re

from codex.schemas.user import CamelModel


class VerifyEmailRequest(CamelModel):
    """Request to verify a 6-digit code"""
    email: EmailStr
    code: str = Field(..., description="6-digit verification code")

    @field_validator('code')
    @classmethod
    def validate_code_format(cls, v: str) -> str:
        """Ensure code is exactly 6 digits"""
        v = v.strip()
        if not re.fullmatch(r'[0-9]{6}', v):
            raise ValueError('Code must be exactly 6 digits')
        return v


class ResendVerificationRequest(CamelModel):
    email: EmailStr


class ResendVerificationResponse(CamelModel):
    """Same shape whether or not the email belongs to an account"""
    success: bool = True
    message: str
    already_verified: bool = False
