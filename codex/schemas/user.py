"""
Pydantic schemas for registration, login, profile and account deletion.

JSON bodies use camelCase keys (emailVerified, retentionPeriodDays, ...).
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator
from pydantic.alias_generators import to_camel

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,20}$")
MIN_PASSWORD_LENGTH = 8
MIN_PASSWORD_CHARACTER_CLASSES = 3


def validate_username(v: str) -> str:
    if not USERNAME_PATTERN.match(v):
        raise ValueError(
            'Username must be 3-20 characters and contain only letters, numbers, underscores, or hyphens'
        )
    return v


def validate_password_strength(v: str) -> str:
    """At least 8 characters and 3 of: lowercase, uppercase, digit, special."""
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long')

    classes = [
        re.search(r'[a-z]', v),
        re.search(r'[A-Z]', v),
        re.search(r'[0-9]', v),
        re.search(r'[^a-zA-Z0-9]', v),
    ]
    if sum(1 for c in classes if c) < MIN_PASSWORD_CHARACTER_CLASSES:
        raise ValueError(
            'Password must contain at least 3 of the following: lowercase letters, '
            'uppercase letters, numbers, and special characters'
        )
    return v


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class UserRegisterRequest(CamelModel):
    """Request schema for user registration."""
    email: EmailStr
    username: str
    password: str

    @field_validator('username')
    @classmethod
    def check_username(cls, v: str) -> str:
        return validate_username(v)

    @field_validator('password')
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UserLoginRequest(CamelModel):
    """Request schema for email/password login."""
    email: str = ""
    password: str = ""


class UserSummary(CamelModel):
    """The only user fields ever returned to clients."""
    id: uuid.UUID
    email: str
    username: str
    email_verified: bool


class AuthResponse(CamelModel):
    """Bearer token plus the authenticated user."""
    token: str
    user: UserSummary


class UpdateProfileRequest(CamelModel):
    """Partial profile update; omitted fields are left unchanged."""
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None

    @field_validator('username')
    @classmethod
    def check_username(cls, v: Optional[str]) -> Optional[str]:
        return validate_username(v) if v is not None else v

    @field_validator('password')
    @classmethod
    def check_password(cls, v: Optional[str]) -> Optional[str]:
        return validate_password_strength(v) if v is not None else v


class MessageResponse(CamelModel):
    message: str


class ProfileUpdateResponse(CamelModel):
    message: str
    user: UserSummary


class DeletionScheduledResponse(CamelModel):
    message: str
    retention_period_days: int
    schedule_deleted_at: datetime


class CancelDeletionRequest(CamelModel):
    email: EmailStr
    password: str


class DeletionRunResponse(CamelModel):
    deleted_count: int
