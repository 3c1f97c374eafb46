"""
User model for authentication and the account lifecycle.

A user is in exactly one of three states, derived from its flags:

    PENDING_VERIFICATION -> ACTIVE -> SOFT_DELETED -> (restored to ACTIVE | purged)

Soft-deleted rows keep their id but have email/username overwritten with
placeholders, freeing the originals for reuse. The original email is kept in
pre_deletion_email so that a restore can find the right row.
"""

import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Uuid, func
from sqlalchemy.orm import relationship
from codex.core.database import Base


class AccountStatus(str, enum.Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"
    SOFT_DELETED = "SOFT_DELETED"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    # Authentication credentials
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)

    # Email verification
    email_verified = Column(Boolean, default=False, nullable=False)
    verification_code = Column(String(6), nullable=True)
    verification_code_expires_at = Column(DateTime(timezone=True), nullable=True)
    verification_attempts = Column(Integer, default=0, nullable=False)

    # Soft delete
    marked_for_deletion = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    pre_deletion_email = Column(String, nullable=True, index=True)

    # Set for accounts created through an external identity provider
    oauth_provider = Column(String, nullable=True)
    oauth_id = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    prompts = relationship("Prompt", back_populates="user")

    @property
    def status(self) -> AccountStatus:
        if self.marked_for_deletion:
            return AccountStatus.SOFT_DELETED
        if self.email_verified:
            return AccountStatus.ACTIVE
        return AccountStatus.PENDING_VERIFICATION

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', status={self.status.value})>"


def anonymized_email(user_id: uuid.UUID) -> str:
    return f"deleted_{user_id}@deleted.local"


def anonymized_username(user_id: uuid.UUID) -> str:
    return f"deleted_{user_id}"
