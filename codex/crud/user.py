"""
CRUD operations for the User model.

Lookups by email/username only consider live (non-soft-deleted) accounts.
The soft-delete and restore transitions are conditional updates on the
current state, so two concurrent requests cannot both apply them.
"""

import re
import secrets
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from codex.core.security import get_password_hash
from codex.models.user import User, anonymized_email, anonymized_username

USERNAME_MAX_LENGTH = 20


def get_by_id(db: Session, user_id: uuid.UUID) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_active_by_email(db: Session, email: str) -> Optional[User]:
    """Find a non-soft-deleted user by email (case-sensitive)."""
    return db.query(User).filter(
        User.email == email,
        User.marked_for_deletion == False  # noqa: E712
    ).first()


def email_taken(db: Session, email: str, exclude_user_id: Optional[uuid.UUID] = None) -> bool:
    query = db.query(User.id).filter(User.email == email, User.marked_for_deletion == False)  # noqa: E712
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is not None


def username_taken(db: Session, username: str, exclude_user_id: Optional[uuid.UUID] = None) -> bool:
    # Soft-deleted rows carry placeholder usernames, so the unique index covers them too
    query = db.query(User.id).filter(User.username == username)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is not None


def create(
    db: Session,
    email: str,
    username: str,
    password: Optional[str] = None,
    hashed_password: Optional[str] = None,
    email_verified: bool = False,
    oauth_provider: Optional[str] = None,
    oauth_id: Optional[str] = None,
) -> User:
    """
    Create a new user.

    Args:
        db: Database session
        email: Unique email
        username: Unique username
        password: Plain password to hash (or pass hashed_password)
        email_verified: True when an identity provider already vouched for the email

    Returns:
        Created User instance
    """
    user = User(
        id=uuid.uuid4(),
        email=email,
        username=username,
        hashed_password=hashed_password or get_password_hash(password),
        email_verified=email_verified,
        marked_for_deletion=False,
        oauth_provider=oauth_provider,
        oauth_id=oauth_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def derive_username(db: Session, source: str) -> str:
    """
    Build an available username from an email local part or display name.

    Characters outside [A-Za-z0-9_-] become underscores; the result is padded
    to 3 and cut to 20 characters, with a random suffix on collision.
    """
    base = re.sub(r"[^a-zA-Z0-9_-]", "_", source.split("@")[0])[:USERNAME_MAX_LENGTH]
    if len(base) < 3:
        base = (base + "user")[:USERNAME_MAX_LENGTH]

    candidate = base
    while username_taken(db, candidate):
        suffix = f"_{secrets.randbelow(10000):04d}"
        candidate = base[:USERNAME_MAX_LENGTH - len(suffix)] + suffix
    return candidate


def mark_for_deletion(db: Session, user: User, now: datetime) -> bool:
    """
    Soft-delete: flag the row, stamp deleted_at and anonymize email/username.

    Returns:
        bool: False if the user was already marked (or no longer exists)
    """
    updated = db.query(User).filter(
        User.id == user.id,
        User.marked_for_deletion == False  # noqa: E712
    ).update({
        User.marked_for_deletion: True,
        User.deleted_at: now,
        User.pre_deletion_email: user.email,
        User.email: anonymized_email(user.id),
        User.username: anonymized_username(user.id),
    }, synchronize_session=False)
    db.commit()
    db.refresh(user)
    return updated == 1


def find_deleted_by_original_email(db: Session, email: str) -> List[User]:
    """Soft-deleted accounts that used this email, newest deletion first."""
    return db.query(User).filter(
        User.marked_for_deletion == True,  # noqa: E712
        User.pre_deletion_email == email
    ).order_by(User.deleted_at.desc()).all()


def restore(db: Session, user: User, email: str, username: str) -> bool:
    """
    Undo a soft delete.

    Returns:
        bool: False if the user is no longer marked for deletion
    """
    updated = db.query(User).filter(
        User.id == user.id,
        User.marked_for_deletion == True  # noqa: E712
    ).update({
        User.marked_for_deletion: False,
        User.deleted_at: None,
        User.pre_deletion_email: None,
        User.email: email,
        User.username: username,
    }, synchronize_session=False)
    db.commit()
    db.refresh(user)
    return updated == 1


def update_profile(
    db: Session,
    user: User,
    username: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> User:
    """Apply the supplied fields only; the password is rehashed."""
    if username is not None:
        user.username = username
    if email is not None:
        user.email = email
    if password is not None:
        user.hashed_password = get_password_hash(password)
    db.commit()
    db.refresh(user)
    return user
