"""
Purge of soft-deleted accounts past their retention window.

For each expired account, in this order:
1. Responses of each of the user's prompts
2. The prompts
3. The user row
4. Blob content of the removed prompts/responses (best-effort)

Each account is committed on its own, so an interrupted run leaves the
remaining accounts matching the selection for the next run. Bulk deletes of
rows that are already gone affect zero rows and are not errors.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session

from codex.core.storage import BlobStorageError, StorageBackend
from codex.core.verification import utcnow
from codex.models.prompt import Prompt
from codex.models.response import Response
from codex.models.user import User

logger = logging.getLogger(__name__)

RETENTION_DAYS = 7


def retention_deadline(deleted_at: datetime) -> datetime:
    return deleted_at + timedelta(days=RETENTION_DAYS)


def find_expired_accounts(db: Session, now: Optional[datetime] = None) -> List[User]:
    cutoff = (now or utcnow()) - timedelta(days=RETENTION_DAYS)
    return db.query(User).filter(
        User.marked_for_deletion == True,  # noqa: E712
        User.deleted_at.isnot(None),
        User.deleted_at <= cutoff
    ).all()


def _purge_user_rows(db: Session, user: User) -> List[str]:
    """Delete the user's rows, returning the blob keys they referenced."""
    blob_keys: List[str] = []

    prompts = db.query(Prompt).filter(Prompt.user_id == user.id).all()
    for prompt in prompts:
        responses = db.query(Response).filter(Response.prompt_id == prompt.id).all()
        blob_keys.extend(r.content_blob_key for r in responses if r.content_blob_key)
        db.query(Response).filter(Response.prompt_id == prompt.id).delete(synchronize_session=False)
        if prompt.content_blob_key:
            blob_keys.append(prompt.content_blob_key)

    db.query(Prompt).filter(Prompt.user_id == user.id).delete(synchronize_session=False)
    db.query(User).filter(User.id == user.id).delete(synchronize_session=False)
    return blob_keys


def _delete_blobs(blob_storage: StorageBackend, keys: List[str]) -> int:
    failures = 0
    for key in keys:
        try:
            blob_storage.delete_content(key)
        except (BlobStorageError, OSError) as e:
            failures += 1
            logger.error(f"Failed to delete blob {key} during purge: {e}")
    return failures


def purge_expired_accounts(db: Session, blob_storage: StorageBackend, now: Optional[datetime] = None) -> int:
    """
    Permanently delete accounts soft-deleted more than RETENTION_DAYS ago.

    Args:
        db: Database session
        blob_storage: Backend holding prompt/response content
        now: Reference time (defaults to the current UTC time)

    Returns:
        int: Number of user accounts deleted
    """
    users = find_expired_accounts(db, now)
    if not users:
        logger.info("Purge found no accounts past retention")
        return 0

    deleted_count = 0
    for user in users:
        user_id = user.id
        try:
            blob_keys = _purge_user_rows(db, user)
            db.commit()
        except Exception as e:
            db.rollback()
            # Still matches the selection, so the next run retries it
            logger.error(f"Failed to purge user {user_id}: {e}", exc_info=True)
            continue

        deleted_count += 1
        failures = _delete_blobs(blob_storage, blob_keys)
        logger.info(
            f"Purged user {user_id} ({len(blob_keys)} blobs, {failures} blob deletions failed)"
        )

    logger.info(f"Purge complete: {deleted_count} accounts deleted")
    return deleted_count
