"""
Periodic account maintenance tasks.
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(name="purge_expired_accounts")
def purge_expired_accounts_task():
    """
    Delete accounts whose 7-day retention window has elapsed.

    Scheduled daily by Celery Beat (see codex.core.celery_app).
    """
    from codex.core.database import SessionLocal
    from codex.core.purge import purge_expired_accounts
    from codex.core.storage import get_storage

    db = SessionLocal()
    try:
        deleted_count = purge_expired_accounts(db, get_storage())
        logger.info(f"Scheduled purge deleted {deleted_count} accounts")
        return {"status": "success", "deleted_count": deleted_count}
    except Exception as e:
        logger.error(f"Error purging expired accounts: {str(e)}")
        raise
    finally:
        db.close()
