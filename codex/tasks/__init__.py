"""
Celery tasks package.

Tasks are organized by domain:
- email_tasks: transactional email delivery
- account_tasks: scheduled account purge
"""

from codex.core.celery_app import celery_app  # noqa: F401  binds shared tasks to the app
from codex.tasks import email_tasks, account_tasks

__all__ = ["email_tasks", "account_tasks"]
