"""
Celery utility functions for reliable task queueing.

Queueing runs in a small thread pool with a bounded wait, so an unreachable
broker slows a request by at most QUEUE_TIMEOUT_SECONDS and never fails it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Tuple
from celery import Task
from kombu import Connection

from codex.core.config import settings

logger = logging.getLogger(__name__)

QUEUE_TIMEOUT_SECONDS = 5

# Keeps broker I/O off the request thread / event loop
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="celery_queue")


def _queue_task_sync(task: Task, args: tuple, kwargs: dict) -> Tuple[bool, str, str]:
    """
    Queue a task over a fresh Kombu connection.

    Returns:
        Tuple[bool, str, str]: (success, task_id, error_message)
    """
    try:
        with Connection(settings.REDIS_URL) as conn:
            result = task.apply_async(
                args=args,
                kwargs=kwargs,
                connection=conn,
                retry=True,
                retry_policy={
                    'max_retries': 3,
                    'interval_start': 0,
                    'interval_step': 0.2,
                    'interval_max': 0.2,
                }
            )
            return (True, result.id, "")
    except Exception as e:
        return (False, "", str(e))


def queue_task_safely(task: Task, *args, **kwargs) -> bool:
    """
    Queue a Celery task without letting broker problems escape.

    Returns:
        bool: True if task was queued successfully, False otherwise

    Example:
        from codex.tasks.email_tasks import send_verification_email_task
        queue_task_safely(
            send_verification_email_task,
            to_email='user@example.com',
            verification_code='123456',
            username='jdoe'
        )
    """
    future = _executor.submit(_queue_task_sync, task, args, kwargs)
    try:
        success, task_id, error = future.result(timeout=QUEUE_TIMEOUT_SECONDS)
    except FutureTimeoutError:
        success, task_id, error = False, "", f"timed out after {QUEUE_TIMEOUT_SECONDS}s"

    if success:
        logger.info(f"Task {task.name} queued successfully: {task_id}")
        return True

    logger.error(f"Failed to queue task {task.name}: {error}")
    return False
