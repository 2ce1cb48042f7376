"""
Celery tasks for the user directory.

Scheduled via CELERY_BEAT_SCHEDULE in config/settings.py.
"""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def mark_stale_users_offline() -> int:
    """
    Expire presence for users who stopped sending online pulses.

    Returns:
        Number of users switched to offline
    """
    from users.services import UserService

    count = UserService.mark_stale_users_offline()
    if count:
        logger.info(f"Marked {count} stale users offline")
    return count
