"""
Celery tasks for the chat app.

Related files:
    - services.py: TypingService

Usage:
    from chat.tasks import purge_stale_typing_indicators

    purge_stale_typing_indicators.delay()
"""

import logging

from celery import shared_task

from chat.services import TypingService

logger = logging.getLogger(__name__)


@shared_task
def purge_stale_typing_indicators() -> int:
    """
    Delete typing indicators nobody has refreshed for an hour.

    Reads already ignore indicators outside the live window; this only
    keeps the table small.

    Returns:
        Number of indicators deleted
    """
    deleted = TypingService.purge_stale_indicators()
    if deleted:
        logger.info(f"Purged {deleted} stale typing indicators")
    return deleted
