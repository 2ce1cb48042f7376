"""
Infrastructure endpoints that sit outside the chat domain.
"""

import logging

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness/readiness check.

    The database is required; the cache (Redis, also backing the channel
    layer in deployment) is reported but does not fail the check.

    Returns:
        200 with ``{"status": "healthy", ...}`` or 503 when the database
        cannot be reached.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    status_code = 200

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        logger.exception("Health check could not reach the database")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        status_code = 503

    try:
        cache.set("health_check", "ok", timeout=1)
        connected = cache.get("health_check") == "ok"
    except Exception:
        logger.warning("Health check could not reach the cache", exc_info=True)
        connected = False
    health_status["cache"] = "connected" if connected else "disconnected"

    return JsonResponse(health_status, status=status_code)
