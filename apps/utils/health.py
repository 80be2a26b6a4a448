import logging

from django.core.cache import cache
from django.db import connection, DatabaseError
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    components = {"db": "unknown", "cache": "unknown"}
    healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        components["db"] = "ok"
    except DatabaseError as exc:
        logger.error("Health check: database unavailable: %s", exc)
        components["db"] = "error"
        healthy = False

    try:
        cache.set("health:ping", "pong", timeout=5)
        components["cache"] = "ok" if cache.get("health:ping") == "pong" else "error"
    except Exception as exc:  # cache backends raise their own client errors
        logger.error("Health check: cache unavailable: %s", exc)
        components["cache"] = "error"

    if components["cache"] != "ok":
        healthy = False

    return JsonResponse(
        {"status": "ok" if healthy else "error", "components": components},
        status=200 if healthy else 503,
    )
