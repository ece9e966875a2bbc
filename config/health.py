from __future__ import annotations

from typing import Any

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse


def check_db() -> dict[str, Any]:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1;")
            cursor.fetchone()
    except Exception as exc:  # noqa: BLE001 - health must degrade, not crash
        return {"ok": False, "error": str(exc)}
    else:
        return {"ok": True}


def check_broker(url: str) -> dict[str, Any]:
    """Ping the Redis instance that fans Socket.IO emits out across processes."""

    try:
        client = redis.Redis.from_url(
            url,
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        )
        client.ping()
    except Exception as exc:  # noqa: BLE001 - health must degrade, not crash
        return {"ok": False, "error": str(exc)}
    else:
        return {"ok": True}


def check_realtime() -> dict[str, Any]:
    info: dict[str, Any] = {"path": settings.REALTIME_SOCKETIO_PATH}
    url = getattr(settings, "REDIS_URL", "")
    if not url:
        # Single process: publish helpers reach sockets directly.
        return {"ok": True, "mode": "in-process", **info}
    return {**check_broker(url), "mode": "redis", **info}


def health(request):
    components = {"db": check_db(), "realtime": check_realtime()}

    healthy = [v.get("ok", False) for v in components.values()]
    if all(healthy):
        status = "ok"
    elif any(healthy):
        status = "degraded"
    else:
        status = "down"

    return JsonResponse(
        {"status": status, "components": components},
        status=200 if status == "ok" else 503,
    )
