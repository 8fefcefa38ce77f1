"""Health endpoint: database always, inventory service when HTTP adapters are on."""

import logging

import httpx
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import inventory_circuit

logger = logging.getLogger(__name__)


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        return True
    except DatabaseError:
        logger.warning("health: database unreachable", exc_info=True)
        return False


def _inventory_ok() -> bool:
    try:
        resp = httpx.get(f"{settings.INVENTORY_BASE_URL.rstrip('/')}/health", timeout=settings.HTTP_TIMEOUT_SECS)
        return resp.status_code == 200
    except httpx.HTTPError:
        logger.warning("health: inventory unreachable", exc_info=True)
        return False


def health_view(_request):
    components = {"db": {"ok": _db_ok()}}
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        circuit = inventory_circuit().snapshot()
        # an open breaker means checkouts are skipping reservations
        ok = circuit["state"] != "OPEN" and _inventory_ok()
        components["inventory"] = {"ok": ok, "circuit": circuit["state"]}

    ok = all(c["ok"] for c in components.values())
    return JsonResponse({"ok": ok, "components": components}, status=200 if ok else 503)
