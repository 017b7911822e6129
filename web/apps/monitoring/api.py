from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from apps.orders.http_adapters import _catalog_cb


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except Exception:
        db_ok = False

    components = {"db": {"ok": db_ok}}
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        # reported only; an open breaker degrades checkout but not the process
        components["catalog"] = {"circuit": _catalog_cb.state}

    code = 200 if db_ok else 503
    return JsonResponse({"ok": db_ok, "components": components}, status=code)
