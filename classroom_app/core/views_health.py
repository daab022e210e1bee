import logging

from django.core.cache import cache
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)

_READINESS_CACHE_KEY = "readyz:check"


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    try:
        cache.set(_READINESS_CACHE_KEY, "ok", timeout=5)
        if cache.get(_READINESS_CACHE_KEY) != "ok":
            raise RuntimeError("cache round trip failed")
    except Exception as exc:
        logger.exception("Health check readyz failed")
        return JsonResponse({"status": "not ready", "error": str(exc)}, status=503)

    return JsonResponse({"status": "ready", "cache": "ok"})
