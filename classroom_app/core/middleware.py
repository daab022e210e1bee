import logging

from django.conf import settings
from django.http import JsonResponse
from django.shortcuts import redirect

from core.auth_context import AuthContext

logger = logging.getLogger(__name__)


def _wants_json_response(request) -> bool:
    """True when the client expects a JSON response (API call, .json endpoint)."""
    accept = str(request.headers.get("Accept") or "")
    content_type = str(request.content_type or "")
    return (
        request.path.endswith(".json")
        or "application/json" in accept
        or content_type.startswith("application/json")
    )


class AuthContextMiddleware:
    """Attach ``request.auth_context`` restored from the session.

    Views receive the context explicitly through the request; a sign-in or
    sign-out made during the request is written back to the session.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        context = AuthContext.from_session(request.session)
        request.auth_context = context

        stored = [context.identity]

        def _persist(identity) -> None:
            # Subscribing replays the restored identity; only changes touch the session.
            if identity == stored[0]:
                return
            stored[0] = identity
            context.save_to(request.session)

        with context.subscription(_persist):
            return self.get_response(request)


class LoginRequiredMiddleware:
    """Require a signed-in identity for everything except auth flows and health checks.

    For JSON endpoints, return a JSON 403 instead of redirecting.
    """

    def __init__(self, get_response):
        self.get_response = get_response

        self._allowed_prefixes: tuple[str, ...] = (
            settings.STATIC_URL,
            "/login/",
            "/logout/",
            "/password-reset/",
            "/favicon.ico",
            "/healthz",
            "/readyz",
        )

    def __call__(self, request):
        path = request.path

        if any(path.startswith(p) for p in self._allowed_prefixes):
            return self.get_response(request)

        if request.auth_context.is_authenticated:
            return self.get_response(request)

        if _wants_json_response(request):
            return JsonResponse({"ok": False, "error": "Authentication required."}, status=403)

        return redirect(f"{settings.LOGIN_URL}?next={request.get_full_path()}")
