"""Shared view utilities: POST-only guard, role checks, collaborator factories."""

import logging
from collections.abc import Callable
from functools import wraps

from django.core.exceptions import PermissionDenied
from django.http import Http404, HttpRequest

from core.auth_context import AuthIdentity
from core.identity_provider import IdentityProviderClient
from core.roster_api import MembershipAPIClient

logger = logging.getLogger(__name__)


def require_post_or_404(request: HttpRequest, *, message: str = "Not found") -> None:
    """Raise a 404 when a mutating endpoint is accessed with a non-POST method."""

    if request.method != "POST":
        raise Http404(message)


def post_only_404[**P, R](view_func: Callable[P, R]) -> Callable[P, R]:
    """Decorator variant of ``require_post_or_404`` for view functions."""

    @wraps(view_func)
    def _wrapped(*args: P.args, **kwargs: P.kwargs) -> R:
        request = args[0]
        require_post_or_404(request)
        return view_func(*args, **kwargs)

    return _wrapped


def require_role[**P, R](*roles: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    def _decorator(view_func: Callable[P, R]) -> Callable[P, R]:
        @wraps(view_func)
        def _wrapped(*args: P.args, **kwargs: P.kwargs) -> R:
            request = args[0]
            if not request.auth_context.has_role(*roles):
                raise PermissionDenied
            return view_func(*args, **kwargs)

        return _wrapped

    return _decorator


def current_identity(request: HttpRequest) -> AuthIdentity:
    identity = request.auth_context.identity
    if identity is None:
        raise PermissionDenied
    return identity


def get_api_client() -> MembershipAPIClient:
    return MembershipAPIClient.from_settings()


def get_identity_provider() -> IdentityProviderClient:
    return IdentityProviderClient.from_settings()


def busy_owner(request: HttpRequest) -> str:
    """Stable per-visitor key for upload busy flags."""
    if not request.session.session_key:
        request.session.save()
    return str(request.session.session_key)


def _normalize_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()
