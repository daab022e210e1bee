from django.http import HttpRequest


def auth_context(request: HttpRequest) -> dict[str, object]:
    context = getattr(request, "auth_context", None)
    return {
        "auth_context": context,
        "current_identity": context.identity if context is not None else None,
    }
