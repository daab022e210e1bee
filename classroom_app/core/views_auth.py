import logging

from django.contrib import messages
from django.http import HttpRequest, HttpResponse
from django.shortcuts import redirect, render
from django.utils.http import url_has_allowed_host_and_scheme

from core.auth_context import SignInRejected, authenticate
from core.forms_roster import PasswordResetRequestForm, SignInForm
from core.identity_provider import IdentityProviderError
from core.roster_api import MembershipAPIError, mask_email
from core.views_utils import current_identity, get_api_client, get_identity_provider, post_only_404

logger = logging.getLogger(__name__)


def _landing_url(role: str) -> str:
    if role == "admin":
        return "/admin/accounts/staff/"
    return "/"


def login(request: HttpRequest) -> HttpResponse:
    if request.auth_context.is_authenticated:
        return redirect(_landing_url(request.auth_context.identity.role))

    next_url = str(request.POST.get("next") or request.GET.get("next") or "")
    form = SignInForm(request.POST or None)
    if request.method == "POST":
        if not form.is_valid():
            messages.error(request, form.first_error())
        else:
            try:
                identity = authenticate(
                    form.cleaned_data["email"],
                    form.cleaned_data["password"],
                    provider=get_identity_provider(),
                    api_client=get_api_client(),
                )
            except (IdentityProviderError, SignInRejected, MembershipAPIError) as exc:
                messages.error(request, str(exc))
            else:
                request.session.cycle_key()
                request.auth_context.sign_in(identity)
                if next_url and url_has_allowed_host_and_scheme(
                    next_url,
                    allowed_hosts={request.get_host()},
                    require_https=request.is_secure(),
                ):
                    return redirect(next_url)
                return redirect(_landing_url(identity.role))

    return render(request, "core/login.html", {"form": form, "next": next_url})


@post_only_404
def logout(request: HttpRequest) -> HttpResponse:
    identity = request.auth_context.identity
    request.auth_context.sign_out()
    request.session.flush()
    if identity is not None:
        logger.info("Signed out email=%s", mask_email(identity.email))
    return redirect("login")


def password_reset(request: HttpRequest) -> HttpResponse:
    form = PasswordResetRequestForm(request.POST or None)
    if request.method == "POST":
        if not form.is_valid():
            messages.error(request, form.first_error())
        else:
            email = form.cleaned_data["email"]
            try:
                get_identity_provider().send_password_reset(email)
            except IdentityProviderError as exc:
                messages.error(request, str(exc))
            else:
                logger.info("Password reset requested email=%s", mask_email(email))
                messages.success(request, "Password reset email sent! Check your inbox.")
                return redirect("login")

    return render(request, "core/password_reset.html", {"form": form})


def home(request: HttpRequest) -> HttpResponse:
    identity = current_identity(request)
    if identity.role == "admin":
        return redirect("admin-accounts", kind="staff")

    classes = []
    try:
        if identity.role == "staff":
            classes = get_api_client().fetch_staff_classes(identity.uid)
        elif identity.role == "student":
            classes = get_api_client().fetch_student_classes(identity.uid, identity.email)
    except MembershipAPIError as exc:
        messages.error(request, str(exc))

    return render(request, "core/home.html", {"classes": classes})
