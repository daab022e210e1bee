"""Admin pages for the staff and student account lists."""

import logging

from django.contrib import messages
from django.http import Http404, HttpRequest, HttpResponse
from django.shortcuts import redirect, render

from core.forms_roster import AccountForm, RosterUploadForm
from core.identity_provider import IdentityProviderError
from core.roster_api import (
    ACCOUNT_KINDS,
    AccountKind,
    Identity,
    MembershipAPIError,
    UserAccountsBatch,
    display_name_from_email,
    mask_email,
)
from core.roster_errors import RosterImportError
from core.roster_import import (
    ImportBusyFlag,
    RosterImport,
    RosterState,
    load_roster_state,
    store_roster_state,
)
from core.roster_validation import ACCOUNT_POLICY, MembershipRequest, normalize_email
from core.views_utils import (
    _normalize_str,
    busy_owner,
    get_api_client,
    get_identity_provider,
    post_only_404,
    require_role,
)

logger = logging.getLogger(__name__)

_KIND_LABELS: dict[str, str] = {"staff": "Staff", "student": "Student"}
_KIND_NOUNS: dict[str, tuple[str, str]] = {
    "staff": ("staff member", "staff members"),
    "student": ("student", "students"),
}


def _account_kind(kind: str) -> AccountKind:
    if kind not in ACCOUNT_KINDS:
        raise Http404("Unknown account list")
    return kind  # type: ignore[return-value]


def _accounts_roster_key(kind: str) -> str:
    return f"accounts:{kind}"


@require_role("admin")
def admin_accounts(request: HttpRequest, kind: str) -> HttpResponse:
    account_kind = _account_kind(kind)
    roster_key = _accounts_roster_key(account_kind)

    state = load_roster_state(request.session, roster_key)
    if state is None or request.GET.get("refresh") == "1":
        try:
            accounts = get_api_client().list_accounts(account_kind)
        except MembershipAPIError as exc:
            messages.error(request, str(exc))
            state = state or RosterState()
        else:
            state = RosterState(accounts)
            store_roster_state(request.session, roster_key, state)

    query = _normalize_str(request.GET.get("q")).lower()
    accounts_shown = [a for a in state if not query or query in a.email]

    return render(
        request,
        "core/admin_accounts.html",
        {
            "kind": account_kind,
            "kind_label": _KIND_LABELS[account_kind],
            "kinds": ACCOUNT_KINDS,
            "accounts": accounts_shown,
            "accounts_count": len(state),
            "q": query,
            "add_form": AccountForm(),
            "upload_form": RosterUploadForm(),
            "bulk_busy": ImportBusyFlag(busy_owner(request), roster_key).is_set(),
        },
    )


@post_only_404
@require_role("admin")
def admin_accounts_add(request: HttpRequest, kind: str) -> HttpResponse:
    account_kind = _account_kind(kind)
    form = AccountForm(request.POST)
    if not form.is_valid():
        messages.error(request, form.first_error())
        return redirect("admin-accounts", kind=account_kind)

    email = form.cleaned_data["email"]
    password = form.cleaned_data["password"]
    try:
        account = get_identity_provider().create_account(email, password)
        get_api_client().register_account(account_kind, email)
    except (IdentityProviderError, MembershipAPIError) as exc:
        messages.error(request, str(exc))
        return redirect("admin-accounts", kind=account_kind)

    roster_key = _accounts_roster_key(account_kind)
    state = load_roster_state(request.session, roster_key)
    if state is not None:
        state.append(
            Identity(
                id=account.uid,
                email=email,
                display_name=account.display_name or display_name_from_email(email),
                role=account_kind,
            )
        )
        store_roster_state(request.session, roster_key, state)

    logger.info("Account created kind=%s email=%s", account_kind, mask_email(email))
    messages.success(request, f"{_KIND_LABELS[account_kind]} user {email} added successfully!")
    return redirect("admin-accounts", kind=account_kind)


@post_only_404
@require_role("admin")
def admin_accounts_bulk(request: HttpRequest, kind: str) -> HttpResponse:
    account_kind = _account_kind(kind)
    form = RosterUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        messages.error(request, form.first_error())
        return redirect("admin-accounts", kind=account_kind)

    roster_key = _accounts_roster_key(account_kind)
    stored = load_roster_state(request.session, roster_key)
    state = stored if stored is not None else RosterState()

    def _payload(batch: list[MembershipRequest]) -> UserAccountsBatch:
        return UserAccountsBatch(kind=account_kind, users=tuple(batch))

    noun, plural_noun = _KIND_NOUNS[account_kind]
    upload = form.cleaned_data["roster_file"]
    workflow = RosterImport(
        client=get_api_client(),
        policy=ACCOUNT_POLICY,
        build_payload=_payload,
        busy_flag=ImportBusyFlag(busy_owner(request), roster_key),
        noun=noun,
        plural_noun=plural_noun,
    )
    try:
        result = workflow.run(upload, filename=upload.name, state=state)
    except RosterImportError as exc:
        messages.error(request, exc.user_message)
        return redirect("admin-accounts", kind=account_kind)

    if stored is not None:
        store_roster_state(request.session, roster_key, state)
    messages.success(request, result.message)
    return redirect("admin-accounts", kind=account_kind)


@post_only_404
@require_role("admin")
def admin_accounts_delete(request: HttpRequest, kind: str) -> HttpResponse:
    account_kind = _account_kind(kind)
    email = normalize_email(request.POST.get("email"))
    if not email:
        messages.error(request, "Email is required.")
        return redirect("admin-accounts", kind=account_kind)

    try:
        get_api_client().delete_account(account_kind, email)
    except MembershipAPIError as exc:
        messages.error(request, str(exc))
        return redirect("admin-accounts", kind=account_kind)

    roster_key = _accounts_roster_key(account_kind)
    state = load_roster_state(request.session, roster_key)
    if state is not None:
        state.remove(email=email)
        store_roster_state(request.session, roster_key, state)

    logger.info("Account deleted kind=%s email=%s", account_kind, mask_email(email))
    messages.success(request, f"User {email} deleted successfully.")
    return redirect("admin-accounts", kind=account_kind)
