import logging

from django.contrib import messages
from django.http import HttpRequest, HttpResponse
from django.shortcuts import redirect, render

from core.forms_roster import AddStudentForm, RosterUploadForm
from core.roster_api import MembershipAPIError, StudentEmailsBatch, emails_of, mask_email
from core.roster_errors import RosterImportError
from core.roster_import import (
    ImportBusyFlag,
    RosterImport,
    RosterState,
    load_roster_state,
    store_roster_state,
)
from core.roster_validation import MembershipRequest, class_bulk_policy
from core.views_utils import (
    _normalize_str,
    busy_owner,
    current_identity,
    get_api_client,
    post_only_404,
    require_role,
)

logger = logging.getLogger(__name__)

_PEOPLE_TABS: tuple[str, ...] = ("all", "staff", "students")


def _class_roster_key(class_id: str) -> str:
    return f"class:{class_id}"


def _class_name_session_key(class_id: str) -> str:
    return f"class_name:{class_id}"


def _filter_people(state: RosterState, *, tab: str, query: str) -> list:
    people = list(state)
    if tab == "staff":
        people = [p for p in people if p.role != "student"]
    elif tab == "students":
        people = [p for p in people if p.role == "student"]

    q = query.lower()
    if q:
        people = [p for p in people if q in p.display_name.lower() or q in p.email.lower()]
    return people


@require_role("staff")
def class_people(request: HttpRequest, class_id: str) -> HttpResponse:
    identity = current_identity(request)
    roster_key = _class_roster_key(class_id)

    state = load_roster_state(request.session, roster_key)
    class_name = str(request.session.get(_class_name_session_key(class_id)) or "")
    if state is None or request.GET.get("refresh") == "1":
        try:
            listing = get_api_client().fetch_people(class_id, identity.uid)
        except MembershipAPIError as exc:
            messages.error(request, str(exc))
            state = state or RosterState()
        else:
            state = RosterState(listing.people)
            class_name = listing.class_name or class_name
            if not class_name:
                try:
                    class_name = get_api_client().fetch_class(class_id, identity.uid).name
                except MembershipAPIError as exc:
                    logger.warning("Class details unavailable class_id=%s error=%s", class_id, exc)
            store_roster_state(request.session, roster_key, state)
            request.session[_class_name_session_key(class_id)] = class_name

    tab = _normalize_str(request.GET.get("tab")) or "all"
    if tab not in _PEOPLE_TABS:
        tab = "all"
    query = _normalize_str(request.GET.get("q"))

    return render(
        request,
        "core/class_people.html",
        {
            "class_id": class_id,
            "class_name": class_name or "Class",
            "people": _filter_people(state, tab=tab, query=query),
            "people_count": len(state),
            "tab": tab,
            "tabs": _PEOPLE_TABS,
            "q": query,
            "add_form": AddStudentForm(),
            "upload_form": RosterUploadForm(),
            "bulk_busy": ImportBusyFlag(busy_owner(request), roster_key).is_set(),
        },
    )


@post_only_404
@require_role("staff")
def class_people_add(request: HttpRequest, class_id: str) -> HttpResponse:
    identity = current_identity(request)
    form = AddStudentForm(request.POST)
    if not form.is_valid():
        messages.error(request, form.first_error())
        return redirect("class-people", class_id=class_id)

    email = form.cleaned_data["email"]
    try:
        added = get_api_client().add_student(class_id, identity.uid, email)
    except MembershipAPIError as exc:
        messages.error(request, str(exc))
        return redirect("class-people", class_id=class_id)

    roster_key = _class_roster_key(class_id)
    state = load_roster_state(request.session, roster_key)
    if state is not None and added.id not in state:
        state.append(added)
        store_roster_state(request.session, roster_key, state)

    logger.info("Student added class_id=%s email=%s", class_id, mask_email(email))
    messages.success(request, "Student added successfully!")
    return redirect("class-people", class_id=class_id)


@post_only_404
@require_role("staff")
def class_people_bulk(request: HttpRequest, class_id: str) -> HttpResponse:
    identity = current_identity(request)
    form = RosterUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        messages.error(request, "No student CSV file selected.")
        return redirect("class-people", class_id=class_id)

    roster_key = _class_roster_key(class_id)
    stored = load_roster_state(request.session, roster_key)
    state = stored if stored is not None else RosterState()

    def _payload(batch: list[MembershipRequest]) -> StudentEmailsBatch:
        return StudentEmailsBatch(class_id=class_id, staff_id=identity.uid, emails=emails_of(batch))

    upload = form.cleaned_data["roster_file"]
    workflow = RosterImport(
        client=get_api_client(),
        policy=class_bulk_policy(),
        build_payload=_payload,
        busy_flag=ImportBusyFlag(busy_owner(request), roster_key),
    )
    try:
        result = workflow.run(upload, filename=upload.name, state=state)
    except RosterImportError as exc:
        messages.error(request, exc.user_message)
        return redirect("class-people", class_id=class_id)

    if stored is not None:
        store_roster_state(request.session, roster_key, state)
    messages.success(request, result.message)
    return redirect("class-people", class_id=class_id)


@post_only_404
@require_role("staff")
def class_people_remove(request: HttpRequest, class_id: str, person_id: str) -> HttpResponse:
    identity = current_identity(request)
    try:
        get_api_client().remove_person(class_id, person_id, identity.uid)
    except MembershipAPIError as exc:
        messages.error(request, str(exc))
        return redirect("class-people", class_id=class_id)

    roster_key = _class_roster_key(class_id)
    state = load_roster_state(request.session, roster_key)
    if state is not None:
        state.remove(identity_id=person_id)
        store_roster_state(request.session, roster_key, state)

    messages.success(request, "Person removed successfully.")
    return redirect("class-people", class_id=class_id)


@require_role("student")
def student_class_people(request: HttpRequest, class_id: str) -> HttpResponse:
    """Read-only people list for an enrolled student."""
    identity = current_identity(request)
    client = get_api_client()
    try:
        if not client.is_student_enrolled(class_id, identity.uid, identity.email):
            messages.error(request, "You are not enrolled in this class")
            return redirect("home")
        listing = client.fetch_student_people(class_id, identity.uid, identity.email)
    except MembershipAPIError as exc:
        messages.error(request, str(exc))
        return redirect("home")

    class_name = listing.class_name
    if not class_name:
        try:
            classes = client.fetch_student_classes(identity.uid, identity.email)
        except MembershipAPIError as exc:
            logger.warning("Class details unavailable class_id=%s error=%s", class_id, exc)
        else:
            class_name = next((c.name for c in classes if c.id == class_id), "")

    state = RosterState(listing.people)
    tab = _normalize_str(request.GET.get("tab")) or "all"
    if tab not in _PEOPLE_TABS:
        tab = "all"
    query = _normalize_str(request.GET.get("q"))

    return render(
        request,
        "core/class_people.html",
        {
            "class_id": class_id,
            "class_name": class_name or "Class",
            "people": _filter_people(state, tab=tab, query=query),
            "people_count": len(state),
            "tab": tab,
            "tabs": _PEOPLE_TABS,
            "q": query,
            "read_only": True,
        },
    )
