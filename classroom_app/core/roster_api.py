"""HTTP client for the LMS backend's class, people, account and chat endpoints.

The backend is the source of truth for enrollment. This module only speaks
its wire format and turns responses into small immutable DTOs; callers own
any state built from them.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, override

import requests
from django.conf import settings

from core.roster_validation import MembershipRequest

logger = logging.getLogger(__name__)

AccountKind = Literal["staff", "student"]

ACCOUNT_KINDS: tuple[str, ...] = ("staff", "student")

_ACCOUNT_COLLECTIONS: dict[str, str] = {
    "staff": "staff",
    "student": "students",
}

_NAME_SPLITTER = re.compile(r"[0-9._-]+")


class MembershipAPIError(RuntimeError):
    """Raised when the LMS backend rejects a call or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    display_name: str
    role: str = "student"


@dataclass(frozen=True)
class ImportOutcome:
    added: tuple[Identity, ...]
    skipped_emails: tuple[str, ...]

    def restricted_to(self, emails: Iterable[str]) -> "ImportOutcome":
        """Drop anything the backend reported that was never submitted."""
        allowed = {str(email).strip().lower() for email in emails}
        return ImportOutcome(
            added=tuple(identity for identity in self.added if identity.email in allowed),
            skipped_emails=tuple(email for email in self.skipped_emails if email in allowed),
        )


@dataclass(frozen=True)
class ClassSummary:
    id: str
    name: str
    section: str
    teacher: str


@dataclass(frozen=True)
class PeopleListing:
    class_name: str
    people: list[Identity]


@dataclass(frozen=True)
class ChatMessage:
    id: str
    sender_id: str
    sender_name: str
    sender_email: str
    user_type: str
    text: str
    timestamp: str


@dataclass(frozen=True)
class StudentEmailsBatch:
    """Staff adding existing student accounts to one class."""

    class_id: str
    staff_id: str
    emails: tuple[str, ...]


@dataclass(frozen=True)
class UserAccountsBatch:
    """Admin creating staff or student accounts in bulk."""

    kind: AccountKind
    users: tuple[MembershipRequest, ...]


type BulkImportPayload = StudentEmailsBatch | UserAccountsBatch


def display_name_from_email(email: str) -> str:
    """Derive a readable name from an email local part (``jane.doe42@x`` -> ``Jane Doe``)."""
    local = str(email or "").split("@", 1)[0]
    words = [part[:1].upper() + part[1:] for part in _NAME_SPLITTER.split(local) if part.strip()]
    return " ".join(words).strip() or "Unknown User"


def mask_email(email: str) -> str:
    local, _, domain = str(email or "").partition("@")
    if not domain:
        return "***"
    return f"{local[:2]}***@{domain}"


def server_error_detail(response: requests.Response) -> str:
    """Return the backend's ``error`` (or ``message``) field, else an empty string."""
    try:
        data = response.json()
    except ValueError:
        return ""
    if not isinstance(data, dict):
        return ""
    for key in ("error", "message"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _str_field(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def identity_from_payload(data: dict[str, Any], *, default_role: str = "student") -> Identity | None:
    email = _str_field(data, "email").lower()
    identity_id = _str_field(data, "studentId", "id", "_id", "uid") or email
    if not identity_id:
        return None
    name = _str_field(data, "name", "displayName")
    return Identity(
        id=identity_id,
        email=email,
        display_name=name or display_name_from_email(email),
        role=_str_field(data, "role") or default_role,
    )


def _identities(items: object, *, default_role: str) -> list[Identity]:
    if not isinstance(items, list):
        return []
    out: list[Identity] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        identity = identity_from_payload(item, default_role=default_role)
        if identity is not None:
            out.append(identity)
    return out


def parse_import_outcome(data: object, *, added_key: str, default_role: str) -> ImportOutcome:
    body = data if isinstance(data, dict) else {}
    added = _identities(body.get(added_key), default_role=default_role)
    added_emails = {identity.email for identity in added}

    skipped_raw = body.get("skippedEmails")
    skipped: list[str] = []
    if isinstance(skipped_raw, list):
        for value in skipped_raw:
            email = str(value or "").strip().lower()
            if email and email not in added_emails:
                skipped.append(email)

    return ImportOutcome(added=tuple(added), skipped_emails=tuple(skipped))


class _TimeoutSession(requests.Session):
    def __init__(self, default_timeout: float) -> None:
        super().__init__()
        self.default_timeout = default_timeout

    @override
    def request(self, method: str, url: str, **kwargs: object) -> requests.Response:
        if "timeout" not in kwargs or kwargs.get("timeout") is None:
            kwargs["timeout"] = self.default_timeout
        return super().request(method, url, **kwargs)


class MembershipAPIClient:
    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or _TimeoutSession(timeout)

    @classmethod
    def from_settings(cls) -> "MembershipAPIClient":
        return cls(settings.LMS_API_BASE_URL, timeout=settings.LMS_API_TIMEOUT_SECONDS)

    def _request(self, method: str, path: str, *, fallback_message: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as exc:
            logger.warning("LMS API transport failure method=%s path=%s error=%s", method, path, exc)
            raise MembershipAPIError(fallback_message) from exc

        if not response.ok:
            detail = server_error_detail(response)
            logger.warning(
                "LMS API rejected request method=%s path=%s status=%s detail=%r",
                method,
                path,
                response.status_code,
                detail,
            )
            raise MembershipAPIError(detail or fallback_message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise MembershipAPIError(fallback_message, status_code=response.status_code) from exc

    # --- classes and people ---------------------------------------------

    def fetch_staff_classes(self, staff_id: str) -> list[ClassSummary]:
        data = self._request(
            "GET",
            "/api/classes",
            fallback_message="Failed to fetch classes.",
            params={"staffId": staff_id},
        )
        return _class_summaries(data)

    def fetch_student_classes(self, student_id: str, email: str) -> list[ClassSummary]:
        data = self._request(
            "GET",
            f"/api/classes/student/{student_id}",
            fallback_message="Failed to fetch classes.",
            params={"email": email},
        )
        return _class_summaries(data)

    def is_student_enrolled(self, class_id: str, student_id: str, email: str) -> bool:
        data = self._request(
            "GET",
            f"/api/classes/{class_id}/students/{student_id}",
            fallback_message="Failed to verify enrollment. Please try again.",
            params={"email": email},
        )
        return isinstance(data, dict) and bool(data.get("isEnrolled"))

    def fetch_class(self, class_id: str, staff_id: str) -> ClassSummary:
        data = self._request(
            "GET",
            f"/api/classes/{class_id}/staff/{staff_id}",
            fallback_message="Failed to load class details. Please try again.",
        )
        raw = data.get("class") if isinstance(data, dict) else None
        info = raw if isinstance(raw, dict) else {}
        return ClassSummary(
            id=str(class_id),
            name=_str_field(info, "name") or "Untitled class",
            section=_str_field(info, "section"),
            teacher=_str_field(info, "teacher"),
        )

    def fetch_people(self, class_id: str, staff_id: str) -> PeopleListing:
        data = self._request(
            "GET",
            f"/api/classes/{class_id}/people/staff/{staff_id}",
            fallback_message="Failed to load class members. Please try again.",
        )
        body = data if isinstance(data, dict) else {}
        return PeopleListing(
            class_name=_str_field(body, "className"),
            people=_identities(body.get("people"), default_role="student"),
        )

    def fetch_student_people(self, class_id: str, student_id: str, email: str) -> PeopleListing:
        data = self._request(
            "GET",
            f"/api/classes/{class_id}/people/student/{student_id}",
            fallback_message="Failed to load class members. Please try again.",
            params={"email": email},
        )
        body = data if isinstance(data, dict) else {}
        if not body.get("success"):
            raise MembershipAPIError(_str_field(body, "error") or "Failed to fetch people")
        return PeopleListing(
            class_name=_str_field(body, "className"),
            people=_identities(body.get("people"), default_role="student"),
        )

    def add_student(self, class_id: str, staff_id: str, email: str) -> Identity:
        data = self._request(
            "POST",
            f"/api/classes/{class_id}/people/staff/{staff_id}",
            fallback_message="Failed to add student. Please try again.",
            json={"studentEmail": email},
        )
        created = data.get("data") if isinstance(data, dict) else None
        created = created if isinstance(created, dict) else {}
        identity = identity_from_payload({"email": email, **created}, default_role="student")
        if identity is None:
            raise MembershipAPIError("Failed to add student. Please try again.")
        return identity

    def remove_person(self, class_id: str, person_id: str, staff_id: str) -> None:
        self._request(
            "DELETE",
            f"/api/classes/{class_id}/people/{person_id}/staff/{staff_id}",
            fallback_message="Failed to remove person. Please try again.",
        )

    def submit_bulk_import(self, payload: BulkImportPayload) -> ImportOutcome:
        """Send one whole batch in a single call and parse the backend's verdict."""

        match payload:
            case StudentEmailsBatch(class_id=class_id, staff_id=staff_id, emails=emails):
                data = self._request(
                    "POST",
                    f"/api/classes/{class_id}/people/bulk/staff/{staff_id}",
                    fallback_message="Failed to add students. Please try again.",
                    json={"studentEmails": list(emails)},
                )
                return parse_import_outcome(data, added_key="addedStudents", default_role="student")
            case UserAccountsBatch(kind=kind, users=users):
                data = self._request(
                    "POST",
                    "/api/bulk-users",
                    fallback_message=f"Bulk {kind} upload failed. Please try again.",
                    params={"type": kind},
                    json={"users": [{"email": user.email, "password": user.password} for user in users]},
                )
                return parse_import_outcome(data, added_key="addedUsers", default_role=kind)
        raise TypeError(f"Unsupported bulk import payload: {type(payload).__name__}")

    # --- accounts (admin) -------------------------------------------------

    def list_accounts(self, kind: AccountKind) -> list[Identity]:
        data = self._request(
            "GET",
            f"/api/{_ACCOUNT_COLLECTIONS[kind]}",
            fallback_message="Failed to fetch user data.",
        )
        return [identity for identity in _identities(data, default_role=kind) if identity.email]

    def list_account_emails(self, kind: AccountKind) -> set[str]:
        return {identity.email for identity in self.list_accounts(kind)}

    def register_account(self, kind: AccountKind, email: str) -> None:
        self._request(
            "POST",
            f"/api/{_ACCOUNT_COLLECTIONS[kind]}",
            fallback_message=f"Failed to add {kind} user.",
            json={"email": email},
        )

    def delete_account(self, kind: AccountKind, email: str) -> None:
        self._request(
            "DELETE",
            "/api/users",
            fallback_message="Failed to delete user.",
            json={"email": email, "type": kind},
        )

    # --- chat ---------------------------------------------------------------

    def fetch_messages(self, class_id: str) -> list[ChatMessage]:
        data = self._request(
            "GET",
            f"/api/{class_id}/messages",
            fallback_message="Failed to load messages. Please try again.",
        )
        body = data if isinstance(data, dict) else {}
        if not body.get("success"):
            raise MembershipAPIError(_str_field(body, "error") or "Failed to fetch messages")
        raw_messages = body.get("messages")
        if not isinstance(raw_messages, list):
            return []
        return [_chat_message(item) for item in raw_messages if isinstance(item, dict)]

    def post_message(
        self,
        class_id: str,
        *,
        sender_id: str,
        sender_email: str,
        sender_name: str,
        user_type: str,
        text: str,
    ) -> ChatMessage:
        data = self._request(
            "POST",
            f"/api/{class_id}/messages",
            fallback_message="Failed to send message. Please try again.",
            json={
                "senderId": sender_id,
                "senderEmail": sender_email,
                "senderName": sender_name,
                "userType": user_type,
                "text": text,
            },
        )
        body = data if isinstance(data, dict) else {}
        message = body.get("message")
        if not body.get("success") or not isinstance(message, dict):
            raise MembershipAPIError(_str_field(body, "error") or "Failed to send message")
        return _chat_message(message)


def _class_summaries(data: object) -> list[ClassSummary]:
    raw_classes = data.get("classes") if isinstance(data, dict) else None
    if not isinstance(raw_classes, list):
        return []
    classes: list[ClassSummary] = []
    for item in raw_classes:
        if not isinstance(item, dict):
            continue
        class_id = _str_field(item, "_id", "id")
        if not class_id:
            continue
        classes.append(
            ClassSummary(
                id=class_id,
                name=_str_field(item, "name") or "Untitled class",
                section=_str_field(item, "section"),
                teacher=_str_field(item, "teacher"),
            )
        )
    return classes


def _chat_message(data: dict[str, Any]) -> ChatMessage:
    return ChatMessage(
        id=_str_field(data, "_id", "id"),
        sender_id=_str_field(data, "senderId"),
        sender_name=_str_field(data, "senderName") or display_name_from_email(_str_field(data, "senderEmail")),
        sender_email=_str_field(data, "senderEmail"),
        user_type=_str_field(data, "userType"),
        text=str(data.get("text") or ""),
        timestamp=_str_field(data, "timestamp"),
    )


def emails_of(requests_: Sequence[MembershipRequest]) -> tuple[str, ...]:
    return tuple(request.email for request in requests_)


__all__ = [
    "ACCOUNT_KINDS",
    "AccountKind",
    "BulkImportPayload",
    "ChatMessage",
    "ClassSummary",
    "Identity",
    "ImportOutcome",
    "MembershipAPIClient",
    "MembershipAPIError",
    "PeopleListing",
    "StudentEmailsBatch",
    "UserAccountsBatch",
    "display_name_from_email",
    "emails_of",
    "identity_from_payload",
    "mask_email",
    "parse_import_outcome",
    "server_error_detail",
]
