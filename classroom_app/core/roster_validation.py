import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from django.conf import settings

from core.roster_errors import NoValidRows

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_PASSWORD_LENGTH: int = 6


@dataclass(frozen=True)
class MembershipRequest:
    email: str
    password: str | None = None


@dataclass(frozen=True)
class ValidationPolicy:
    """Rules a membership request must satisfy for one call site.

    Staff single-add and staff bulk-add historically disagree on the email
    rule (single-add insists on a Gmail address). Both rules are expressed as
    policies so each call site states the one it applies.
    """

    name: str
    require_password: bool = False
    min_password_length: int = MIN_PASSWORD_LENGTH
    required_email_domain: str = ""
    no_valid_rows_message: str = ""

    def email_error(self, email: str) -> str | None:
        if not email:
            return "Email is required."
        if not _EMAIL_RE.match(email):
            return "Please enter a valid email address."
        domain = self.required_email_domain.strip().lower()
        if domain and not email.endswith(f"@{domain}"):
            return f"Please enter a valid @{domain} address."
        return None

    def password_error(self, password: str | None) -> str | None:
        if not self.require_password:
            return None
        if not password or len(password) < self.min_password_length:
            return f"Password must be at least {self.min_password_length} characters."
        return None


SINGLE_STUDENT_POLICY = ValidationPolicy(
    name="class_single",
    required_email_domain="gmail.com",
)

ACCOUNT_POLICY = ValidationPolicy(
    name="account",
    require_password=True,
    no_valid_rows_message=(
        "No valid rows in the file! Ensure each row has a valid email and password "
        f"(min {MIN_PASSWORD_LENGTH} characters)."
    ),
)


def class_bulk_policy() -> ValidationPolicy:
    domain = str(settings.ROSTER_BULK_REQUIRED_EMAIL_DOMAIN or "").strip().lower()
    message = f"No valid @{domain} emails found in the file." if domain else "No valid emails found in the file."
    return ValidationPolicy(
        name="class_bulk",
        required_email_domain=domain,
        no_valid_rows_message=message,
    )


def normalize_email(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def validate_membership_request(
    email: object,
    password: object = None,
    *,
    policy: ValidationPolicy,
) -> MembershipRequest | None:
    if not isinstance(email, str):
        return None

    normalized_email = normalize_email(email)
    if policy.email_error(normalized_email) is not None:
        return None

    normalized_password = password.strip() if isinstance(password, str) else None
    if policy.password_error(normalized_password) is not None:
        return None

    return MembershipRequest(email=normalized_email, password=normalized_password or None)


def normalize_roster_records(
    records: Iterable[Mapping[str, object]],
    *,
    policy: ValidationPolicy,
) -> list[MembershipRequest]:
    """Filter raw roster records down to valid membership requests.

    Rows without a string ``email`` are dropped silently. Duplicates are kept;
    enrollment dedup is the backend's job and is reported back as skipped
    emails. Raises ``NoValidRows`` when nothing survives.
    """

    requests_out: list[MembershipRequest] = []
    for record in records:
        request = validate_membership_request(
            record.get("email"),
            record.get("password"),
            policy=policy,
        )
        if request is not None:
            requests_out.append(request)

    if not requests_out:
        raise NoValidRows(policy.no_valid_rows_message)
    return requests_out


__all__ = [
    "ACCOUNT_POLICY",
    "MIN_PASSWORD_LENGTH",
    "MembershipRequest",
    "SINGLE_STUDENT_POLICY",
    "ValidationPolicy",
    "class_bulk_policy",
    "normalize_email",
    "normalize_roster_records",
    "validate_membership_request",
]
