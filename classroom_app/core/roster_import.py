"""Bulk roster upload: parse, validate, submit once, merge the verdict.

One upload runs start to finish inside a single request. The roster shown to
the user is only touched after the backend confirms which identities were
added; any failure leaves it exactly as it was.
"""

import logging
import uuid
from collections.abc import Callable, Iterable, Iterator, MutableMapping
from dataclasses import dataclass, field
from typing import IO, Any, Self

from django.conf import settings
from django.core.cache import cache

from core.roster_api import (
    BulkImportPayload,
    Identity,
    ImportOutcome,
    MembershipAPIClient,
    MembershipAPIError,
)
from core.roster_errors import ImportInProgress, RosterImportError, SubmissionFailed
from core.roster_files import extract_roster_records, roster_file_extension
from core.roster_validation import MembershipRequest, ValidationPolicy, normalize_roster_records

logger = logging.getLogger(__name__)

_ROSTER_SESSION_KEY_PREFIX = "roster_state"
_BUSY_CACHE_KEY_PREFIX = "roster_import_busy"


class RosterState:
    """Ordered roster for one class or account list, keyed by identity id."""

    def __init__(self, members: Iterable[Identity] = ()) -> None:
        self._members: list[Identity] = list(members)

    @property
    def members(self) -> tuple[Identity, ...]:
        return tuple(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[Identity]:
        return iter(tuple(self._members))

    def __contains__(self, identity_id: object) -> bool:
        return any(member.id == identity_id for member in self._members)

    def get(self, identity_id: str) -> Identity | None:
        for member in self._members:
            if member.id == identity_id:
                return member
        return None

    def replace(self, members: Iterable[Identity]) -> None:
        self._members = list(members)

    def append(self, identity: Identity) -> None:
        self._members.append(identity)

    def extend(self, identities: Iterable[Identity]) -> None:
        self._members.extend(identities)

    def remove(self, *, identity_id: str = "", email: str = "") -> list[Identity]:
        normalized_email = str(email or "").strip().lower()
        removed: list[Identity] = []
        kept: list[Identity] = []
        for member in self._members:
            if (identity_id and member.id == identity_id) or (normalized_email and member.email == normalized_email):
                removed.append(member)
            else:
                kept.append(member)
        self._members = kept
        return removed

    def to_session(self) -> list[dict[str, str]]:
        return [
            {"id": m.id, "email": m.email, "display_name": m.display_name, "role": m.role}
            for m in self._members
        ]

    @classmethod
    def from_session(cls, data: object) -> Self:
        members: list[Identity] = []
        if isinstance(data, list):
            for item in data:
                if not isinstance(item, dict) or not item.get("id"):
                    continue
                members.append(
                    Identity(
                        id=str(item["id"]),
                        email=str(item.get("email") or ""),
                        display_name=str(item.get("display_name") or ""),
                        role=str(item.get("role") or "student"),
                    )
                )
        return cls(members)


def roster_session_key(roster_key: str) -> str:
    return f"{_ROSTER_SESSION_KEY_PREFIX}:{roster_key}"


def load_roster_state(session: MutableMapping[str, Any], roster_key: str) -> RosterState | None:
    key = roster_session_key(roster_key)
    if key not in session:
        return None
    return RosterState.from_session(session.get(key))


def store_roster_state(session: MutableMapping[str, Any], roster_key: str, state: RosterState) -> None:
    session[roster_session_key(roster_key)] = state.to_session()


class ImportBusyFlag:
    """At most one in-flight upload per owner and widget.

    Acquisition is a single ``cache.add``, so two concurrent submissions from
    the same owner cannot both win. The timeout only bounds a flag orphaned by
    a crashed worker.
    """

    def __init__(self, owner: str, widget: str, *, timeout: int | None = None) -> None:
        self.cache_key = f"{_BUSY_CACHE_KEY_PREFIX}:{owner}:{widget}"
        self.timeout = timeout if timeout is not None else settings.ROSTER_IMPORT_BUSY_TIMEOUT_SECONDS
        self._held = False

    def is_set(self) -> bool:
        return bool(cache.get(self.cache_key))

    def acquire(self) -> None:
        if not cache.add(self.cache_key, True, timeout=self.timeout):
            raise ImportInProgress()
        self._held = True

    def release(self) -> None:
        if self._held:
            cache.delete(self.cache_key)
            self._held = False

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.release()


def _count_phrase(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def summarize_import_outcome(
    outcome: ImportOutcome,
    *,
    noun: str = "student",
    plural_noun: str = "",
) -> str:
    """Human-readable summary, e.g. ``1 student added successfully. 1 email skipped (...)``."""
    plural = plural_noun or f"{noun}s"
    message = f"{_count_phrase(len(outcome.added), noun, plural)} added successfully."
    skipped = len(outcome.skipped_emails)
    if skipped:
        message += f" {_count_phrase(skipped, 'email', 'emails')} skipped (already enrolled or invalid)."
    return message


@dataclass(frozen=True)
class RosterImportResult:
    outcome: ImportOutcome
    submitted: tuple[MembershipRequest, ...]
    message: str


@dataclass
class RosterImport:
    """One upload widget's bulk-import workflow.

    ``build_payload`` picks the wire shape for the caller (class roster or
    admin accounts); ``noun``/``plural_noun`` word the summary.
    """

    client: MembershipAPIClient
    policy: ValidationPolicy
    build_payload: Callable[[list[MembershipRequest]], BulkImportPayload]
    busy_flag: ImportBusyFlag
    noun: str = "student"
    plural_noun: str = ""
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def run(self, uploaded: IO[bytes] | Any, *, filename: str, state: RosterState) -> RosterImportResult:
        outcome_label = "failed"
        rows_submitted = 0
        added_count = 0
        skipped_count = 0
        error_class = ""
        try:
            with self.busy_flag:
                extension = roster_file_extension(filename)
                records = extract_roster_records(uploaded, extension=extension)
                batch = normalize_roster_records(records, policy=self.policy)
                rows_submitted = len(batch)

                payload = self.build_payload(batch)
                try:
                    reported = self.client.submit_bulk_import(payload)
                except MembershipAPIError as exc:
                    raise SubmissionFailed(str(exc), status_code=exc.status_code) from exc

                outcome = reported.restricted_to(request.email for request in batch)
                dropped = (len(reported.added) - len(outcome.added)) + (
                    len(reported.skipped_emails) - len(outcome.skipped_emails)
                )
                if dropped:
                    logger.warning(
                        "Bulk import response named unsubmitted emails correlation_id=%s dropped=%d",
                        self.correlation_id,
                        dropped,
                    )

                state.extend(outcome.added)
                added_count = len(outcome.added)
                skipped_count = len(outcome.skipped_emails)
                outcome_label = "applied"
                return RosterImportResult(
                    outcome=outcome,
                    submitted=tuple(batch),
                    message=summarize_import_outcome(outcome, noun=self.noun, plural_noun=self.plural_noun),
                )
        except RosterImportError as exc:
            error_class = type(exc).__name__
            raise
        finally:
            logger.info(
                (
                    "event=classroom.roster.bulk_import.finished "
                    f"component=roster policy={self.policy.name} outcome={outcome_label} "
                    f"correlation_id={self.correlation_id} error={error_class or '-'} "
                    f"rows_submitted={rows_submitted} added={added_count} skipped={skipped_count}"
                ),
                extra={
                    "event": "classroom.roster.bulk_import.finished",
                    "component": "roster",
                    "policy": self.policy.name,
                    "outcome": outcome_label,
                    "correlation_id": self.correlation_id,
                    "error_class": error_class,
                    "rows_submitted": rows_submitted,
                    "added": added_count,
                    "skipped": skipped_count,
                },
            )


__all__ = [
    "ImportBusyFlag",
    "RosterImport",
    "RosterImportResult",
    "RosterState",
    "load_roster_state",
    "roster_session_key",
    "store_roster_state",
    "summarize_import_outcome",
]
