import logging
import threading
from collections.abc import Callable, Iterator, MutableMapping
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Self

from django.conf import settings

from core.identity_provider import IdentityProviderClient, IdentityProviderError
from core.roster_api import MembershipAPIClient, mask_email

logger = logging.getLogger(__name__)

SESSION_IDENTITY_KEY = "_classroom_identity"

ROLES: tuple[str, ...] = ("admin", "staff", "student")

type AuthListener = Callable[["AuthIdentity | None"], None]


@dataclass(frozen=True)
class AuthIdentity:
    uid: str
    email: str
    role: str
    display_name: str = ""

    @property
    def name(self) -> str:
        return self.display_name or self.email.split("@", 1)[0] or "Unknown"


class AuthContext:
    """The signed-in identity for one request or one long-running task.

    Components that care about sign-in state receive this object explicitly
    and subscribe for the span they need it; ``subscription()`` guarantees the
    listener is detached when that span ends.
    """

    def __init__(self, identity: AuthIdentity | None = None) -> None:
        self._identity = identity
        self._listeners: list[AuthListener] = []
        self._lock = threading.Lock()

    @property
    def identity(self) -> AuthIdentity | None:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    def has_role(self, *roles: str) -> bool:
        return self._identity is not None and self._identity.role in roles

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register ``listener`` and call it once with the current identity.

        Returns the matching unsubscribe callable; calling it twice is a no-op.
        """
        with self._lock:
            self._listeners.append(listener)
        listener(self._identity)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    @contextmanager
    def subscription(self, listener: AuthListener) -> Iterator[Self]:
        unsubscribe = self.subscribe(listener)
        try:
            yield self
        finally:
            unsubscribe()

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _set_identity(self, identity: AuthIdentity | None) -> None:
        self._identity = identity
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(identity)

    def sign_in(self, identity: AuthIdentity) -> None:
        self._set_identity(identity)

    def sign_out(self) -> None:
        self._set_identity(None)

    @classmethod
    def from_session(cls, session: MutableMapping[str, Any]) -> Self:
        data = session.get(SESSION_IDENTITY_KEY)
        if not isinstance(data, dict):
            return cls()
        uid = str(data.get("uid") or "").strip()
        role = str(data.get("role") or "").strip()
        if not uid or role not in ROLES:
            return cls()
        return cls(
            AuthIdentity(
                uid=uid,
                email=str(data.get("email") or ""),
                role=role,
                display_name=str(data.get("display_name") or ""),
            )
        )

    def save_to(self, session: MutableMapping[str, Any]) -> None:
        if self._identity is None:
            session.pop(SESSION_IDENTITY_KEY, None)
            return
        session[SESSION_IDENTITY_KEY] = asdict(self._identity)


def resolve_role(email: str, *, api_client: MembershipAPIClient) -> str | None:
    normalized = str(email or "").strip().lower()
    if not normalized:
        return None
    admin_email = str(settings.ADMIN_EMAIL or "").strip().lower()
    if admin_email and normalized == admin_email:
        return "admin"
    if normalized in api_client.list_account_emails("staff"):
        return "staff"
    if normalized in api_client.list_account_emails("student"):
        return "student"
    return None


class SignInRejected(RuntimeError):
    """Credentials were fine but the account has no role in this application."""


def authenticate(
    email: str,
    password: str,
    *,
    provider: IdentityProviderClient,
    api_client: MembershipAPIClient,
) -> AuthIdentity:
    """Sign in with the identity provider and resolve the application role.

    Raises ``IdentityProviderError`` for bad credentials or an unavailable
    provider and ``SignInRejected`` for accounts unknown to the backend.
    """
    account = provider.sign_in(email, password)
    role = resolve_role(account.email, api_client=api_client)
    if role is None:
        logger.info("Sign-in rejected: no role email=%s", mask_email(account.email))
        raise SignInRejected("Account not found. Please contact admin.")

    logger.info("Signed in email=%s role=%s", mask_email(account.email), role)
    return AuthIdentity(uid=account.uid, email=account.email, role=role, display_name=account.display_name)


__all__ = [
    "AuthContext",
    "AuthIdentity",
    "AuthListener",
    "IdentityProviderError",
    "ROLES",
    "SESSION_IDENTITY_KEY",
    "SignInRejected",
    "authenticate",
    "resolve_role",
]
