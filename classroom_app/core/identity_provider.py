"""
Hosted identity provider adapter (REST identity toolkit).

Design:
- Framework-agnostic; views decide what to do with the results.
- Uses requests under the hood and maps provider error codes to short,
  user-facing messages.

Security:
- Never log passwords or tokens.
"""

import logging
from dataclasses import dataclass
from typing import Any

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

_ERROR_MESSAGES: dict[str, str] = {
    "EMAIL_EXISTS": "This email is already registered.",
    "INVALID_EMAIL": "Invalid email format.",
    "WEAK_PASSWORD": "Password is too weak.",
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled. Please contact admin.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
}

MSG_PROVIDER_UNAVAILABLE = "Sign-in is temporarily unavailable. Please try again in a few minutes."


class IdentityProviderError(RuntimeError):
    def __init__(self, message: str, *, code: str = "") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ProviderAccount:
    uid: str
    email: str
    display_name: str
    id_token: str


def _error_code(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        return ""
    message = str(error.get("message") or "")
    # Codes may carry a suffix, e.g. "WEAK_PASSWORD : Password should be at least 6 characters".
    return message.split(":", 1)[0].strip()


class IdentityProviderClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "IdentityProviderClient":
        return cls(
            settings.IDENTITY_PROVIDER_BASE_URL,
            settings.IDENTITY_PROVIDER_API_KEY,
            timeout=settings.IDENTITY_PROVIDER_TIMEOUT_SECONDS,
        )

    def _post(self, action: str, payload: dict[str, Any], *, fallback_message: str) -> dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.base_url}/accounts:{action}",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("Identity provider unreachable action=%s error=%s", action, exc)
            raise IdentityProviderError(MSG_PROVIDER_UNAVAILABLE) from exc

        if not response.ok:
            code = _error_code(response)
            logger.info("Identity provider rejected action=%s code=%s status=%s", action, code or "-", response.status_code)
            raise IdentityProviderError(_ERROR_MESSAGES.get(code, fallback_message), code=code)

        try:
            data = response.json()
        except ValueError as exc:
            raise IdentityProviderError(fallback_message) from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _account(data: dict[str, Any], email: str) -> ProviderAccount:
        uid = str(data.get("localId") or "").strip()
        if not uid:
            raise IdentityProviderError("The identity provider returned no account id.")
        return ProviderAccount(
            uid=uid,
            email=str(data.get("email") or email).strip().lower(),
            display_name=str(data.get("displayName") or "").strip(),
            id_token=str(data.get("idToken") or ""),
        )

    def sign_in(self, email: str, password: str) -> ProviderAccount:
        data = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
            fallback_message="Failed to sign in. Please try again.",
        )
        return self._account(data, email)

    def create_account(self, email: str, password: str) -> ProviderAccount:
        data = self._post(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
            fallback_message="Failed to create the account.",
        )
        return self._account(data, email)

    def send_password_reset(self, email: str) -> None:
        self._post(
            "sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email},
            fallback_message="Failed to send the password reset email.",
        )


__all__ = [
    "IdentityProviderClient",
    "IdentityProviderError",
    "MSG_PROVIDER_UNAVAILABLE",
    "ProviderAccount",
]
