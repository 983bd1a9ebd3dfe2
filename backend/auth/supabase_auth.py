"""Supabase Auth (GoTrue) client and bearer token validation for API endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from shared import config
from shared.models import AuthSession, AuthUser


logger = logging.getLogger(__name__)


class UnauthorizedError(Exception):
    """Raised when a bearer token cannot be validated."""


class AuthProviderError(Exception):
    """Raised when the identity provider rejects a request."""

    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


REQUIRED_AUTH_USER_ID_FIELD = "id"
GOOGLE_PROVIDER = "google"

_FRIENDLY_AUTH_ERRORS: dict[str, str] = {
    "invalid_credentials": "Invalid email or password.",
    "invalid_grant": "Invalid email or password.",
    "user_already_exists": "An account with this email already exists.",
    "email_exists": "An account with this email already exists.",
    "weak_password": "Password should be at least 6 characters.",
    "email_address_invalid": "Please enter a valid email address.",
    "validation_failed": "Please enter a valid email address.",
    "user_not_found": "No account found with this email.",
    "email_not_confirmed": "Please confirm your email address before signing in.",
    "over_request_rate_limit": "Too many attempts. Please try again later.",
    "over_email_send_rate_limit": "Too many attempts. Please try again later.",
    "user_banned": "This account has been disabled.",
    "signup_disabled": "New sign-ups are currently disabled.",
    "provider_disabled": "This sign-in method is not enabled.",
    "bad_jwt": "Your session has expired. Please sign in again.",
    "session_not_found": "Your session has expired. Please sign in again.",
    "network_error": "Network error. Please check your connection.",
}
_DEFAULT_AUTH_ERROR = "An unexpected error occurred. Please try again."


def friendly_auth_error(error: AuthProviderError | str) -> str:
    """Translate a provider error code into user-facing text."""

    code = error.code if isinstance(error, AuthProviderError) else error
    return _FRIENDLY_AUTH_ERRORS.get(code, _DEFAULT_AUTH_ERROR)


def _is_uuid_like(value: str) -> bool:
    try:
        UUID(value)
    except (ValueError, TypeError):
        return False
    return True


def _parse_error_payload(status_code: int, raw_body: str) -> AuthProviderError:
    try:
        payload = json.loads(raw_body) if raw_body else {}
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    code = payload.get("error_code") or payload.get("error") or f"http_{status_code}"
    message = (
        payload.get("msg")
        or payload.get("error_description")
        or payload.get("message")
        or raw_body[:500]
        or f"Auth request failed with status {status_code}"
    )
    return AuthProviderError(code=str(code), message=str(message), status_code=status_code)


def auth_user_from_payload(payload: dict[str, Any]) -> AuthUser:
    """Build an `AuthUser` from a GoTrue user object."""

    metadata = payload.get("user_metadata")
    metadata = metadata if isinstance(metadata, dict) else {}
    display_name = metadata.get("display_name") or metadata.get("full_name") or metadata.get("name")
    photo_url = metadata.get("avatar_url") or metadata.get("picture")
    return AuthUser(
        uid=str(payload[REQUIRED_AUTH_USER_ID_FIELD]),
        email=payload.get("email"),
        display_name=str(display_name) if display_name else None,
        photo_url=str(photo_url) if photo_url else None,
    )


@dataclass(slots=True)
class AuthResponse:
    """User plus optional session returned by sign-up / sign-in calls."""

    user: AuthUser
    session: AuthSession | None


class SupabaseAuthClient:
    """Thin GoTrue REST client authenticated with the project's anon key."""

    def __init__(self, *, url: str, anon_key: str) -> None:
        self._base_url = f"{url.rstrip('/')}/auth/v1"
        self._anon_key = anon_key

    def _request(
        self,
        *,
        method: str,
        path: str,
        query: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any] | None:
        url = f"{self._base_url}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {access_token or self._anon_key}",
            "Accept": "application/json",
        }
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        request = Request(url=url, data=data, headers=headers, method=method)
        try:
            with urlopen(request) as response:  # noqa: S310 - trusted Supabase URL from env
                raw = response.read().decode("utf-8")
        except HTTPError as exc:
            raw_body = exc.read().decode("utf-8", errors="replace")
            raise _parse_error_payload(exc.code, raw_body) from exc
        except URLError as exc:
            raise AuthProviderError(code="network_error", message=str(exc.reason)) from exc

        if not raw.strip():
            return None
        payload = json.loads(raw)
        return payload if isinstance(payload, dict) else None

    @staticmethod
    def _to_auth_response(payload: dict[str, Any] | None) -> AuthResponse:
        if not payload:
            raise AuthProviderError(code="unexpected_response", message="Empty auth response")

        user_payload = payload.get("user") if isinstance(payload.get("user"), dict) else payload
        if not user_payload.get(REQUIRED_AUTH_USER_ID_FIELD):
            raise AuthProviderError(code="unexpected_response", message="Auth response has no user id")

        session = AuthSession.model_validate(payload) if payload.get("access_token") else None
        return AuthResponse(user=auth_user_from_payload(user_payload), session=session)

    def sign_up(self, *, email: str, password: str, display_name: str = "") -> AuthResponse:
        body: dict[str, Any] = {"email": email, "password": password}
        if display_name:
            body["data"] = {"display_name": display_name}
        return self._to_auth_response(self._request(method="POST", path="/signup", body=body))

    def sign_in_with_password(self, *, email: str, password: str) -> AuthResponse:
        payload = self._request(
            method="POST",
            path="/token",
            query={"grant_type": "password"},
            body={"email": email, "password": password},
        )
        return self._to_auth_response(payload)

    def sign_in_with_id_token(self, *, provider: str, id_token: str, nonce: str | None = None) -> AuthResponse:
        body: dict[str, Any] = {"provider": provider, "id_token": id_token}
        if nonce:
            body["nonce"] = nonce
        payload = self._request(method="POST", path="/token", query={"grant_type": "id_token"}, body=body)
        return self._to_auth_response(payload)

    def google_authorize_url(self, redirect_to: str | None = None) -> str:
        query = {"provider": GOOGLE_PROVIDER}
        if redirect_to:
            query["redirect_to"] = redirect_to
        # Always show the Google account chooser.
        query["prompt"] = "select_account"
        return f"{self._base_url}/authorize?{urlencode(query)}"

    def sign_out(self, *, access_token: str) -> None:
        self._request(method="POST", path="/logout", access_token=access_token)

    def send_password_reset(self, *, email: str, redirect_to: str | None = None) -> None:
        query = {"redirect_to": redirect_to} if redirect_to else None
        self._request(method="POST", path="/recover", query=query, body={"email": email})

    def get_user(self, *, access_token: str) -> dict[str, Any]:
        payload = self._request(method="GET", path="/user", access_token=access_token)
        if not payload:
            raise AuthProviderError(code="unexpected_response", message="Empty user response")
        return payload

    def update_user(self, *, access_token: str, data: dict[str, Any]) -> AuthUser:
        payload = self._request(method="PUT", path="/user", body={"data": data}, access_token=access_token)
        if not payload:
            raise AuthProviderError(code="unexpected_response", message="Empty user response")
        return auth_user_from_payload(payload)


def get_user_from_bearer_token(token: str) -> dict[str, object]:
    """Return the Supabase auth user payload for a bearer token."""

    supabase_url = (config.supabase_url() or "").rstrip("/")
    anon_key = config.supabase_anon_key()
    if not supabase_url or not anon_key:
        raise UnauthorizedError("Supabase auth is not configured")

    client = SupabaseAuthClient(url=supabase_url, anon_key=anon_key)
    try:
        payload = client.get_user(access_token=token)
    except AuthProviderError as exc:
        logger.info("bearer_token_rejected code=%s status=%s", exc.code, exc.status_code)
        raise UnauthorizedError("Unauthorized") from exc

    user_id = payload.get(REQUIRED_AUTH_USER_ID_FIELD)
    if not isinstance(user_id, str) or not _is_uuid_like(user_id):
        raise UnauthorizedError("Unauthorized")
    return payload
