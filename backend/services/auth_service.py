"""Authentication service.

Maps user actions (sign up, sign in, Google sign-in, sign out, password
reset, profile rename) onto the identity provider and makes sure every
signed-in user owns a profile document. Every method returns a result model or a ``ServiceError``;
provider exceptions never reach the HTTP layer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from backend.auth.supabase_auth import (
    GOOGLE_PROVIDER,
    AuthProviderError,
    AuthResponse,
    SupabaseAuthClient,
    auth_user_from_payload,
    friendly_auth_error,
)
from backend.repositories.documents_repository import DocumentNotFoundError
from backend.repositories.users_repository import UsersRepository
from shared import config
from shared.models import AuthResult, AuthUser, ServiceError, ServiceErrorCode, UserDocument


logger = logging.getLogger(__name__)


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PASSWORD_RESET_MESSAGE = "Password reset email sent successfully."
SIGNED_OUT_MESSAGE = "Signed out successfully."

_CREDENTIAL_ACTIONS = {"sign_in", "google_sign_in", "current_user", "update_profile"}


def _provider_error(action: str, exc: AuthProviderError) -> ServiceError:
    logger.info("auth_%s_rejected code=%s status=%s", action, exc.code, exc.status_code)
    code = ServiceErrorCode.BACKEND_ERROR
    if exc.status_code in {400, 401, 403, 422}:
        if action in _CREDENTIAL_ACTIONS:
            code = ServiceErrorCode.UNAUTHORIZED
        else:
            code = ServiceErrorCode.VALIDATION_ERROR
    if exc.code in {"user_already_exists", "email_exists"}:
        code = ServiceErrorCode.CONFLICT
    return ServiceError(code=code, message=friendly_auth_error(exc), details={"provider_code": exc.code})


def _validate_credentials(email: str, password: str | None) -> ServiceError | None:
    if not email or not _EMAIL_RE.match(email.strip()):
        return ServiceError(code=ServiceErrorCode.VALIDATION_ERROR, message="Please enter a valid email address.")
    if password is not None and not password:
        return ServiceError(code=ServiceErrorCode.VALIDATION_ERROR, message="Password is required.")
    return None


@dataclass(slots=True)
class AuthService:
    auth_client: SupabaseAuthClient
    users_repository: UsersRepository

    def _ensure_user_document(self, user: AuthUser, additional_data: dict[str, object] | None = None) -> None:
        """Create the user document on first sign-in; failures never block auth."""

        try:
            self.users_repository.create_user_document(user, additional_data)
        except Exception:
            logger.exception("user_document_create_failed uid=%s", user.uid)

    def sign_up(self, email: str, password: str, display_name: str = "") -> AuthResult | ServiceError:
        validation_error = _validate_credentials(email, password)
        if validation_error is not None:
            return validation_error

        try:
            response = self.auth_client.sign_up(
                email=email.strip(),
                password=password,
                display_name=display_name,
            )
        except AuthProviderError as exc:
            return _provider_error("sign_up", exc)

        user = response.user
        if display_name and not user.display_name:
            user = user.model_copy(update={"display_name": display_name})
        self._ensure_user_document(user, {"display_name": display_name} if display_name else None)
        logger.info("auth_signed_up uid=%s", user.uid)
        return AuthResult(user=user, session=response.session)

    def sign_in(self, email: str, password: str) -> AuthResult | ServiceError:
        validation_error = _validate_credentials(email, password)
        if validation_error is not None:
            return validation_error

        try:
            response = self.auth_client.sign_in_with_password(email=email.strip(), password=password)
        except AuthProviderError as exc:
            return _provider_error("sign_in", exc)

        logger.info("auth_signed_in uid=%s", response.user.uid)
        return AuthResult(user=response.user, session=response.session)

    def sign_in_with_google(self, id_token: str, nonce: str | None = None) -> AuthResult | ServiceError:
        if not id_token or not id_token.strip():
            return ServiceError(code=ServiceErrorCode.VALIDATION_ERROR, message="Google ID token is required.")

        try:
            response: AuthResponse = self.auth_client.sign_in_with_id_token(
                provider=GOOGLE_PROVIDER,
                id_token=id_token.strip(),
                nonce=nonce,
            )
        except AuthProviderError as exc:
            return _provider_error("google_sign_in", exc)

        self._ensure_user_document(response.user)
        logger.info("auth_google_signed_in uid=%s", response.user.uid)
        return AuthResult(user=response.user, session=response.session)

    def google_sign_in_url(self, redirect_to: str | None = None) -> str:
        return self.auth_client.google_authorize_url(redirect_to or config.auth_redirect_url())

    def sign_out(self, access_token: str) -> AuthResult | ServiceError:
        try:
            self.auth_client.sign_out(access_token=access_token)
        except AuthProviderError as exc:
            return _provider_error("sign_out", exc)
        return AuthResult(message=SIGNED_OUT_MESSAGE)

    def reset_password(self, email: str) -> AuthResult | ServiceError:
        validation_error = _validate_credentials(email, None)
        if validation_error is not None:
            return validation_error

        try:
            self.auth_client.send_password_reset(email=email.strip(), redirect_to=config.auth_redirect_url())
        except AuthProviderError as exc:
            return _provider_error("reset_password", exc)
        return AuthResult(message=PASSWORD_RESET_MESSAGE)

    def get_current_user(self, access_token: str) -> AuthUser | ServiceError:
        try:
            payload = self.auth_client.get_user(access_token=access_token)
        except AuthProviderError as exc:
            return _provider_error("current_user", exc)
        return auth_user_from_payload(payload)

    def get_current_user_data(self, uid: str | None) -> UserDocument | None:
        if not uid:
            return None
        try:
            return self.users_repository.get_user_document(uid)
        except Exception:
            logger.exception("user_document_get_failed uid=%s", uid)
            return None

    def update_display_name(self, access_token: str, display_name: str) -> AuthUser | ServiceError:
        """Rename the signed-in user on the provider and in their profile document."""

        name = (display_name or "").strip()
        if not name:
            return ServiceError(code=ServiceErrorCode.VALIDATION_ERROR, message="Display name is required.")

        try:
            user = self.auth_client.update_user(access_token=access_token, data={"display_name": name})
        except AuthProviderError as exc:
            return _provider_error("update_profile", exc)
        if user.display_name != name:
            user = user.model_copy(update={"display_name": name})

        try:
            self.users_repository.update_display_name(user.uid, name)
        except DocumentNotFoundError:
            self._ensure_user_document(user, {"display_name": name})
        except Exception:
            logger.exception("user_document_update_failed uid=%s", user.uid)
        logger.info("auth_profile_updated uid=%s", user.uid)
        return user
