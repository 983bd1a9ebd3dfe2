"""Tests for the authentication service flows."""

from __future__ import annotations

from backend.auth.supabase_auth import AuthProviderError, AuthResponse
from backend.repositories.documents_repository import InMemoryDocumentsRepository
from backend.repositories.users_repository import UsersRepository
from backend.services.auth_service import PASSWORD_RESET_MESSAGE, SIGNED_OUT_MESSAGE, AuthService
from shared.models import AuthResult, AuthSession, AuthUser, ServiceError, ServiceErrorCode


USER = AuthUser(uid="bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb", email="jane@example.com", display_name=None)


class _FakeAuthClient:
    def __init__(self, error: AuthProviderError | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, dict[str, object]]] = []

    def _respond(self, name: str, **kwargs) -> AuthResponse:
        self.calls.append((name, kwargs))
        if self.error is not None:
            raise self.error
        return AuthResponse(user=USER, session=AuthSession(access_token="access"))

    def sign_up(self, **kwargs):
        return self._respond("sign_up", **kwargs)

    def sign_in_with_password(self, **kwargs):
        return self._respond("sign_in_with_password", **kwargs)

    def sign_in_with_id_token(self, **kwargs):
        return self._respond("sign_in_with_id_token", **kwargs)

    def google_authorize_url(self, redirect_to=None):
        return f"https://auth.example/authorize?redirect_to={redirect_to}"

    def sign_out(self, **kwargs):
        self._respond("sign_out", **kwargs)

    def send_password_reset(self, **kwargs):
        self._respond("send_password_reset", **kwargs)

    def get_user(self, **kwargs):
        self._respond("get_user", **kwargs)
        return {"id": USER.uid, "email": USER.email}

    def update_user(self, **kwargs):
        self._respond("update_user", **kwargs)
        return USER


class _FailingUsersRepository(UsersRepository):
    def create_user_document(self, user, additional_data=None):
        raise RuntimeError("db down")


def _service(client: _FakeAuthClient, users: UsersRepository | None = None) -> AuthService:
    return AuthService(auth_client=client, users_repository=users or UsersRepository(InMemoryDocumentsRepository()))


def test_sign_up_creates_user_document_with_display_name() -> None:
    service = _service(_FakeAuthClient())

    result = service.sign_up("jane@example.com", "secret", "Jane")

    assert isinstance(result, AuthResult)
    assert result.user is not None and result.user.display_name == "Jane"
    document = service.users_repository.get_user_document(USER.uid)
    assert document is not None
    assert document.display_name == "Jane"


def test_sign_up_rejects_invalid_email_before_calling_provider() -> None:
    client = _FakeAuthClient()

    result = _service(client).sign_up("not-an-email", "secret")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.VALIDATION_ERROR
    assert result.message == "Please enter a valid email address."
    assert client.calls == []


def test_sign_up_existing_account_is_conflict() -> None:
    client = _FakeAuthClient(AuthProviderError("user_already_exists", "User already registered", 422))

    result = _service(client).sign_up("jane@example.com", "secret")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.CONFLICT
    assert result.message == "An account with this email already exists."


def test_sign_in_bad_credentials_is_unauthorized_with_friendly_message() -> None:
    client = _FakeAuthClient(AuthProviderError("invalid_credentials", "Invalid login credentials", 400))

    result = _service(client).sign_in("jane@example.com", "wrong")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.UNAUTHORIZED
    assert result.message == "Invalid email or password."
    assert result.details == {"provider_code": "invalid_credentials"}


def test_sign_in_does_not_create_user_document() -> None:
    service = _service(_FakeAuthClient())

    result = service.sign_in("jane@example.com", "secret")

    assert isinstance(result, AuthResult)
    assert service.users_repository.get_user_document(USER.uid) is None


def test_google_sign_in_creates_user_document_once() -> None:
    service = _service(_FakeAuthClient())

    service.sign_in_with_google("id-token")
    service.users_repository.update_user_settings(
        USER.uid,
        service.users_repository.get_user_document(USER.uid).settings.model_copy(update={"theme": "dark"}),
    )
    service.sign_in_with_google("id-token")

    assert service.users_repository.get_user_document(USER.uid).settings.theme == "dark"


def test_google_sign_in_survives_user_document_failure() -> None:
    service = _service(_FakeAuthClient(), _FailingUsersRepository(InMemoryDocumentsRepository()))

    result = service.sign_in_with_google("id-token", nonce="n")

    assert isinstance(result, AuthResult)
    assert result.session is not None


def test_google_sign_in_requires_token() -> None:
    result = _service(_FakeAuthClient()).sign_in_with_google("  ")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.VALIDATION_ERROR


def test_sign_out_and_reset_password_messages() -> None:
    service = _service(_FakeAuthClient())

    assert service.sign_out("access").message == SIGNED_OUT_MESSAGE
    assert service.reset_password("jane@example.com").message == PASSWORD_RESET_MESSAGE


def test_reset_password_rate_limited() -> None:
    client = _FakeAuthClient(AuthProviderError("over_email_send_rate_limit", "rate limited", 429))

    result = _service(client).reset_password("jane@example.com")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.BACKEND_ERROR
    assert result.message == "Too many attempts. Please try again later."


def test_get_current_user_data_handles_empty_uid() -> None:
    service = _service(_FakeAuthClient())

    assert service.get_current_user_data(None) is None
    assert service.get_current_user_data(USER.uid) is None


def test_get_current_user_maps_provider_payload() -> None:
    client = _FakeAuthClient()

    user = _service(client).get_current_user("access")

    assert isinstance(user, AuthUser)
    assert user.uid == USER.uid
    assert client.calls == [("get_user", {"access_token": "access"})]


def test_get_current_user_expired_token_is_unauthorized() -> None:
    client = _FakeAuthClient(AuthProviderError("bad_jwt", "invalid JWT", 401))

    result = _service(client).get_current_user("expired")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.UNAUTHORIZED
    assert result.message == "Your session has expired. Please sign in again."


def test_update_display_name_renames_provider_user_and_document() -> None:
    client = _FakeAuthClient()
    service = _service(client)
    service.users_repository.create_user_document(USER)

    result = service.update_display_name("access", "  Jane Doe ")

    assert isinstance(result, AuthUser)
    assert result.display_name == "Jane Doe"
    assert client.calls == [("update_user", {"access_token": "access", "data": {"display_name": "Jane Doe"}})]
    assert service.users_repository.get_user_document(USER.uid).display_name == "Jane Doe"


def test_update_display_name_creates_missing_user_document() -> None:
    service = _service(_FakeAuthClient())

    service.update_display_name("access", "Jane")

    assert service.users_repository.get_user_document(USER.uid).display_name == "Jane"


def test_update_display_name_requires_value() -> None:
    client = _FakeAuthClient()

    result = _service(client).update_display_name("access", "   ")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.VALIDATION_ERROR
    assert client.calls == []


def test_update_display_name_expired_token_is_unauthorized() -> None:
    client = _FakeAuthClient(AuthProviderError("bad_jwt", "invalid JWT", 401))

    result = _service(client).update_display_name("expired", "Jane")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.UNAUTHORIZED
