"""FastAPI entrypoint for the statement vault HTTP endpoints."""

from __future__ import annotations

import base64
import binascii
import logging
from functools import lru_cache
from typing import Any
from uuid import UUID, uuid4

from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, Field, ValidationError

from shared import config as _config
from backend.auth.supabase_auth import UnauthorizedError, auth_user_from_payload, get_user_from_bearer_token
from backend.factory import BackendServices, build_backend_services
from backend.repositories.documents_repository import COLLECTIONS, DocumentNotFoundError
from backend.services.auth_service import AuthService
from shared.models import (
    AuthUser,
    ExportType,
    ServiceError,
    ServiceErrorCode,
    Statement,
    StatementCreate,
    StatementStatus,
    Transaction,
    TransactionCreate,
    TransactionFilters,
    UserDocument,
)


if not logging.getLogger().handlers:
    logging.basicConfig(
        level=_config.log_level(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

logger = logging.getLogger(__name__)


_ERROR_STATUS_CODES = {
    ServiceErrorCode.VALIDATION_ERROR: 400,
    ServiceErrorCode.UNAUTHORIZED: 401,
    ServiceErrorCode.NOT_FOUND: 404,
    ServiceErrorCode.CONFLICT: 409,
    ServiceErrorCode.BACKEND_ERROR: 502,
}
_CORS_ALLOW_METHODS = ["GET", "OPTIONS", "PATCH", "DELETE", "POST", "PUT"]
_CORS_ALLOW_HEADERS = [
    "X-CSRF-Token",
    "X-Requested-With",
    "Accept",
    "Accept-Version",
    "Content-Length",
    "Content-MD5",
    "Content-Type",
    "Date",
    "X-Api-Version",
    "Authorization",
]
_FILE_PREFIXES = {"statements", "exports", "profiles", "misc"}
_PROTECTED_DOCUMENT_FIELDS = {"id", "user_id", "statement_id", "created_at", "updated_at"}
# Fields owned by the auth and billing flows, never written through /documents.
_READ_ONLY_DOCUMENT_FIELDS = {COLLECTIONS["USERS"]: {"email", "subscription"}}
# Audit rows counted by the export quota.
_READ_ONLY_COLLECTIONS = {COLLECTIONS["EXPORT_LOGS"]}
_DOCUMENT_MODELS: dict[str, type[BaseModel]] = {
    COLLECTIONS["USERS"]: UserDocument,
    COLLECTIONS["STATEMENTS"]: Statement,
    COLLECTIONS["TRANSACTIONS"]: Transaction,
}


class SignUpPayload(BaseModel):
    email: str
    password: str
    display_name: str = ""


class SignInPayload(BaseModel):
    email: str
    password: str


class GoogleSignInPayload(BaseModel):
    id_token: str
    nonce: str | None = None


class PasswordResetPayload(BaseModel):
    email: str


class DocumentPayload(BaseModel):
    data: dict[str, Any]


class TransactionsSavePayload(BaseModel):
    items: list[TransactionCreate]


class CategoryUpdatePayload(BaseModel):
    category: str = Field(min_length=1)
    subcategory: str | None = None


class StatementUploadPayload(BaseModel):
    """Single statement file sent as base64 JSON."""

    file_name: str
    content_type: str
    content_base64: str


class FileValidatePayload(BaseModel):
    file_name: str | None = None
    content_type: str | None = None
    size: int | None = None


class BatchDeletePayload(BaseModel):
    paths: list[str]


class ProfileUpdatePayload(BaseModel):
    display_name: str


class StatementStatusPayload(BaseModel):
    status: StatementStatus


class ExportPayload(BaseModel):
    export_type: ExportType = ExportType.CSV
    category: str | None = None
    limit: int | None = Field(default=None, ge=1, le=1000)


@lru_cache(maxsize=1)
def get_backend_services() -> BackendServices:
    """Create and cache backend services once per process."""

    return build_backend_services()


def _get_auth_service() -> AuthService:
    auth_service = get_backend_services().auth_service
    if auth_service is None:
        raise HTTPException(status_code=503, detail="Auth backend is not configured")
    return auth_service


def _extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = authorization[len(prefix) :].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def _resolve_authenticated_user(authorization: str | None) -> AuthUser:
    """Resolve the authenticated user from the authorization header."""

    token = _extract_bearer_token(authorization)
    try:
        user_payload = get_user_from_bearer_token(token)
    except UnauthorizedError as exc:
        raise HTTPException(status_code=401, detail="Unauthorized") from exc

    try:
        return auth_user_from_payload(user_payload)
    except (KeyError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Unauthorized") from exc


def _unwrap(result: Any) -> Any:
    """Raise the HTTP error matching a ServiceError, or return the JSON payload."""

    if isinstance(result, ServiceError):
        detail: Any = result.message
        if result.details:
            detail = {"message": result.message, **jsonable_encoder(result.details)}
        raise HTTPException(status_code=_ERROR_STATUS_CODES[result.code], detail=detail)
    return jsonable_encoder(result)


def _require_owned_path(path: str, user: AuthUser) -> str:
    cleaned = path.strip().lstrip("/")
    parts = cleaned.split("/")
    if len(parts) < 3 or ".." in parts or parts[0] not in _FILE_PREFIXES or parts[1] != user.uid:
        raise HTTPException(status_code=403, detail="Forbidden file path")
    return cleaned


def _require_collection(collection: str) -> str:
    if collection not in COLLECTIONS.values():
        raise HTTPException(status_code=404, detail="Unknown collection")
    return collection


def _owns_document(services: BackendServices, collection: str, document: dict[str, Any], user: AuthUser) -> bool:
    if collection == COLLECTIONS["USERS"]:
        return str(document.get("id")) == user.uid
    if collection == COLLECTIONS["TRANSACTIONS"]:
        statement_id = document.get("statement_id")
        if not statement_id:
            return False
        statement = services.documents.get_document(COLLECTIONS["STATEMENTS"], str(statement_id))
        return statement is not None and statement.get("user_id") == user.uid
    return document.get("user_id") == user.uid


def _require_writable_collection(collection: str) -> str:
    _require_collection(collection)
    if collection in _READ_ONLY_COLLECTIONS:
        raise HTTPException(status_code=403, detail="Collection is read-only")
    return collection


def _writable_fields(collection: str, data: dict[str, Any], user: AuthUser) -> dict[str, Any]:
    """Drop server-owned fields and check any statement file path belongs to the caller."""

    blocked = _PROTECTED_DOCUMENT_FIELDS | _READ_ONLY_DOCUMENT_FIELDS.get(collection, set())
    writable = {key: value for key, value in data.items() if key not in blocked}
    if collection == COLLECTIONS["STATEMENTS"] and writable.get("file_path"):
        writable["file_path"] = _require_owned_path(str(writable["file_path"]), user)
    return writable


def _require_valid_document(collection: str, document: dict[str, Any]) -> None:
    model = _DOCUMENT_MODELS.get(collection)
    if model is None:
        return
    try:
        model.model_validate(document)
    except ValidationError as exc:
        errors = [{"loc": list(error["loc"]), "msg": error["msg"]} for error in exc.errors()]
        raise HTTPException(status_code=400, detail={"message": "Invalid document", "errors": errors}) from exc


app = FastAPI(title="Statement Vault API")

ALLOW_ORIGINS = _config.cors_allow_origins()


@app.middleware("http")
async def log_http_requests(request: Request, call_next):
    """Log incoming requests, HTTP status codes and unexpected errors."""

    logger.info("http_request_received method=%s path=%s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "http_request_failed method=%s path=%s",
            request.method,
            request.url.path,
        )
        raise

    logger.info(
        "http_response_sent method=%s path=%s status_code=%s",
        request.method,
        request.url.path,
        response.status_code,
    )
    return response


@app.middleware("http")
async def limit_request_body(request: Request, call_next):
    """Reject requests whose declared body exceeds the configured limit."""

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        limit = _config.max_request_body_bytes()
        if int(content_length) > limit:
            logger.warning(
                "http_request_too_large path=%s content_length=%s limit=%s",
                request.url.path,
                content_length,
                limit,
            )
            return JSONResponse(status_code=413, content={"detail": "Request body too large"})
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials="*" not in ALLOW_ORIGINS,
    allow_methods=_CORS_ALLOW_METHODS,
    allow_headers=_CORS_ALLOW_HEADERS,
)

logger.info("cors_allow_origins=%s", ALLOW_ORIGINS)


@app.exception_handler(Exception)
async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for unhandled exceptions."""

    logger.exception(
        "unhandled_exception method=%s path=%s exception_type=%s message=%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/")
def root(request: Request) -> Any:
    """Send browsers holding a session straight to the dashboard."""

    if request.cookies.get(_config.session_cookie_name()):
        return RedirectResponse(url="/dashboard", status_code=302)
    return {"service": "statement-vault", "authenticated": False}


@app.get("/health")
def health() -> dict[str, str]:
    """Healthcheck endpoint."""

    return {"status": "ok"}


# Auth


@app.post("/auth/signup", status_code=201)
def sign_up(payload: SignUpPayload) -> Any:
    result = _get_auth_service().sign_up(payload.email, payload.password, payload.display_name)
    return _unwrap(result)


@app.post("/auth/signin")
def sign_in(payload: SignInPayload) -> Any:
    return _unwrap(_get_auth_service().sign_in(payload.email, payload.password))


@app.post("/auth/google")
def sign_in_with_google(payload: GoogleSignInPayload) -> Any:
    return _unwrap(_get_auth_service().sign_in_with_google(payload.id_token, payload.nonce))


@app.get("/auth/google/url")
def google_sign_in_url(redirect_to: str | None = None) -> dict[str, str]:
    return {"url": _get_auth_service().google_sign_in_url(redirect_to)}


@app.post("/auth/signout")
def sign_out(authorization: str | None = Header(default=None)) -> Any:
    token = _extract_bearer_token(authorization)
    return _unwrap(_get_auth_service().sign_out(token))


@app.post("/auth/password-reset")
def reset_password(payload: PasswordResetPayload) -> Any:
    return _unwrap(_get_auth_service().reset_password(payload.email))


@app.get("/auth/me")
def current_user(authorization: str | None = Header(default=None)) -> Any:
    """Return the authenticated user and their profile document."""

    user = _resolve_authenticated_user(authorization)
    services = get_backend_services()
    try:
        user_document = services.users_repository.get_user_document(user.uid)
    except Exception:
        logger.exception("user_document_get_failed uid=%s", user.uid)
        user_document = None
    return {"user": jsonable_encoder(user), "data": jsonable_encoder(user_document)}


@app.patch("/auth/me")
def update_current_user(payload: ProfileUpdatePayload, authorization: str | None = Header(default=None)) -> Any:
    token = _extract_bearer_token(authorization)
    return _unwrap(_get_auth_service().update_display_name(token, payload.display_name))


# Generic documents


@app.get("/documents/{collection}/{doc_id}")
def get_document(collection: str, doc_id: str, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    services = get_backend_services()
    document = services.documents.get_document(_require_collection(collection), doc_id)
    if document is None or not _owns_document(services, collection, document, user):
        raise HTTPException(status_code=404, detail="Document not found")
    return jsonable_encoder(document)


@app.post("/documents/{collection}", status_code=201)
def create_document(
    collection: str,
    payload: DocumentPayload,
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    services = get_backend_services()
    _require_writable_collection(collection)
    if collection == COLLECTIONS["USERS"]:
        raise HTTPException(status_code=400, detail="User documents are created at sign-in")

    data = _writable_fields(collection, payload.data, user)
    if collection == COLLECTIONS["TRANSACTIONS"]:
        statement_id = payload.data.get("statement_id")
        if not _owns_document(services, collection, {"statement_id": statement_id}, user):
            raise HTTPException(status_code=404, detail="Statement not found")
        data["statement_id"] = str(statement_id)
    else:
        data["user_id"] = user.uid
    data["id"] = str(uuid4())
    _require_valid_document(collection, data)

    doc_id = services.documents.create_document(collection, data)
    logger.info("document_created collection=%s doc_id=%s", collection, doc_id)
    return {"id": doc_id}


@app.patch("/documents/{collection}/{doc_id}")
def update_document(
    collection: str,
    doc_id: str,
    payload: DocumentPayload,
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    services = get_backend_services()
    existing = services.documents.get_document(_require_writable_collection(collection), doc_id)
    if existing is None or not _owns_document(services, collection, existing, user):
        raise HTTPException(status_code=404, detail="Document not found")

    data = _writable_fields(collection, payload.data, user)
    _require_valid_document(collection, {**existing, **data})
    try:
        updated = services.documents.update_document(collection, doc_id, data)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Document not found") from exc
    return jsonable_encoder(updated)


@app.delete("/documents/{collection}/{doc_id}")
def delete_document(collection: str, doc_id: str, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    services = get_backend_services()
    existing = services.documents.get_document(_require_writable_collection(collection), doc_id)
    if existing is None or not _owns_document(services, collection, existing, user):
        raise HTTPException(status_code=404, detail="Document not found")
    services.documents.delete_document(collection, doc_id)
    return {"ok": True}


# Statements and transactions


@app.get("/statements")
def list_statements(
    limit: int = Query(default=10, ge=1, le=100),
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    return _unwrap(get_backend_services().finance_service.get_user_statements(user.uid, limit=limit))


@app.post("/statements", status_code=201)
def save_statement(payload: StatementCreate, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    if payload.file_path:
        _require_owned_path(payload.file_path, user)
    return _unwrap(get_backend_services().finance_service.save_statement(user.uid, payload))


@app.get("/statements/{statement_id}")
def get_statement(statement_id: UUID, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    return _unwrap(get_backend_services().finance_service.get_statement(user.uid, statement_id))


@app.delete("/statements/{statement_id}")
def delete_statement(statement_id: UUID, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    return _unwrap(get_backend_services().finance_service.delete_statement(user.uid, statement_id))


@app.patch("/statements/{statement_id}/status")
def update_statement_status(
    statement_id: UUID,
    payload: StatementStatusPayload,
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    result = get_backend_services().finance_service.update_statement_status(user.uid, statement_id, payload.status)
    return _unwrap(result)


@app.post("/statements/{statement_id}/transactions", status_code=201)
def save_transactions(
    statement_id: UUID,
    payload: TransactionsSavePayload,
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    result = get_backend_services().finance_service.save_transactions(user.uid, statement_id, payload.items)
    return _unwrap(result)


@app.get("/statements/{statement_id}/transactions")
def list_statement_transactions(statement_id: UUID, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    result = get_backend_services().finance_service.get_transactions_by_statement(user.uid, statement_id)
    return _unwrap(result)


@app.get("/transactions")
def list_user_transactions(
    category: str | None = None,
    limit: int | None = Query(default=None, ge=1, le=1000),
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    filters = TransactionFilters(category=category, limit=limit)
    return _unwrap(get_backend_services().finance_service.get_user_transactions(user.uid, filters))


@app.patch("/transactions/{transaction_id}/category")
def update_transaction_category(
    transaction_id: UUID,
    payload: CategoryUpdatePayload,
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    result = get_backend_services().finance_service.update_transaction_category(
        user.uid,
        transaction_id,
        payload.category,
        payload.subcategory,
    )
    return _unwrap(result)


# Files


@app.post("/files/validate")
def validate_file(payload: FileValidatePayload) -> Any:
    storage_service = get_backend_services().storage_service
    return jsonable_encoder(storage_service.validate_file(payload.file_name, payload.content_type, payload.size))


@app.post("/files/statements", status_code=201)
def upload_statement_file(payload: StatementUploadPayload, authorization: str | None = Header(default=None)) -> Any:
    """Upload one statement file under the caller's statements folder."""

    user = _resolve_authenticated_user(authorization)
    try:
        content = base64.b64decode(payload.content_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail="Invalid base64 file content") from exc

    def _log_progress(percent: float) -> None:
        logger.debug("statement_upload_progress uid=%s percent=%.1f", user.uid, percent)

    result = get_backend_services().storage_service.upload_statement(
        content,
        file_name=payload.file_name,
        content_type=payload.content_type,
        user_id=user.uid,
        on_progress=_log_progress,
    )
    return _unwrap(result)


@app.get("/files/url")
def get_file_url(path: str, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    return _unwrap(get_backend_services().storage_service.get_file_url(_require_owned_path(path, user)))


@app.get("/files/metadata")
def get_file_metadata(path: str, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    return _unwrap(get_backend_services().storage_service.get_file_metadata(_require_owned_path(path, user)))


@app.get("/files/download")
def download_file(path: str, authorization: str | None = Header(default=None)) -> Response:
    user = _resolve_authenticated_user(authorization)
    owned_path = _require_owned_path(path, user)
    storage_service = get_backend_services().storage_service
    content = storage_service.download_file(owned_path)
    if isinstance(content, ServiceError):
        _unwrap(content)
    metadata = storage_service.get_file_metadata(owned_path)
    media_type = "application/octet-stream"
    if not isinstance(metadata, ServiceError) and metadata.content_type:
        media_type = metadata.content_type
    file_name = owned_path.rsplit("/", maxsplit=1)[-1]
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@app.delete("/files")
def delete_file(path: str, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    result = get_backend_services().storage_service.delete_file(_require_owned_path(path, user))
    _unwrap(result)
    return {"ok": True}


@app.post("/files/batch-delete")
def delete_files(payload: BatchDeletePayload, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    owned_paths = [_require_owned_path(path, user) for path in payload.paths]
    tally = get_backend_services().storage_service.delete_files(owned_paths)
    return {"ok": True, "results": jsonable_encoder(tally)}


# Exports


@app.post("/exports", status_code=201)
def export_transactions(payload: ExportPayload, authorization: str | None = Header(default=None)) -> Any:
    user = _resolve_authenticated_user(authorization)
    filters = TransactionFilters(category=payload.category, limit=payload.limit)
    result = get_backend_services().export_service.export_transactions(user.uid, payload.export_type, filters)
    return _unwrap(result)


@app.get("/exports")
def list_exports(
    limit: int = Query(default=20, ge=1, le=100),
    authorization: str | None = Header(default=None),
) -> Any:
    user = _resolve_authenticated_user(authorization)
    return _unwrap(get_backend_services().export_service.list_exports(user.uid, limit=limit))
