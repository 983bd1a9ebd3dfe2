"""Configuration helpers for environment variables."""

from __future__ import annotations

import os
import logging

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


_DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
_DEFAULT_MAX_REQUEST_BODY_BYTES = 15 * 1024 * 1024
_DEFAULT_SIGNED_URL_TTL = 3600


def _should_load_dotenv() -> bool:
    """Return whether local dotenv loading should run."""
    app_env = os.getenv("APP_ENV", "dev").strip().lower()
    return app_env in {"dev", "local"}


if _should_load_dotenv():
    load_dotenv()


def get_env(name: str, default: str | None = None) -> str | None:
    """Return a raw environment value or default."""
    return os.getenv(name, default)


def _get_positive_int(name: str, default: int) -> int:
    raw_value = (get_env(name, "") or "").strip()
    if not raw_value:
        return default
    try:
        value = int(raw_value)
    except ValueError:
        logger.warning("invalid_int_env name=%s value=%s; using default=%s", name, raw_value, default)
        return default
    return value if value > 0 else default


def app_env() -> str:
    """Return the current application environment."""
    return (get_env("APP_ENV", "dev") or "dev").strip() or "dev"


def cors_allow_origins() -> list[str]:
    """Return CORS allowed origins from env with safe environment defaults."""
    raw_origins = get_env("CORS_ALLOW_ORIGINS", "") or ""
    parsed_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]

    if parsed_origins:
        return parsed_origins

    if app_env().strip().lower() in {"dev", "local"}:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]

    ui_origin = (get_env("UI_ORIGIN", "") or "").strip()
    if ui_origin:
        return [ui_origin]

    logger.warning(
        "cors_allow_origins_empty_in_prod app_env=%s; define CORS_ALLOW_ORIGINS or UI_ORIGIN",
        app_env(),
    )

    return []


def supabase_url() -> str | None:
    """Return Supabase URL when configured."""
    return get_env("SUPABASE_URL")


def supabase_service_role_key() -> str | None:
    """Return Supabase service role key when configured."""
    return get_env("SUPABASE_SERVICE_ROLE_KEY")


def supabase_anon_key() -> str | None:
    """Return Supabase anon key when configured."""
    return get_env("SUPABASE_ANON_KEY")


def storage_bucket() -> str:
    """Return the storage bucket holding statement and export files."""
    return (get_env("STORAGE_BUCKET", "statements") or "statements").strip() or "statements"


def signed_url_ttl_seconds() -> int:
    """Return signed download URL lifetime in seconds."""
    return _get_positive_int("STORAGE_SIGNED_URL_TTL", _DEFAULT_SIGNED_URL_TTL)


def max_upload_bytes() -> int:
    """Return the maximum accepted size for one uploaded file."""
    return _get_positive_int("MAX_UPLOAD_BYTES", _DEFAULT_MAX_UPLOAD_BYTES)


def max_request_body_bytes() -> int:
    """Return the maximum accepted HTTP request body size."""
    return _get_positive_int("MAX_REQUEST_BODY_BYTES", _DEFAULT_MAX_REQUEST_BODY_BYTES)


def auth_redirect_url() -> str | None:
    """Return the URL the identity provider redirects to after OAuth or recovery."""
    value = (get_env("AUTH_REDIRECT_URL", "") or "").strip()
    return value or None


def default_currency() -> str:
    """Return the currency assigned to new user documents."""
    return (get_env("DEFAULT_CURRENCY", "MUR") or "MUR").strip().upper() or "MUR"


def session_cookie_name() -> str:
    """Return the cookie name that marks a browser session."""
    return (get_env("SESSION_COOKIE_NAME", "sb-access-token") or "sb-access-token").strip()


def log_level() -> str:
    """Return the root log level name."""
    return (get_env("LOG_LEVEL", "INFO") or "INFO").strip().upper() or "INFO"
