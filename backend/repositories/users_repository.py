"""Repository for per-user profile documents keyed by auth uid."""

from __future__ import annotations

import logging
from typing import Any

from backend.repositories.documents_repository import COLLECTIONS, DocumentsRepository, server_timestamp
from shared import config
from shared.models import AuthUser, UserDocument, UserSettings


logger = logging.getLogger(__name__)


def build_default_user_document(user: AuthUser, additional_data: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return the JSON payload stored for a user on first sign-in."""

    extra = dict(additional_data or {})
    now = server_timestamp()
    payload: dict[str, Any] = {
        "display_name": user.display_name or extra.get("display_name") or "",
        "email": user.email,
        "photo_url": user.photo_url or "",
        "created_at": now,
        "updated_at": now,
        "settings": {
            "currency": config.default_currency(),
            "language": "en",
            "theme": "light",
            "notifications": True,
        },
        "profile": {
            "first_name": "",
            "last_name": "",
            "phone": "",
            "date_of_birth": None,
            "occupation": "",
            "bank_accounts": [],
        },
        "subscription": {
            "plan": "free",
            "start_date": now,
            "end_date": None,
            "features": {
                "max_statements": 10,
                "max_exports": 5,
                "advanced_analytics": False,
            },
        },
    }
    payload.update(extra)
    return payload


class UsersRepository:
    """User documents stored in the `users` collection."""

    def __init__(self, documents: DocumentsRepository) -> None:
        self._documents = documents

    def get_user_document(self, uid: str) -> UserDocument | None:
        row = self._documents.get_document(COLLECTIONS["USERS"], uid)
        if row is None:
            return None
        return UserDocument.model_validate(row)

    def create_user_document(
        self,
        user: AuthUser,
        additional_data: dict[str, Any] | None = None,
    ) -> UserDocument:
        """Create the user document unless one already exists."""

        existing = self.get_user_document(user.uid)
        if existing is not None:
            return existing

        payload = build_default_user_document(user, additional_data)
        stored = self._documents.set_document(COLLECTIONS["USERS"], user.uid, payload)
        logger.info("user_document_created uid=%s", user.uid)
        return UserDocument.model_validate(stored)

    def update_user_settings(self, uid: str, settings: UserSettings) -> UserDocument:
        row = self._documents.update_document(
            COLLECTIONS["USERS"],
            uid,
            {"settings": settings.model_dump(mode="json")},
        )
        return UserDocument.model_validate(row)

    def update_display_name(self, uid: str, display_name: str) -> UserDocument:
        row = self._documents.update_document(COLLECTIONS["USERS"], uid, {"display_name": display_name})
        return UserDocument.model_validate(row)
