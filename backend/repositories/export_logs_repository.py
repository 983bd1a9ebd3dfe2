"""Repository for export audit records."""

from __future__ import annotations

from backend.repositories.documents_repository import COLLECTIONS, DocumentsRepository
from shared.models import ExportLog, ExportLogCreate


class ExportLogsRepository:
    def __init__(self, documents: DocumentsRepository) -> None:
        self._documents = documents

    def log_export(self, user_id: str, data: ExportLogCreate) -> ExportLog:
        payload = data.model_dump(mode="json")
        payload["user_id"] = user_id
        export_id = self._documents.create_document(COLLECTIONS["EXPORT_LOGS"], payload)
        stored = self._documents.get_document(COLLECTIONS["EXPORT_LOGS"], export_id)
        return ExportLog.model_validate(stored or {**payload, "id": export_id})

    def list_user_exports(self, user_id: str, limit: int = 20) -> list[ExportLog]:
        rows = self._documents.query_documents(
            COLLECTIONS["EXPORT_LOGS"],
            equals={"user_id": user_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [ExportLog.model_validate(row) for row in rows]

    def count_user_exports(self, user_id: str) -> int:
        rows = self._documents.query_documents(
            COLLECTIONS["EXPORT_LOGS"],
            equals={"user_id": user_id},
        )
        return len(rows)
