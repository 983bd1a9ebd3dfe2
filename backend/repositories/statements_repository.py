"""Repository for uploaded bank statement records."""

from __future__ import annotations

from uuid import UUID

from backend.repositories.documents_repository import COLLECTIONS, DocumentsRepository
from shared.models import Statement, StatementCreate, StatementStatus


class StatementsRepository:
    def __init__(self, documents: DocumentsRepository) -> None:
        self._documents = documents

    def save_statement(self, user_id: str, data: StatementCreate) -> Statement:
        payload = data.model_dump(mode="json")
        payload["user_id"] = user_id
        payload["status"] = StatementStatus.PROCESSED.value
        payload["metadata"] = payload.get("metadata") or {}
        statement_id = self._documents.create_document(COLLECTIONS["STATEMENTS"], payload)
        stored = self._documents.get_document(COLLECTIONS["STATEMENTS"], statement_id)
        return Statement.model_validate(stored or {**payload, "id": statement_id})

    def list_user_statements(self, user_id: str, limit: int = 10) -> list[Statement]:
        rows = self._documents.query_documents(
            COLLECTIONS["STATEMENTS"],
            equals={"user_id": user_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [Statement.model_validate(row) for row in rows]

    def get_statement(self, statement_id: UUID) -> Statement | None:
        row = self._documents.get_document(COLLECTIONS["STATEMENTS"], str(statement_id))
        if row is None:
            return None
        return Statement.model_validate(row)

    def update_statement_status(self, statement_id: UUID, status: StatementStatus) -> Statement:
        row = self._documents.update_document(
            COLLECTIONS["STATEMENTS"],
            str(statement_id),
            {"status": status.value},
        )
        return Statement.model_validate(row)

    def delete_statement(self, statement_id: UUID) -> None:
        self._documents.delete_document(COLLECTIONS["STATEMENTS"], str(statement_id))
