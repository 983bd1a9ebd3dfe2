"""Repository for parsed statement transactions."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from backend.repositories.documents_repository import (
    COLLECTIONS,
    IN_QUERY_CHUNK_SIZE,
    DocumentsRepository,
    chunked,
)
from shared.models import Transaction, TransactionCreate


logger = logging.getLogger(__name__)


class TransactionsRepository:
    def __init__(self, documents: DocumentsRepository) -> None:
        self._documents = documents

    def save_transactions(self, statement_id: UUID, items: list[TransactionCreate]) -> int:
        """Insert all transactions of one statement in a single batched write."""

        if not items:
            return 0
        payload: list[dict[str, Any]] = []
        for item in items:
            row = item.model_dump(mode="json")
            row["statement_id"] = str(statement_id)
            payload.append(row)
        created_ids = self._documents.create_documents(COLLECTIONS["TRANSACTIONS"], payload)
        return len(created_ids)

    def list_by_statement(self, statement_id: UUID) -> list[Transaction]:
        rows = self._documents.query_documents(
            COLLECTIONS["TRANSACTIONS"],
            equals={"statement_id": str(statement_id)},
            order_by="date",
            descending=True,
        )
        return [Transaction.model_validate(row) for row in rows]

    def list_by_statements(
        self,
        statement_ids: list[UUID],
        *,
        category: str | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """Fan one `in` query out per id chunk and merge the results newest first."""

        if not statement_ids:
            return []

        equals = {"category": category} if category else None
        merged: list[Transaction] = []
        chunks = chunked([str(statement_id) for statement_id in statement_ids], IN_QUERY_CHUNK_SIZE)
        for chunk in chunks:
            rows = self._documents.query_documents(
                COLLECTIONS["TRANSACTIONS"],
                equals=equals,
                in_filter=("statement_id", chunk),
                order_by="date",
                descending=True,
                limit=limit,
            )
            merged.extend(Transaction.model_validate(row) for row in rows)

        logger.debug("transactions_fan_out chunks=%s rows=%s", len(chunks), len(merged))
        merged.sort(key=lambda item: item.date, reverse=True)
        if limit is not None:
            merged = merged[:limit]
        return merged

    def get_transaction(self, transaction_id: UUID) -> Transaction | None:
        row = self._documents.get_document(COLLECTIONS["TRANSACTIONS"], str(transaction_id))
        if row is None:
            return None
        return Transaction.model_validate(row)

    def update_category(
        self,
        transaction_id: UUID,
        category: str,
        subcategory: str | None,
    ) -> Transaction:
        row = self._documents.update_document(
            COLLECTIONS["TRANSACTIONS"],
            str(transaction_id),
            {"category": category, "subcategory": subcategory},
        )
        return Transaction.model_validate(row)

    def delete_by_statement(self, statement_id: UUID) -> int:
        return self._documents.delete_where(
            COLLECTIONS["TRANSACTIONS"],
            {"statement_id": str(statement_id)},
        )
