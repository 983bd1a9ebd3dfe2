"""Statement and transaction operations scoped to one authenticated user."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from backend.repositories.documents_repository import DocumentNotFoundError
from backend.repositories.statements_repository import StatementsRepository
from backend.repositories.transactions_repository import TransactionsRepository
from backend.services.storage_service import StorageService
from shared.models import (
    ServiceError,
    ServiceErrorCode,
    Statement,
    StatementCreate,
    StatementStatus,
    StatementsListResult,
    Transaction,
    TransactionCreate,
    TransactionFilters,
    TransactionsListResult,
    TransactionsSaveResult,
)


logger = logging.getLogger(__name__)

# Number of recent statements considered when listing a user's transactions.
USER_STATEMENTS_SCAN_LIMIT = 100

_STATEMENT_NOT_FOUND = "Statement not found"
_TRANSACTION_NOT_FOUND = "Transaction not found"


def _in_user_statements_folder(path: str, user_id: str) -> bool:
    parts = path.strip().lstrip("/").split("/")
    return len(parts) >= 3 and parts[0] == "statements" and parts[1] == user_id and ".." not in parts


def _backend_error(event: str, exc: Exception, **context: object) -> ServiceError:
    logger.exception(
        "%s %s",
        event,
        " ".join(f"{key}={value}" for key, value in context.items()),
    )
    return ServiceError(code=ServiceErrorCode.BACKEND_ERROR, message=str(exc))


@dataclass(slots=True)
class FinanceService:
    statements_repository: StatementsRepository
    transactions_repository: TransactionsRepository
    storage_service: StorageService | None = None

    def _owned_statement(self, user_id: str, statement_id: UUID) -> Statement | ServiceError:
        try:
            statement = self.statements_repository.get_statement(statement_id)
        except Exception as exc:
            return _backend_error("statement_get_failed", exc, statement_id=statement_id)
        if statement is None or statement.user_id != user_id:
            return ServiceError(code=ServiceErrorCode.NOT_FOUND, message=_STATEMENT_NOT_FOUND)
        return statement

    def save_statement(self, user_id: str, data: StatementCreate) -> Statement | ServiceError:
        try:
            statement = self.statements_repository.save_statement(user_id, data)
        except Exception as exc:
            return _backend_error("statement_save_failed", exc, user_id=user_id)
        logger.info("statement_saved user_id=%s statement_id=%s", user_id, statement.id)
        return statement

    def get_user_statements(self, user_id: str, limit: int = 10) -> StatementsListResult | ServiceError:
        try:
            items = self.statements_repository.list_user_statements(user_id, limit=limit)
        except Exception as exc:
            return _backend_error("statements_list_failed", exc, user_id=user_id)
        return StatementsListResult(items=items)

    def get_statement(self, user_id: str, statement_id: UUID) -> Statement | ServiceError:
        return self._owned_statement(user_id, statement_id)

    def update_statement_status(
        self,
        user_id: str,
        statement_id: UUID,
        status: StatementStatus,
    ) -> Statement | ServiceError:
        statement = self._owned_statement(user_id, statement_id)
        if isinstance(statement, ServiceError):
            return statement

        try:
            updated = self.statements_repository.update_statement_status(statement_id, status)
        except DocumentNotFoundError:
            return ServiceError(code=ServiceErrorCode.NOT_FOUND, message=_STATEMENT_NOT_FOUND)
        except Exception as exc:
            return _backend_error("statement_status_update_failed", exc, statement_id=statement_id)
        logger.info("statement_status_updated statement_id=%s status=%s", statement_id, status.value)
        return updated

    def save_transactions(
        self,
        user_id: str,
        statement_id: UUID,
        items: list[TransactionCreate],
    ) -> TransactionsSaveResult | ServiceError:
        statement = self._owned_statement(user_id, statement_id)
        if isinstance(statement, ServiceError):
            return statement

        try:
            count = self.transactions_repository.save_transactions(statement_id, items)
        except Exception as exc:
            return _backend_error("transactions_save_failed", exc, statement_id=statement_id)
        logger.info("transactions_saved statement_id=%s count=%s", statement_id, count)
        return TransactionsSaveResult(count=count)

    def get_transactions_by_statement(
        self,
        user_id: str,
        statement_id: UUID,
    ) -> TransactionsListResult | ServiceError:
        statement = self._owned_statement(user_id, statement_id)
        if isinstance(statement, ServiceError):
            return statement

        try:
            items = self.transactions_repository.list_by_statement(statement_id)
        except Exception as exc:
            return _backend_error("transactions_list_failed", exc, statement_id=statement_id)
        return TransactionsListResult(items=items)

    def get_user_transactions(
        self,
        user_id: str,
        filters: TransactionFilters | None = None,
    ) -> TransactionsListResult | ServiceError:
        filters = filters or TransactionFilters()
        statements = self.get_user_statements(user_id, limit=USER_STATEMENTS_SCAN_LIMIT)
        if isinstance(statements, ServiceError):
            return statements

        statement_ids = [statement.id for statement in statements.items]
        if not statement_ids:
            return TransactionsListResult(items=[])

        try:
            items = self.transactions_repository.list_by_statements(
                statement_ids,
                category=filters.category,
                limit=filters.limit,
            )
        except Exception as exc:
            return _backend_error("user_transactions_list_failed", exc, user_id=user_id)
        return TransactionsListResult(items=items)

    def update_transaction_category(
        self,
        user_id: str,
        transaction_id: UUID,
        category: str,
        subcategory: str | None = None,
    ) -> Transaction | ServiceError:
        try:
            transaction = self.transactions_repository.get_transaction(transaction_id)
        except Exception as exc:
            return _backend_error("transaction_get_failed", exc, transaction_id=transaction_id)
        if transaction is None:
            return ServiceError(code=ServiceErrorCode.NOT_FOUND, message=_TRANSACTION_NOT_FOUND)

        statement = self._owned_statement(user_id, transaction.statement_id)
        if isinstance(statement, ServiceError):
            if statement.code == ServiceErrorCode.NOT_FOUND:
                return ServiceError(code=ServiceErrorCode.NOT_FOUND, message=_TRANSACTION_NOT_FOUND)
            return statement

        try:
            return self.transactions_repository.update_category(transaction_id, category, subcategory)
        except DocumentNotFoundError:
            return ServiceError(code=ServiceErrorCode.NOT_FOUND, message=_TRANSACTION_NOT_FOUND)
        except Exception as exc:
            return _backend_error("transaction_category_update_failed", exc, transaction_id=transaction_id)

    def delete_statement(self, user_id: str, statement_id: UUID) -> dict[str, object] | ServiceError:
        """Delete a statement with its transactions and its stored file."""

        statement = self._owned_statement(user_id, statement_id)
        if isinstance(statement, ServiceError):
            return statement

        try:
            deleted_transactions = self.transactions_repository.delete_by_statement(statement_id)
            self.statements_repository.delete_statement(statement_id)
        except Exception as exc:
            return _backend_error("statement_delete_failed", exc, statement_id=statement_id)

        file_deleted = False
        if statement.file_path and not _in_user_statements_folder(statement.file_path, user_id):
            logger.warning(
                "statement_file_outside_user_folder statement_id=%s path=%s",
                statement_id,
                statement.file_path,
            )
        elif statement.file_path and self.storage_service is not None:
            result = self.storage_service.delete_file(statement.file_path)
            file_deleted = result is True
            if not file_deleted:
                logger.warning(
                    "statement_file_delete_failed statement_id=%s path=%s",
                    statement_id,
                    statement.file_path,
                )

        logger.info(
            "statement_deleted statement_id=%s transactions=%s file_deleted=%s",
            statement_id,
            deleted_transactions,
            file_deleted,
        )
        return {
            "ok": True,
            "deleted_transactions": deleted_transactions,
            "file_deleted": file_deleted,
        }
