"""Tests for CSV and PDF transaction exports."""

from __future__ import annotations

import csv
from datetime import date
from decimal import Decimal
from io import StringIO

from backend.repositories.documents_repository import InMemoryDocumentsRepository
from backend.repositories.export_logs_repository import ExportLogsRepository
from backend.repositories.statements_repository import StatementsRepository
from backend.repositories.transactions_repository import TransactionsRepository
from backend.repositories.users_repository import UsersRepository
from backend.services.export_service import EXPORT_LIMIT_MESSAGE, ExportService
from backend.services.finance_service import FinanceService
from backend.services.storage_service import StorageService
from backend.storage.supabase_storage import InMemoryStorageClient
from shared.models import (
    AuthUser,
    ExportResult,
    ExportType,
    ServiceError,
    ServiceErrorCode,
    StatementCreate,
    TransactionCreate,
    TransactionFilters,
    TransactionType,
)


USER_ID = "u1"


def _build() -> ExportService:
    documents = InMemoryDocumentsRepository()
    storage_service = StorageService(storage=InMemoryStorageClient())
    finance_service = FinanceService(
        statements_repository=StatementsRepository(documents),
        transactions_repository=TransactionsRepository(documents),
        storage_service=storage_service,
    )
    statement = finance_service.save_statement(USER_ID, StatementCreate(file_name="mar.pdf"))
    finance_service.save_transactions(
        USER_ID,
        statement.id,
        [
            TransactionCreate(
                date=date(2025, 3, 1),
                description="Salary",
                amount=Decimal("5000"),
                type=TransactionType.CREDIT,
                category="Income",
            ),
            TransactionCreate(
                date=date(2025, 3, 2),
                description="Groceries, weekly",
                amount=Decimal("-120.40"),
                type=TransactionType.DEBIT,
                category="Food",
                tags=["home", " "],
            ),
        ],
    )
    users_repository = UsersRepository(documents)
    users_repository.create_user_document(AuthUser(uid=USER_ID, email="jane@example.com"))
    return ExportService(
        finance_service=finance_service,
        storage_service=storage_service,
        export_logs_repository=ExportLogsRepository(documents),
        users_repository=users_repository,
    )


def test_csv_export_uploads_file_and_logs_it() -> None:
    service = _build()

    result = service.export_transactions(USER_ID, ExportType.CSV)

    assert isinstance(result, ExportResult)
    assert result.file_path.startswith(f"exports/{USER_ID}/")
    assert result.file_path.endswith(".csv")
    content, content_type, _ = service.storage_service.storage.stored_objects[result.file_path]
    assert content_type == "text/csv"
    rows = list(csv.reader(StringIO(content.decode("utf-8"))))
    assert rows[0][:4] == ["date", "description", "amount", "type"]
    assert rows[1][1] == "Groceries, weekly"
    assert rows[1][9] == "home"
    assert result.log.record_count == 2
    assert result.log.file_size == len(content)
    assert service.list_exports(USER_ID).items[0].id == result.log.id


def test_pdf_export_with_category_filter() -> None:
    service = _build()

    result = service.export_transactions(USER_ID, ExportType.PDF, TransactionFilters(category="Food"))

    assert isinstance(result, ExportResult)
    content, content_type, _ = service.storage_service.storage.stored_objects[result.file_path]
    assert content_type == "application/pdf"
    assert content.startswith(b"%PDF")
    assert result.log.record_count == 1
    assert result.log.filters == {"category": "Food"}


def test_free_plan_export_quota_is_enforced() -> None:
    service = _build()
    for _ in range(5):
        assert isinstance(service.export_transactions(USER_ID, ExportType.CSV), ExportResult)

    result = service.export_transactions(USER_ID, ExportType.CSV)

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.VALIDATION_ERROR
    assert result.message == EXPORT_LIMIT_MESSAGE


def test_pdf_export_with_markup_in_category_filter() -> None:
    service = _build()

    result = service.export_transactions(USER_ID, ExportType.PDF, TransactionFilters(category="<Food & Co>"))

    assert isinstance(result, ExportResult)
    assert result.log.record_count == 0
    assert result.log.filters == {"category": "<Food & Co>"}
