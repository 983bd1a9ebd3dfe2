"""Tests for user-scoped statement and transaction operations."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

from backend.repositories.documents_repository import InMemoryDocumentsRepository
from backend.repositories.statements_repository import StatementsRepository
from backend.repositories.transactions_repository import TransactionsRepository
from backend.services.finance_service import FinanceService
from backend.services.storage_service import StorageService
from backend.storage.supabase_storage import InMemoryStorageClient
from shared.models import (
    ServiceError,
    ServiceErrorCode,
    Statement,
    StatementCreate,
    StatementStatus,
    TransactionCreate,
    TransactionFilters,
    TransactionType,
)


def _service() -> FinanceService:
    documents = InMemoryDocumentsRepository()
    return FinanceService(
        statements_repository=StatementsRepository(documents),
        transactions_repository=TransactionsRepository(documents),
        storage_service=StorageService(storage=InMemoryStorageClient()),
    )


def _item(day: int, category: str = "Food") -> TransactionCreate:
    return TransactionCreate(
        date=date(2025, 2, day),
        description=f"Item {day}",
        amount=Decimal("12.50"),
        type=TransactionType.DEBIT,
        category=category,
    )


def _statement(service: FinanceService, user_id: str = "u1", file_path: str | None = None) -> Statement:
    statement = service.save_statement(user_id, StatementCreate(file_name="feb.pdf", file_path=file_path))
    assert isinstance(statement, Statement)
    return statement


def test_get_statement_of_other_user_is_not_found() -> None:
    service = _service()
    statement = _statement(service, "owner")

    result = service.get_statement("intruder", statement.id)

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.NOT_FOUND


def test_save_and_list_transactions_by_statement() -> None:
    service = _service()
    statement = _statement(service)

    saved = service.save_transactions("u1", statement.id, [_item(1), _item(3), _item(2)])
    listed = service.get_transactions_by_statement("u1", statement.id)

    assert saved.count == 3
    assert [item.date.day for item in listed.items] == [3, 2, 1]


def test_save_transactions_on_foreign_statement_is_rejected() -> None:
    service = _service()
    statement = _statement(service, "owner")

    result = service.save_transactions("intruder", statement.id, [_item(1)])

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.NOT_FOUND


def test_user_transactions_cover_more_than_ten_statements() -> None:
    service = _service()
    for day in range(1, 13):
        statement = _statement(service)
        service.save_transactions("u1", statement.id, [_item(day)])
    other = _statement(service, "u2")
    service.save_transactions("u2", other.id, [_item(28)])

    result = service.get_user_transactions("u1")

    assert len(result.items) == 12
    assert [item.date.day for item in result.items] == list(range(12, 0, -1))


def test_user_transactions_filter_by_category_and_limit() -> None:
    service = _service()
    statement = _statement(service)
    service.save_transactions("u1", statement.id, [_item(1), _item(2, "Rent"), _item(3), _item(4)])

    result = service.get_user_transactions("u1", TransactionFilters(category="Food", limit=2))

    assert [item.date.day for item in result.items] == [4, 3]


def test_user_without_statements_has_no_transactions() -> None:
    assert _service().get_user_transactions("nobody").items == []


def test_update_transaction_category_checks_ownership() -> None:
    service = _service()
    statement = _statement(service, "owner")
    service.save_transactions("owner", statement.id, [_item(1)])
    transaction = service.get_transactions_by_statement("owner", statement.id).items[0]

    denied = service.update_transaction_category("intruder", transaction.id, "Travel")
    updated = service.update_transaction_category("owner", transaction.id, "Travel", "Flights")

    assert isinstance(denied, ServiceError)
    assert denied.code == ServiceErrorCode.NOT_FOUND
    assert updated.category == "Travel"
    assert updated.subcategory == "Flights"


def test_update_unknown_transaction_is_not_found() -> None:
    result = _service().update_transaction_category("u1", uuid4(), "Travel")

    assert isinstance(result, ServiceError)
    assert result.code == ServiceErrorCode.NOT_FOUND


def test_delete_statement_removes_transactions_and_file() -> None:
    service = _service()
    path = "statements/u1/1700000000000_feb.pdf"
    service.storage_service.storage.upload(path, b"%PDF", "application/pdf")
    statement = _statement(service, file_path=path)
    service.save_transactions("u1", statement.id, [_item(1), _item(2)])

    result = service.delete_statement("u1", statement.id)

    assert result == {"ok": True, "deleted_transactions": 2, "file_deleted": True}
    assert service.storage_service.storage.stored_objects == {}
    missing = service.get_statement("u1", statement.id)
    assert isinstance(missing, ServiceError)
    assert missing.code == ServiceErrorCode.NOT_FOUND


def test_delete_statement_leaves_files_outside_owner_folder() -> None:
    service = _service()
    foreign_path = "statements/u2/secret.pdf"
    service.storage_service.storage.upload(foreign_path, b"%PDF", "application/pdf")
    statement = _statement(service, file_path=foreign_path)

    result = service.delete_statement("u1", statement.id)

    assert result == {"ok": True, "deleted_transactions": 0, "file_deleted": False}
    assert foreign_path in service.storage_service.storage.stored_objects


def test_delete_statement_ignores_parent_segments_in_file_path() -> None:
    service = _service()
    escaped_path = "statements/u1/../../profiles/u2/avatar.png"
    service.storage_service.storage.upload(escaped_path, b"png", "image/png")
    statement = _statement(service, file_path=escaped_path)

    result = service.delete_statement("u1", statement.id)

    assert result["file_deleted"] is False
    assert escaped_path in service.storage_service.storage.stored_objects


def test_update_statement_status_checks_ownership() -> None:
    service = _service()
    statement = _statement(service)

    foreign = service.update_statement_status("u2", statement.id, StatementStatus.ERROR)
    updated = service.update_statement_status("u1", statement.id, StatementStatus.ERROR)

    assert isinstance(foreign, ServiceError)
    assert foreign.code == ServiceErrorCode.NOT_FOUND
    assert isinstance(updated, Statement)
    assert updated.status == StatementStatus.ERROR
    assert service.get_statement("u1", statement.id).status == StatementStatus.ERROR
