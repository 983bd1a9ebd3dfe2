"""Tests for statement and transaction repositories over the document store."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from backend.repositories.documents_repository import InMemoryDocumentsRepository
from backend.repositories.statements_repository import StatementsRepository
from backend.repositories.transactions_repository import TransactionsRepository
from shared.models import StatementCreate, StatementStatus, TransactionCreate, TransactionType


class _RecordingDocuments(InMemoryDocumentsRepository):
    def __init__(self) -> None:
        super().__init__()
        self.batch_calls = 0
        self.in_filter_sizes: list[int] = []

    def create_documents(self, collection, items):
        self.batch_calls += 1
        return super().create_documents(collection, items)

    def query_documents(self, collection, **kwargs):
        in_filter = kwargs.get("in_filter")
        if in_filter is not None:
            self.in_filter_sizes.append(len(in_filter[1]))
        return super().query_documents(collection, **kwargs)


def _transaction(day: date, category: str = "Food", amount: str = "10.00") -> TransactionCreate:
    return TransactionCreate(
        date=day,
        description="Shop",
        amount=Decimal(amount),
        type=TransactionType.DEBIT,
        category=category,
    )


def test_save_statement_forces_processed_status() -> None:
    repository = StatementsRepository(InMemoryDocumentsRepository())

    statement = repository.save_statement("u1", StatementCreate(file_name="jan.pdf", bank_name="MCB"))

    assert statement.user_id == "u1"
    assert statement.status == StatementStatus.PROCESSED
    assert statement.metadata == {}
    assert repository.get_statement(statement.id) == statement


def test_list_user_statements_scopes_to_owner() -> None:
    repository = StatementsRepository(InMemoryDocumentsRepository())
    repository.save_statement("u1", StatementCreate(file_name="a.pdf"))
    repository.save_statement("u2", StatementCreate(file_name="b.pdf"))

    items = repository.list_user_statements("u1")

    assert [item.file_name for item in items] == ["a.pdf"]


def test_save_transactions_empty_list_skips_write() -> None:
    documents = _RecordingDocuments()
    repository = TransactionsRepository(documents)

    assert repository.save_transactions(uuid4(), []) == 0
    assert documents.batch_calls == 0


def test_save_transactions_uses_one_batch() -> None:
    documents = _RecordingDocuments()
    repository = TransactionsRepository(documents)
    statement_id = uuid4()

    count = repository.save_transactions(statement_id, [_transaction(date(2025, 1, day)) for day in range(1, 6)])

    assert count == 5
    assert documents.batch_calls == 1
    listed = repository.list_by_statement(statement_id)
    assert [item.date.day for item in listed] == [5, 4, 3, 2, 1]
    assert all(item.statement_id == statement_id for item in listed)


def test_list_by_statements_fans_out_over_every_chunk() -> None:
    documents = _RecordingDocuments()
    repository = TransactionsRepository(documents)
    statement_ids: list[UUID] = [uuid4() for _ in range(23)]
    start = date(2025, 1, 1)
    for index, statement_id in enumerate(statement_ids):
        repository.save_transactions(statement_id, [_transaction(start + timedelta(days=index))])

    items = repository.list_by_statements(statement_ids)

    assert documents.in_filter_sizes == [10, 10, 3]
    assert len(items) == 23
    assert items[0].date == start + timedelta(days=22)
    assert items[-1].date == start


def test_list_by_statements_applies_category_and_limit() -> None:
    repository = TransactionsRepository(InMemoryDocumentsRepository())
    first, second = uuid4(), uuid4()
    repository.save_transactions(first, [_transaction(date(2025, 1, 1)), _transaction(date(2025, 1, 5), "Rent")])
    repository.save_transactions(second, [_transaction(date(2025, 1, 3)), _transaction(date(2025, 1, 4))])

    items = repository.list_by_statements([first, second], category="Food", limit=2)

    assert [item.date.day for item in items] == [4, 3]


def test_update_category_and_delete_by_statement() -> None:
    repository = TransactionsRepository(InMemoryDocumentsRepository())
    statement_id = uuid4()
    repository.save_transactions(statement_id, [_transaction(date(2025, 1, 1)), _transaction(date(2025, 1, 2))])
    transaction = repository.list_by_statement(statement_id)[0]

    updated = repository.update_category(transaction.id, "Groceries", "Supermarket")

    assert updated.category == "Groceries"
    assert updated.subcategory == "Supermarket"
    assert repository.delete_by_statement(statement_id) == 2
    assert repository.list_by_statement(statement_id) == []


def test_update_statement_status() -> None:
    repository = StatementsRepository(InMemoryDocumentsRepository())
    statement = repository.save_statement("u1", StatementCreate(file_name="a.pdf"))

    updated = repository.update_statement_status(statement.id, StatementStatus.ERROR)

    assert updated.status == StatementStatus.ERROR
    repository.delete_statement(statement.id)
    assert repository.get_statement(statement.id) is None
