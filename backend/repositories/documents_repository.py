"""Generic document CRUD over Supabase tables (one table per collection)."""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from backend.db.supabase_client import SupabaseClient


COLLECTIONS = {
    "USERS": "users",
    "STATEMENTS": "statements",
    "TRANSACTIONS": "transactions",
    "CATEGORIES": "categories",
    "EXPORT_LOGS": "export_logs",
}

# Largest value list accepted by one `in` filter.
IN_QUERY_CHUNK_SIZE = 10


class DocumentNotFoundError(LookupError):
    """Raised when an update targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document not found: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


def server_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def chunked(values: list[Any], size: int = IN_QUERY_CHUNK_SIZE) -> list[list[Any]]:
    """Split values into consecutive chunks of at most `size` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [values[index : index + size] for index in range(0, len(values), size)]


class DocumentsRepository(Protocol):
    def create_document(self, collection: str, data: dict[str, Any]) -> str:
        """Insert one document with server timestamps and return its id."""

    def create_documents(self, collection: str, items: list[dict[str, Any]]) -> list[str]:
        """Insert many documents in one all-or-nothing write and return their ids."""

    def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Write one document under an explicit id, replacing any existing one."""

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return one document with its id, or None."""

    def update_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into one document and return the updated document."""

    def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete one document; deleting a missing document is a no-op."""

    def delete_where(self, collection: str, equals: dict[str, Any]) -> int:
        """Delete every document matching all equality filters and return the count."""

    def query_documents(
        self,
        collection: str,
        *,
        equals: dict[str, Any] | None = None,
        in_filter: tuple[str, list[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return documents matching equality / membership filters."""


def _sort_rows(rows: list[dict[str, Any]], order_by: str, descending: bool) -> list[dict[str, Any]]:
    return sorted(
        rows,
        key=lambda row: (row.get(order_by) is None, row.get(order_by)),
        reverse=descending,
    )


class InMemoryDocumentsRepository:
    """In-memory document store used for local dev/tests when Supabase is not configured."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def create_document(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = str(data.get("id") or uuid4())
        now = server_timestamp()
        self._collection(collection)[doc_id] = {
            **deepcopy(data),
            "id": doc_id,
            "created_at": now,
            "updated_at": now,
        }
        return doc_id

    def create_documents(self, collection: str, items: list[dict[str, Any]]) -> list[str]:
        now = server_timestamp()
        staged = {
            str(item.get("id") or uuid4()): {**deepcopy(item), "created_at": now, "updated_at": now}
            for item in items
        }
        documents = self._collection(collection)
        for doc_id, row in staged.items():
            documents[doc_id] = {**row, "id": doc_id}
        return list(staged)

    def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        stored = {**deepcopy(data), "id": doc_id}
        self._collection(collection)[doc_id] = stored
        return deepcopy(stored)

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        stored = self._collection(collection).get(doc_id)
        return deepcopy(stored) if stored is not None else None

    def update_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        documents = self._collection(collection)
        if doc_id not in documents:
            raise DocumentNotFoundError(collection, doc_id)
        documents[doc_id] = {
            **documents[doc_id],
            **deepcopy(data),
            "id": doc_id,
            "updated_at": server_timestamp(),
        }
        return deepcopy(documents[doc_id])

    def delete_document(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def delete_where(self, collection: str, equals: dict[str, Any]) -> int:
        documents = self._collection(collection)
        matching_ids = [
            doc_id
            for doc_id, row in documents.items()
            if all(row.get(field) == value for field, value in equals.items())
        ]
        for doc_id in matching_ids:
            documents.pop(doc_id)
        return len(matching_ids)

    def query_documents(
        self,
        collection: str,
        *,
        equals: dict[str, Any] | None = None,
        in_filter: tuple[str, list[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = list(self._collection(collection).values())
        for field, value in (equals or {}).items():
            rows = [row for row in rows if row.get(field) == value]
        if in_filter is not None:
            field, values = in_filter
            if len(values) > IN_QUERY_CHUNK_SIZE:
                raise ValueError(f"'in' filter accepts at most {IN_QUERY_CHUNK_SIZE} values")
            allowed = set(values)
            rows = [row for row in rows if row.get(field) in allowed]
        if order_by:
            rows = _sort_rows(rows, order_by, descending)
        if limit is not None:
            rows = rows[:limit]
        return [deepcopy(row) for row in rows]


class SupabaseDocumentsRepository:
    """Supabase-backed document store; each collection maps to one table."""

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    @staticmethod
    def _format_in_values(values: list[Any]) -> str:
        return ",".join(str(value) for value in values)

    def create_document(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = str(data.get("id") or uuid4())
        now = server_timestamp()
        rows = self._client.post_rows(
            table=collection,
            payload={**data, "id": doc_id, "created_at": now, "updated_at": now},
            use_anon_key=False,
        )
        if rows and rows[0].get("id"):
            return str(rows[0]["id"])
        return doc_id

    def create_documents(self, collection: str, items: list[dict[str, Any]]) -> list[str]:
        if not items:
            return []
        now = server_timestamp()
        payload = [
            {**item, "id": str(item.get("id") or uuid4()), "created_at": now, "updated_at": now}
            for item in items
        ]
        # PostgREST runs a bulk insert in a single transaction.
        rows = self._client.post_rows(table=collection, payload=payload, use_anon_key=False)
        if rows:
            return [str(row["id"]) for row in rows if row.get("id")]
        return [str(item["id"]) for item in payload]

    def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        rows = self._client.upsert_row(
            table=collection,
            payload={**data, "id": doc_id},
            on_conflict="id",
            use_anon_key=False,
        )
        return rows[0] if rows else {**data, "id": doc_id}

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        rows, _ = self._client.get_rows(
            table=collection,
            query={"select": "*", "id": f"eq.{doc_id}", "limit": 1},
            with_count=False,
            use_anon_key=False,
        )
        if not rows:
            return None
        return rows[0]

    def update_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload = {key: value for key, value in data.items() if key != "id"}
        payload["updated_at"] = server_timestamp()
        rows = self._client.patch_rows(
            table=collection,
            query={"id": f"eq.{doc_id}"},
            payload=payload,
            use_anon_key=False,
        )
        if not rows:
            raise DocumentNotFoundError(collection, doc_id)
        return rows[0]

    def delete_document(self, collection: str, doc_id: str) -> None:
        self._client.delete_rows(
            table=collection,
            query={"id": f"eq.{doc_id}"},
            use_anon_key=False,
        )

    def delete_where(self, collection: str, equals: dict[str, Any]) -> int:
        if not equals:
            raise ValueError("delete_where requires at least one filter")
        query: list[tuple[str, str | int]] = [(field, f"eq.{value}") for field, value in equals.items()]
        query.append(("select", "id"))
        rows = self._client.delete_rows(table=collection, query=query, use_anon_key=False)
        return len(rows)

    def query_documents(
        self,
        collection: str,
        *,
        equals: dict[str, Any] | None = None,
        in_filter: tuple[str, list[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        query: list[tuple[str, str | int]] = [("select", "*")]
        for field, value in (equals or {}).items():
            query.append((field, f"eq.{value}"))
        if in_filter is not None:
            field, values = in_filter
            if len(values) > IN_QUERY_CHUNK_SIZE:
                raise ValueError(f"'in' filter accepts at most {IN_QUERY_CHUNK_SIZE} values")
            query.append((field, f"in.({self._format_in_values(values)})"))
        if order_by:
            query.append(("order", f"{order_by}.{'desc' if descending else 'asc'}"))
        if limit is not None:
            query.append(("limit", limit))
        rows, _ = self._client.get_rows(table=collection, query=query, with_count=False, use_anon_key=False)
        return rows
