"""Unit tests for Supabase client query encoding and error normalization."""

from __future__ import annotations

import json
from io import BytesIO
from urllib.error import HTTPError

import pytest

from backend.db.supabase_client import SupabaseClient, SupabaseRequestError, SupabaseSettings


def _build_client(anon_key: str | None = None) -> SupabaseClient:
    return SupabaseClient(
        SupabaseSettings(url="https://example.supabase.co", service_role_key="service-role", anon_key=anon_key)
    )


class _Response:
    def __init__(self, body: bytes = b"[]", headers: dict[str, str] | None = None) -> None:
        self._body = body
        self.headers = headers or {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def read(self) -> bytes:
        return self._body


def test_get_rows_uses_doseq_for_repeated_query_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _build_client()

    def _fake_urlopen(request):
        assert "date=gte.2025-01-01" in request.full_url
        assert "date=lte.2025-01-31" in request.full_url
        return _Response()

    monkeypatch.setattr("backend.db.supabase_client.urlopen", _fake_urlopen)

    rows, total = client.get_rows(
        table="transactions",
        query=[("date", "gte.2025-01-01"), ("date", "lte.2025-01-31")],
        with_count=False,
    )

    assert rows == []
    assert total is None


def test_get_rows_parses_exact_count_from_content_range(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _build_client()

    def _fake_urlopen(request):
        assert request.get_header("Prefer") == "count=exact"
        return _Response(b'[{"id": "a"}]', headers={"content-range": "0-0/42"})

    monkeypatch.setattr("backend.db.supabase_client.urlopen", _fake_urlopen)

    rows, total = client.get_rows(table="statements", query={"select": "*"}, with_count=True)

    assert rows == [{"id": "a"}]
    assert total == 42


def test_get_rows_includes_status_and_body_on_http_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _build_client()

    def _raise_http_error(_request):
        raise HTTPError(
            url="https://example.supabase.co/rest/v1/statements",
            code=400,
            msg="Bad Request",
            hdrs=None,
            fp=BytesIO(b"Bad Request from Supabase"),
        )

    monkeypatch.setattr("backend.db.supabase_client.urlopen", _raise_http_error)

    with pytest.raises(SupabaseRequestError, match="status 400") as error:
        client.get_rows(table="statements", query={"select": "*"}, with_count=False)

    assert error.value.status_code == 400
    assert "Bad Request from Supabase" in str(error.value)


def test_anon_mode_without_anon_key_raises() -> None:
    client = _build_client()

    with pytest.raises(ValueError, match="Missing Supabase API key"):
        client.get_rows(table="statements", query={"select": "*"}, with_count=False, use_anon_key=True)


def test_post_rows_sends_list_payload_in_one_request(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _build_client()
    calls: list[object] = []

    def _fake_urlopen(request):
        assert request.get_method() == "POST"
        assert request.full_url == "https://example.supabase.co/rest/v1/transactions"
        assert request.get_header("Prefer") == "return=representation"
        calls.append(json.loads(request.data.decode("utf-8")))
        return _Response(b'[{"id": "1"}, {"id": "2"}]')

    monkeypatch.setattr("backend.db.supabase_client.urlopen", _fake_urlopen)

    rows = client.post_rows(table="transactions", payload=[{"amount": "1.00"}, {"amount": "2.00"}])

    assert rows == [{"id": "1"}, {"id": "2"}]
    assert calls == [[{"amount": "1.00"}, {"amount": "2.00"}]]


def test_upsert_row_sets_on_conflict_and_prefer_header(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _build_client()

    def _fake_urlopen(request):
        assert request.get_method() == "POST"
        assert request.full_url == "https://example.supabase.co/rest/v1/users?on_conflict=id"
        assert request.get_header("Prefer") == "resolution=merge-duplicates,return=representation"
        return _Response(b"")

    monkeypatch.setattr("backend.db.supabase_client.urlopen", _fake_urlopen)

    rows = client.upsert_row(table="users", payload={"id": "uid-1"}, on_conflict="id")

    assert rows == []


def test_patch_rows_wraps_single_object_response(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _build_client()

    def _fake_urlopen(request):
        assert request.get_method() == "PATCH"
        assert request.full_url == "https://example.supabase.co/rest/v1/statements?id=eq.abc"
        return _Response(b'{"id": "abc", "status": "error"}')

    monkeypatch.setattr("backend.db.supabase_client.urlopen", _fake_urlopen)

    rows = client.patch_rows(table="statements", query={"id": "eq.abc"}, payload={"status": "error"})

    assert rows == [{"id": "abc", "status": "error"}]


def test_delete_rows_uses_delete_method_and_query_params(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _build_client()

    def _fake_urlopen(request):
        assert request.get_method() == "DELETE"
        assert request.full_url == (
            "https://example.supabase.co/rest/v1/transactions?"
            "statement_id=eq.00000000-0000-0000-0000-000000000000"
        )
        return _Response()

    monkeypatch.setattr("backend.db.supabase_client.urlopen", _fake_urlopen)

    rows = client.delete_rows(
        table="transactions",
        query={"statement_id": "eq.00000000-0000-0000-0000-000000000000"},
    )

    assert rows == []


def test_healthcheck_requires_url_and_service_key() -> None:
    assert _build_client().healthcheck() is True
    assert SupabaseClient(SupabaseSettings(url="", service_role_key="key")).healthcheck() is False
