"""Tests for document store backends and error classification."""

import json
import sqlite3
from unittest.mock import MagicMock

import pytest
import requests

from catalog.errors import (
    DocumentNotFoundError,
    ErrorKind,
    RateLimitError,
    StoreError,
    ValidationError,
    classify_error,
)
from catalog.store import AppwriteDocumentStore, SQLiteDocumentStore


class TestSQLiteDocumentStore:
    """JSON documents in SQLite."""

    @pytest.fixture
    def store(self, tmp_path):
        store = SQLiteDocumentStore(str(tmp_path / "nested" / "catalog.db"))
        store.create("products", {"name": "Oil Filter", "make": "TOYOTA", "price": 120}, doc_id="p1")
        store.create("products", {"name": "Air Filter", "make": "NISSAN", "price": 90}, doc_id="p2")
        store.create("products", {"name": "Brake Pads", "make": "TOYOTA", "price": 300,
                                   "isActive": False}, doc_id="p3")
        return store

    def test_get_includes_id(self, store):
        assert store.get("products", "p1") == {
            "id": "p1", "name": "Oil Filter", "make": "TOYOTA", "price": 120,
        }

    def test_get_missing_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.get("products", "nope")

    def test_list_with_where(self, store):
        docs = store.list("products", where={"make": "TOYOTA"})
        assert {d["id"] for d in docs} == {"p1", "p3"}

    def test_list_where_bool(self, store):
        docs = store.list("products", where={"isActive": False})
        assert [d["id"] for d in docs] == ["p3"]

    def test_list_order_and_limit(self, store):
        docs = store.list("products", order_by="-price", limit=2)
        assert [d["id"] for d in docs] == ["p3", "p1"]

    def test_list_keeps_insertion_order(self, store):
        assert [d["id"] for d in store.list("products")] == ["p1", "p2", "p3"]

    def test_collections_are_separate(self, store):
        assert store.list("transactions") == []
        assert store.count("products") == 3

    def test_create_generates_id(self, store):
        doc_id = store.create("products", {"name": "Wiper"})
        assert doc_id
        assert store.get("products", doc_id)["name"] == "Wiper"

    def test_duplicate_id_is_validation_error(self, store):
        with pytest.raises(ValidationError):
            store.create("products", {"name": "Again"}, doc_id="p1")

    def test_update_merges(self, store):
        store.update("products", "p1", {"price": 99, "id": "ignored"})
        doc = store.get("products", "p1")
        assert doc["price"] == 99
        assert doc["name"] == "Oil Filter"
        assert doc["id"] == "p1"

    def test_update_missing_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.update("products", "nope", {"price": 1})

    def test_delete(self, store):
        store.delete("products", "p2")
        assert store.count("products") == 2

    def test_invalid_field_name(self, store):
        with pytest.raises(ValidationError):
            store.list("products", where={"name') OR 1=1 --": "x"})

    def test_unicode_round_trip(self, store):
        store.create("products", {"name": "فلتر زيت"}, doc_id="ar1")
        assert store.get("products", "ar1")["name"] == "فلتر زيت"


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.reason = "Reason"
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload if payload is not None else {}
    return resp


class TestAppwriteDocumentStore:
    """REST backend with a mocked session."""

    @pytest.fixture
    def session(self):
        session = MagicMock()
        session.headers = {}
        return session

    @pytest.fixture
    def store(self, session):
        return AppwriteDocumentStore(
            endpoint="https://cloud.example.com/v1/",
            project_id="proj",
            api_key="secret",
            database_id="db",
            session=session,
        )

    def test_headers(self, store, session):
        assert session.headers["X-Appwrite-Project"] == "proj"
        assert session.headers["X-Appwrite-Key"] == "secret"

    def test_requires_configuration(self):
        with pytest.raises(ValueError):
            AppwriteDocumentStore(endpoint="", project_id="p", database_id="d", session=MagicMock())

    def test_list_paginates_with_cursor(self, store, session):
        first = [{"$id": f"d{i}", "name": f"P{i}"} for i in range(100)]
        second = [{"$id": "d100", "name": "P100"}]
        session.request.side_effect = [
            _response(payload={"total": 101, "documents": first}),
            _response(payload={"total": 101, "documents": second}),
        ]

        docs = store.list("products", where={"make": "TOYOTA"})

        assert len(docs) == 101
        assert docs[0] == {"id": "d0", "name": "P0"}
        method, url = session.request.call_args_list[1][0]
        assert method == "GET"
        assert url == "https://cloud.example.com/v1/databases/db/collections/products/documents"
        queries = [json.loads(q) for q in session.request.call_args_list[1][1]["params"]["queries[]"]]
        assert {"method": "equal", "attribute": "make", "values": ["TOYOTA"]} in queries
        assert {"method": "cursorAfter", "values": ["d99"]} in queries

    def test_list_respects_limit(self, store, session):
        session.request.return_value = _response(payload={"documents": [{"$id": "a"}, {"$id": "b"}]})
        docs = store.list("products", limit=2)
        assert [d["id"] for d in docs] == ["a", "b"]
        assert session.request.call_count == 1

    def test_create_returns_id(self, store, session):
        session.request.return_value = _response(payload={"$id": "new1"})
        assert store.create("products", {"id": "x", "name": "Oil"}) == "new1"
        payload = session.request.call_args[1]["json"]
        assert payload == {"documentId": "unique()", "data": {"name": "Oil"}}

    def test_update_and_delete(self, store, session):
        session.request.return_value = _response(status_code=204)
        store.update("products", "p1", {"price": 5})
        assert session.request.call_args[0][0] == "PATCH"
        store.delete("products", "p1")
        assert session.request.call_args[0] == (
            "DELETE", "https://cloud.example.com/v1/databases/db/collections/products/documents/p1",
        )

    @pytest.mark.parametrize("status,error_type,kind", [
        (429, RateLimitError, ErrorKind.RETRYABLE),
        (404, DocumentNotFoundError, ErrorKind.VALIDATION),
        (400, ValidationError, ErrorKind.VALIDATION),
        (409, ValidationError, ErrorKind.VALIDATION),
        (503, StoreError, ErrorKind.FATAL),
    ])
    def test_status_mapping(self, store, session, status, error_type, kind):
        session.request.return_value = _response(status_code=status, payload={"message": "nope"})
        with pytest.raises(error_type) as excinfo:
            store.get("products", "p1")
        assert excinfo.value.status_code == status
        assert classify_error(excinfo.value) is kind

    def test_connection_error_is_fatal(self, store, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(StoreError) as excinfo:
            store.get("products", "p1")
        assert classify_error(excinfo.value) is ErrorKind.FATAL


class TestClassifyError:
    """Mapping raw exceptions onto error kinds."""

    def test_typed_errors_keep_their_kind(self):
        assert classify_error(RateLimitError("slow down")) is ErrorKind.RETRYABLE
        assert classify_error(ValidationError("bad")) is ErrorKind.VALIDATION
        assert classify_error(StoreError("down")) is ErrorKind.FATAL

    def test_http_429(self):
        response = requests.Response()
        response.status_code = 429
        assert classify_error(requests.exceptions.HTTPError(response=response)) is ErrorKind.RETRYABLE
        response.status_code = 500
        assert classify_error(requests.exceptions.HTTPError(response=response)) is ErrorKind.FATAL

    def test_locked_database_is_retryable(self):
        assert classify_error(sqlite3.OperationalError("database is locked")) is ErrorKind.RETRYABLE

    def test_rate_limit_message(self):
        assert classify_error(Exception("Rate limit for the current endpoint")) is ErrorKind.RETRYABLE
        assert classify_error(ValueError("429 too many")) is ErrorKind.RETRYABLE
        assert classify_error(RuntimeError("HTTP 429: slow down")) is ErrorKind.RETRYABLE

    def test_429_inside_other_text_is_not_rate_limit(self):
        assert classify_error(ValueError("invalid id p4291")) is ErrorKind.VALIDATION
        assert classify_error(RuntimeError("order 14290 rejected")) is ErrorKind.FATAL
        assert classify_error(RuntimeError("price 1.429 out of range")) is ErrorKind.FATAL

    def test_value_errors_are_validation(self):
        assert classify_error(ValueError("bad price")) is ErrorKind.VALIDATION
        assert classify_error(KeyError("name")) is ErrorKind.VALIDATION

    def test_everything_else_is_fatal(self):
        assert classify_error(RuntimeError("boom")) is ErrorKind.FATAL
