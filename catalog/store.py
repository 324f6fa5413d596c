"""Document store backends.

Every backend exposes the same small surface used by the storefront and the
admin tools: ``list``, ``get``, ``create``, ``update`` and ``delete`` over
JSON-like documents grouped in collections. Query constraints are an AND of
equality predicates, one ordering key and a limit.

- ``SQLiteDocumentStore`` keeps documents as JSON in a local SQLite file.
- ``AppwriteDocumentStore`` talks to an Appwrite-style REST API.

Backends raise ``StoreError`` subclasses (see ``catalog.errors``) so callers
can tell retryable failures from fatal ones without reading messages.
"""

import json
import sqlite3
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Mapping, Optional

import requests  # type: ignore[import-untyped]

from catalog.config import (
    APPWRITE_API_KEY,
    APPWRITE_DATABASE_ID,
    APPWRITE_ENDPOINT,
    APPWRITE_PAGE_LIMIT,
    APPWRITE_PROJECT_ID,
    DB_PATH,
    REQUEST_TIMEOUT,
)
from catalog.errors import (
    DocumentNotFoundError,
    RateLimitError,
    StoreError,
    ValidationError,
)
from catalog.logging_config import get_logger

__all__ = [
    "DocumentStore",
    "SQLiteDocumentStore",
    "AppwriteDocumentStore",
    "open_document_store",
]

logger = get_logger("store")


def _check_field_name(name: str) -> str:
    """Field names end up inside SQL JSON paths and REST queries."""
    if not name or not name.replace("_", "").isalnum():
        raise ValidationError(f"Invalid field name: {name!r}")
    return name


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


class DocumentStore(ABC):
    """Minimal document-store contract."""

    @abstractmethod
    def list(
        self,
        collection: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """List documents matching all equality constraints in ``where``.

        ``order_by`` is a field name, prefixed with "-" for descending.
        """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        """Fetch one document; raises DocumentNotFoundError if missing."""

    @abstractmethod
    def create(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
        """Create a document and return its ID."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Merge ``data`` into an existing document."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document."""

    def count(self, collection: str, where: Optional[Mapping[str, Any]] = None) -> int:
        return len(self.list(collection, where=where))


# =============================================================================
# SQLite backend
# =============================================================================

class SQLiteDocumentStore(DocumentStore):
    """JSON documents in a single SQLite table."""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self.init_db()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.IntegrityError as e:
            raise ValidationError(str(e)) from e
        except sqlite3.Error as e:
            raise StoreError(f"SQLite error: {e}") from e
        finally:
            conn.close()

    def init_db(self) -> None:
        """Initialize the database schema."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (collection, id)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
            )
            conn.commit()

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Dict[str, Any]:
        try:
            data = json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning(f"Corrupt JSON in document {row['id']}, returning empty document")
            data = {}
        if not isinstance(data, dict):
            data = {}
        return {"id": row["id"], **data}

    def list(
        self,
        collection: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = "SELECT id, data FROM documents WHERE collection = ?"
        params: List[Any] = [collection]

        for key, value in (where or {}).items():
            if key == "id":
                query += " AND id = ?"
            else:
                query += f" AND json_extract(data, '$.{_check_field_name(key)}') = ?"
            if isinstance(value, bool):
                value = int(value)
            params.append(value)

        if order_by:
            descending = order_by.startswith("-")
            key = _check_field_name(order_by.lstrip("-"))
            direction = "DESC" if descending else "ASC"
            query += f" ORDER BY json_extract(data, '$.{key}') {direction}, id"
        else:
            query += " ORDER BY rowid"

        if limit:
            query += f" LIMIT {int(limit)}"

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_document(row) for row in cursor.fetchall()]

    def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = cursor.fetchone()
        if row is None:
            raise DocumentNotFoundError(f"{collection}/{doc_id} not found", status_code=404)
        return self._row_to_document(row)

    def create(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or _new_id()
        payload = {k: v for k, v in data.items() if k != "id"}
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
                (collection, doc_id, json.dumps(payload, ensure_ascii=False, default=str)),
            )
            conn.commit()
        return doc_id

    def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = cursor.fetchone()
            if row is None:
                raise DocumentNotFoundError(f"{collection}/{doc_id} not found", status_code=404)

            merged = json.loads(row["data"])
            merged.update({k: v for k, v in data.items() if k != "id"})
            cursor.execute("""
                UPDATE documents SET
                    data = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE collection = ? AND id = ?
            """, (json.dumps(merged, ensure_ascii=False, default=str), collection, doc_id))
            conn.commit()

    def delete(self, collection: str, doc_id: str) -> None:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            conn.commit()

    def count(self, collection: str, where: Optional[Mapping[str, Any]] = None) -> int:
        if where:
            return super().count(collection, where)
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) AS count FROM documents WHERE collection = ?",
                (collection,),
            )
            return int(cursor.fetchone()["count"])


# =============================================================================
# Appwrite REST backend
# =============================================================================

class AppwriteDocumentStore(DocumentStore):
    """Document store backed by the Appwrite Databases REST API."""

    def __init__(
        self,
        endpoint: str = APPWRITE_ENDPOINT,
        project_id: str = APPWRITE_PROJECT_ID,
        api_key: str = APPWRITE_API_KEY,
        database_id: str = APPWRITE_DATABASE_ID,
        session: Optional[requests.Session] = None,
        timeout: int = REQUEST_TIMEOUT,
    ):
        if not endpoint or not project_id or not database_id:
            raise ValueError("Appwrite endpoint, project and database IDs are required")
        self.endpoint = endpoint.rstrip("/")
        self.database_id = database_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "X-Appwrite-Project": project_id,
            "Content-Type": "application/json",
        })
        if api_key:
            self.session.headers["X-Appwrite-Key"] = api_key

    def _url(self, collection: str, doc_id: Optional[str] = None) -> str:
        url = f"{self.endpoint}/databases/{self.database_id}/collections/{collection}/documents"
        return f"{url}/{doc_id}" if doc_id else url

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise StoreError(f"Timeout calling {url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Request to {url} failed: {e}") from e

        if resp.status_code >= 400:
            try:
                message = resp.json().get("message", resp.reason)
            except ValueError:
                message = resp.reason
            if resp.status_code == 429:
                raise RateLimitError(f"Rate limit exceeded: {message}", status_code=429)
            if resp.status_code == 404:
                raise DocumentNotFoundError(message, status_code=404)
            if resp.status_code in (400, 409):
                raise ValidationError(message, status_code=resp.status_code)
            raise StoreError(f"HTTP {resp.status_code}: {message}", status_code=resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _to_document(raw: Mapping[str, Any]) -> Dict[str, Any]:
        doc = {k: v for k, v in raw.items() if not k.startswith("$")}
        doc["id"] = raw.get("$id", "")
        return doc

    @staticmethod
    def _query(method: str, attribute: Optional[str] = None, values: Optional[List[Any]] = None) -> str:
        query: Dict[str, Any] = {"method": method}
        if attribute is not None:
            query["attribute"] = attribute
        if values is not None:
            query["values"] = values
        return json.dumps(query, ensure_ascii=False)

    def list(
        self,
        collection: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        base_queries = [
            self._query("equal", _check_field_name(key), [value])
            for key, value in (where or {}).items()
        ]
        if order_by:
            method = "orderDesc" if order_by.startswith("-") else "orderAsc"
            base_queries.append(self._query(method, _check_field_name(order_by.lstrip("-"))))

        documents: List[Dict[str, Any]] = []
        last_id: Optional[str] = None
        while True:
            page_size = APPWRITE_PAGE_LIMIT
            if limit:
                page_size = min(page_size, limit - len(documents))
            queries = base_queries + [self._query("limit", values=[page_size])]
            if last_id:
                queries.append(self._query("cursorAfter", values=[last_id]))

            data = self._request("GET", self._url(collection), params={"queries[]": queries}) or {}
            batch = data.get("documents", [])
            documents.extend(self._to_document(d) for d in batch)
            logger.debug(f"Fetched {len(documents)} documents from {collection}")

            if len(batch) < page_size or (limit and len(documents) >= limit):
                break
            last_id = batch[-1].get("$id")

        return documents

    def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        return self._to_document(self._request("GET", self._url(collection, doc_id)))

    def create(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
        payload = {
            "documentId": doc_id or "unique()",
            "data": {k: v for k, v in data.items() if k != "id"},
        }
        created = self._request("POST", self._url(collection), json=payload)
        return str(created.get("$id", "")) if created else ""

    def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        payload = {"data": {k: v for k, v in data.items() if k != "id"}}
        self._request("PATCH", self._url(collection, doc_id), json=payload)

    def delete(self, collection: str, doc_id: str) -> None:
        self._request("DELETE", self._url(collection, doc_id))


def open_document_store(db_path: str = DB_PATH) -> DocumentStore:
    """Use Appwrite when it is configured, else the local SQLite store."""
    if APPWRITE_ENDPOINT and APPWRITE_PROJECT_ID and APPWRITE_DATABASE_ID:
        logger.info(f"Using Appwrite document store at {APPWRITE_ENDPOINT}")
        return AppwriteDocumentStore()
    logger.info(f"Using SQLite document store at {db_path}")
    return SQLiteDocumentStore(db_path)
