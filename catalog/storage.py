"""Key-value storage for small client state (garage, cart, preferences).

``open_kv_store`` probes the persistent backend once and hands back an
in-memory store when it is unusable, so callers hold a single object and
never branch on availability themselves.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional

from catalog.config import KV_DB_PATH
from catalog.errors import StoreError
from catalog.logging_config import get_logger

__all__ = [
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "MemoryKeyValueStore",
    "open_kv_store",
]

logger = get_logger("storage")

PROBE_KEY = "__storage_probe__"


class KeyValueStore(ABC):
    """String keys mapped to JSON-serializable values."""

    is_persistent = False

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class MemoryKeyValueStore(KeyValueStore):
    """Process-lifetime storage."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return json.loads(self._data[key])

    def set(self, key: str, value: Any) -> None:
        # Serialize so both backends accept and return the same values
        self._data[key] = json.dumps(value, ensure_ascii=False)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class SQLiteKeyValueStore(KeyValueStore):
    """Persistent storage in a SQLite file."""

    is_persistent = True

    def __init__(self, db_path: str = KV_DB_PATH):
        self.db_path = db_path
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=5)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open key-value store {self.db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Key-value store error: {e}") from e
        finally:
            conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        with self.get_connection() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning(f"Discarding corrupt value for key {key!r}")
            return default

    def set(self, key: str, value: Any) -> None:
        with self.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, json.dumps(value, ensure_ascii=False)),
            )
            conn.commit()

    def remove(self, key: str) -> None:
        with self.get_connection() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()

    def clear(self) -> None:
        with self.get_connection() as conn:
            conn.execute("DELETE FROM kv")
            conn.commit()


def open_kv_store(
    db_path: str = KV_DB_PATH,
    on_fallback: Optional[Callable[[str], None]] = None,
) -> KeyValueStore:
    """Open persistent storage, falling back to memory if the probe fails.

    Args:
        db_path: SQLite file for the persistent store.
        on_fallback: Called with the failure reason when memory is used.
    """
    try:
        store = SQLiteKeyValueStore(db_path)
        store.set(PROBE_KEY, "1")
        store.remove(PROBE_KEY)
        return store
    except StoreError as e:
        reason = f"Persistent storage unavailable, using memory: {e}"
        logger.warning(reason)
        if on_fallback:
            on_fallback(reason)
        return MemoryKeyValueStore()
