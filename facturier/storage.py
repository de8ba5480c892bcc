"""Key-value persistence for learned profiles and the reference catalog."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

import config

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def profiles_key(supplier: str) -> str:
    return f"profiles:{supplier}"


def references_key(supplier: str) -> str:
    return f"references:{supplier}"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store for tests and hosts that manage persistence themselves."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class SQLiteKeyValueStore:
    """Single-table SQLite store. Errors from sqlite3 propagate to the caller."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path or config.DB_PATH)
        self._connection: sqlite3.Connection | None = None
        self._write_lock = threading.Lock()

    def get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA journal_mode=WAL")
            self.initialize()
        return self._connection

    def initialize(self):
        conn = self.get_connection()
        conn.executescript(SCHEMA)
        conn.commit()
        logger.info(f"Key-value store ready at {self.db_path}")

    def get(self, key: str) -> str | None:
        row = self.get_connection().execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self.get_connection()
        with self._write_lock:
            conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
                (key, value),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        conn = self.get_connection()
        with self._write_lock:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()

    def keys(self, prefix: str = "") -> list[str]:
        rows = self.get_connection().execute(
            "SELECT key FROM kv_store WHERE key LIKE ? ORDER BY key", (f"{prefix}%",)
        ).fetchall()
        return [row["key"] for row in rows]

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SupplierLocks:
    """One re-entrant lock per supplier, so writers to the same partition serialize."""

    def __init__(self):
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, supplier: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(supplier)
            if lock is None:
                lock = threading.RLock()
                self._locks[supplier] = lock
            return lock
