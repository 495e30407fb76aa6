"""Key-value record store abstractions backing records, cache entries and schedule marks."""

from __future__ import annotations

import fnmatch
import json
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any, Dict


class StoreError(RuntimeError):
    """Raised when the underlying store cannot be reached or written."""


class RecordStore(ABC):
    """Abstract persistent key-value store with pattern based key listing.

    Keys are namespaced strings (``record:<id>``, ``profile_cache:<key>``,
    ``schedule:<job>`` ...). Values are JSON-serialisable objects. Patterns use
    ``*`` as the only wildcard.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value or ``None`` when absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Create or overwrite ``key``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; return whether something was deleted."""

    @abstractmethod
    def list_keys(self, pattern: str) -> list[str]:
        """Return keys matching ``pattern`` in insertion order."""

    def close(self) -> None:
        return


class MemoryRecordStore(RecordStore):
    """Process-local store, mainly for tests and dry runs."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        # Serialise on write so callers never share mutable state with the store
        payload = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._data[key] = payload

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def list_keys(self, pattern: str) -> list[str]:
        with self._lock:
            keys = list(self._data.keys())
        return [key for key in keys if _matches(key, pattern)]


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


class SQLiteRecordStore(RecordStore):
    """Durable store keeping one JSON document per key in SQLite."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        try:
            self._conn = self.manager.connect(db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open record store at {db_path}: {exc}") from exc

    def get(self, key: str) -> Any | None:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Read failed for {key}: {exc}") from exc
        if row is None:
            return None
        return json.loads(row["value"])

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO kv_store(key, value, updated_at) VALUES (?, ?, datetime('now')) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (key, payload),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"Write failed for {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                cur = self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"Delete failed for {key}: {exc}") from exc
        return cur.rowcount > 0

    def list_keys(self, pattern: str) -> list[str]:
        with self._lock:
            try:
                if "*" not in pattern:
                    rows = self._conn.execute(
                        "SELECT key FROM kv_store WHERE key = ?", (pattern,)
                    ).fetchall()
                else:
                    rows = self._conn.execute(
                        "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY rowid",
                        (_like_pattern(pattern),),
                    ).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(f"Key listing failed for {pattern}: {exc}") from exc
        return [row["key"] for row in rows]


def _matches(key: str, pattern: str) -> bool:
    if "*" not in pattern:
        return key == pattern
    return fnmatch.fnmatchcase(key, pattern.replace("[", "[[]").replace("?", "[?]"))


def _like_pattern(pattern: str) -> str:
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "%")


__all__ = [
    "MemoryRecordStore",
    "RecordStore",
    "SQLiteManager",
    "SQLiteRecordStore",
    "StoreError",
]
