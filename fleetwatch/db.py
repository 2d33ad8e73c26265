"""Key-value persistence for Fleetwatch.

Everything the registry stores goes through a small async ``get`` / ``set``
/ ``delete`` contract.  Values are JSON-serialisable Python objects.

Usage::

    from fleetwatch.db import SQLiteStore
    kv = SQLiteStore("./data/fleetwatch.db")   # creates the table if needed
    await kv.set("nodes", [])
    ids = await kv.get("nodes")
"""

from __future__ import annotations

import abc
import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class KeyValueStore(abc.ABC):
    """Async key-value contract consumed by the node registry."""

    @abc.abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None``."""

    @abc.abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*.  Deleting a missing key is not an error."""

    async def close(self) -> None:
        return None


class MemoryStore(KeyValueStore):
    """Process-local store.  Values are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class SQLiteStore(KeyValueStore):
    """SQLite-backed store, one ``kv`` table, values as JSON text.

    A single connection is shared (WAL mode); writes are serialised with a
    lock so each ``set`` lands as one atomic row replacement.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA_SQL)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open database at {self.path}: {exc}") from exc

    async def get(self, key: str) -> Any | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT value FROM kv WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot read {key!r}: {exc}") from exc
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        try:
            with self._lock:
                self._conn.execute(
                    """INSERT INTO kv (key, value) VALUES (?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = CURRENT_TIMESTAMP""",
                    (key, payload),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot write {key!r}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            with self._lock:
                self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot delete {key!r}: {exc}") from exc

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("Closed database %s", self.path)
