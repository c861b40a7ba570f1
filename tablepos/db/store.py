"""Namespaced key-value stores holding whole JSON values."""

from __future__ import annotations

import copy
import json
import sqlite3
from pathlib import Path
from typing import Any, Protocol

from .schema import ensure_schema


class LocalStore(Protocol):
    """Read/write contract shared by the device stores."""

    def get(self, namespace: str, default: Any = None) -> Any: ...

    def set(self, namespace: str, value: Any) -> None: ...

    def delete(self, namespace: str) -> None: ...

    def namespaces(self) -> list[str]: ...


class SQLiteStore:
    """Persists each namespace as one JSON text row in SQLite."""

    def __init__(self, db_path: str | Path = "~/.config/tablepos/pos.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def get(self, namespace: str, default: Any = None) -> Any:
        """Return the decoded value of a namespace.

        A missing row or a value that no longer decodes yields ``default``.
        """
        conn = self._get_conn()
        row = conn.execute(
            "SELECT value FROM records WHERE namespace = ?", (namespace,)
        ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return default

    def set(self, namespace: str, value: Any) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO records (namespace, value, updated_at)
               VALUES (?, ?, datetime('now', 'localtime'))
               ON CONFLICT(namespace) DO UPDATE SET
                   value = excluded.value,
                   updated_at = excluded.updated_at""",
            (namespace, json.dumps(value, ensure_ascii=False)),
        )
        conn.commit()

    def delete(self, namespace: str) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM records WHERE namespace = ?", (namespace,))
        conn.commit()

    def namespaces(self) -> list[str]:
        conn = self._get_conn()
        rows = conn.execute("SELECT namespace FROM records ORDER BY namespace").fetchall()
        return [r["namespace"] for r in rows]


class MemoryStore:
    """In-process store with the same copy semantics as SQLiteStore."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, namespace: str, default: Any = None) -> Any:
        if namespace not in self._data:
            return default
        return copy.deepcopy(self._data[namespace])

    def set(self, namespace: str, value: Any) -> None:
        self._data[namespace] = copy.deepcopy(value)

    def delete(self, namespace: str) -> None:
        self._data.pop(namespace, None)

    def namespaces(self) -> list[str]:
        return sorted(self._data)

    def close(self) -> None:
        pass
