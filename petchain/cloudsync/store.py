"""Durable key-value storage for queue contents, sync status and credentials."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from copy import deepcopy
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from .errors import PersistenceFailure

_LOGGER = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Interface consumed by the credential manager and the mutation queue."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def set_many(self, items: Mapping[str, Any]) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; values are deep-copied so callers never share state."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = deepcopy(dict(initial or {}))

    async def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = deepcopy(value)

    async def set_many(self, items: Mapping[str, Any]) -> None:
        self._data.update(deepcopy(dict(items)))

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        return deepcopy(self._data)


class SQLiteStore:
    """SQLite-backed store. Blocking calls run in a worker thread."""

    def __init__(self, path: str | Path) -> None:
        self._is_memory = str(path) == ":memory:"
        self.path = Path(path)
        if not self._is_memory:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._shared_conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        try:
            self._ensure_schema()
        except sqlite3.Error as err:
            raise PersistenceFailure(f"unable to initialise store at {path}: {err}") from err

    # ------------------------------------------------------------------
    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._is_memory:
                if self._shared_conn is None:
                    self._shared_conn = sqlite3.connect(":memory:", check_same_thread=False)
                    self._shared_conn.row_factory = sqlite3.Row
                yield self._shared_conn
            else:
                conn = sqlite3.connect(self.path)
                conn.row_factory = sqlite3.Row
                try:
                    yield conn
                finally:
                    conn.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    # ------------------------------------------------------------------
    def _get(self, key: str) -> Any | None:
        with self._connection() as conn:
            row = conn.execute("SELECT value FROM kv_entries WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return json.loads(row["value"])

    def _set_many(self, items: Mapping[str, Any]) -> None:
        now = datetime.now(tz=UTC).isoformat()
        rows = [(key, json.dumps(value, separators=(",", ":")), now) for key, value in items.items()]
        with self._connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO kv_entries(key, value, updated_at) VALUES(?, ?, ?)",
                rows,
            )
            conn.commit()

    def _remove(self, key: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
            conn.commit()

    async def _run(self, func, *args) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except (sqlite3.Error, TypeError, ValueError) as err:
            _LOGGER.error("Persistent store operation %s failed: %s", func.__name__, err)
            raise PersistenceFailure(f"{func.__name__.lstrip('_')} failed: {err}") from err

    async def get(self, key: str) -> Any | None:
        return await self._run(self._get, key)

    async def set(self, key: str, value: Any) -> None:
        await self._run(self._set_many, {key: value})

    async def set_many(self, items: Mapping[str, Any]) -> None:
        await self._run(self._set_many, dict(items))

    async def remove(self, key: str) -> None:
        await self._run(self._remove, key)

    def close(self) -> None:
        with self._lock:
            if self._shared_conn is not None:
                self._shared_conn.close()
                self._shared_conn = None


__all__ = ["KeyValueStore", "MemoryStore", "SQLiteStore"]
