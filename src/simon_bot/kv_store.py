from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set ``key`` only if it is absent or expired. Returns True if this call set it."""
        ...

    def close(self) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        now = self._clock()
        existing = self._entries.get(key)
        if existing is not None and existing[1] > now:
            return False
        self._entries[key] = (value, now + ttl_seconds)
        self._purge_expired(now)
        return True

    def close(self) -> None:
        self._entries.clear()

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


class SqliteKeyValueStore:
    """File-backed store; processes sharing the file agree on a single winner per key."""

    def __init__(self, db_path: str, *, clock: Callable[[], float] = time.time):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False, isolation_level=None)
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._clock = clock
        self._initialize_schema()

    def close(self) -> None:
        self._conn.close()

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        now = self._clock()
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            self._conn.execute("DELETE FROM kv WHERE key = ? AND expires_at <= ?", (key, now))
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO kv (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, now + ttl_seconds),
            )
            inserted = cursor.rowcount == 1
            self._conn.execute("COMMIT")
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        return inserted

    def purge_expired(self) -> int:
        cursor = self._conn.execute("DELETE FROM kv WHERE expires_at <= ?", (self._clock(),))
        return cursor.rowcount

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_kv_expires_at
                ON kv(expires_at);
            """
        )
