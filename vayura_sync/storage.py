# vayura_sync/storage.py
"""
Embedded durable storage for the offline caches.

One SQLite file, one table per cache kind. Each row persists exactly
{payload, inserted_at, last_accessed_at} keyed by the cache key; the payload is
stored as JSON text. The connection is opened lazily on first use and shared by
every table, so a process holds a single long-lived handle.

Everything here is synchronous. PersistentStore calls it through
asyncio.to_thread and serializes access per store.
"""
from __future__ import annotations

import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from vayura_sync.errors import StorageOpenError, StorageUnavailable

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")

Row = Tuple[str, str, float, float]  # key, payload_json, inserted_at, last_accessed_at


class SQLiteDatabase:
    """Lazily-opened SQLite handle shared by all cache tables."""

    def __init__(self, path: str | Path = ":memory:"):
        self.path = str(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _open(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        try:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.path, check_same_thread=False)
            if self.path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
        except (sqlite3.Error, OSError) as e:
            raise StorageOpenError(f"cannot open cache database {self.path}: {e}") from e
        logger.info("Opened offline cache database at %s", self.path)
        self._conn = conn
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialized, atomic unit of work. Driver errors surface as StorageUnavailable."""
        with self._lock:
            conn = self._open()
            try:
                with conn:
                    yield conn
            except (sqlite3.Error, OSError) as e:
                raise StorageUnavailable(str(e)) from e

    def table(self, name: str) -> "SQLiteTable":
        return SQLiteTable(self, name)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class SQLiteTable:
    """Row-level operations on one cache table."""

    def __init__(self, db: SQLiteDatabase, name: str):
        if not _TABLE_NAME.match(name):
            raise ValueError(f"invalid table name: {name!r}")
        self.db = db
        self.name = name
        self._ready = False

    def _ensure(self, conn: sqlite3.Connection) -> None:
        if self._ready:
            return
        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {self.name} ("
            " key TEXT PRIMARY KEY,"
            " payload TEXT NOT NULL,"
            " inserted_at REAL NOT NULL,"
            " last_accessed_at REAL NOT NULL)"
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS {self.name}_last_accessed "
            f"ON {self.name} (last_accessed_at)"
        )
        self._ready = True

    def read(self, key: str) -> Optional[Row]:
        with self.db.transaction() as conn:
            self._ensure(conn)
            return conn.execute(
                f"SELECT key, payload, inserted_at, last_accessed_at FROM {self.name} WHERE key = ?",
                (key,),
            ).fetchone()

    def exists(self, key: str) -> bool:
        with self.db.transaction() as conn:
            self._ensure(conn)
            return conn.execute(f"SELECT 1 FROM {self.name} WHERE key = ?", (key,)).fetchone() is not None

    def write(self, key: str, payload: str, inserted_at: float, last_accessed_at: float) -> None:
        with self.db.transaction() as conn:
            self._ensure(conn)
            conn.execute(
                f"INSERT OR REPLACE INTO {self.name} (key, payload, inserted_at, last_accessed_at) "
                "VALUES (?, ?, ?, ?)",
                (key, payload, inserted_at, last_accessed_at),
            )

    def touch(self, key: str, last_accessed_at: float) -> None:
        with self.db.transaction() as conn:
            self._ensure(conn)
            conn.execute(
                f"UPDATE {self.name} SET last_accessed_at = MAX(?, inserted_at, last_accessed_at) WHERE key = ?",
                (last_accessed_at, key),
            )

    def remove(self, key: str) -> None:
        with self.db.transaction() as conn:
            self._ensure(conn)
            conn.execute(f"DELETE FROM {self.name} WHERE key = ?", (key,))

    def purge(self) -> None:
        with self.db.transaction() as conn:
            self._ensure(conn)
            conn.execute(f"DELETE FROM {self.name}")

    def count(self) -> int:
        with self.db.transaction() as conn:
            self._ensure(conn)
            return conn.execute(f"SELECT COUNT(*) FROM {self.name}").fetchone()[0]

    def rows(self) -> List[Row]:
        with self.db.transaction() as conn:
            self._ensure(conn)
            return conn.execute(
                f"SELECT key, payload, inserted_at, last_accessed_at FROM {self.name}"
            ).fetchall()

    def evict_over(self, capacity: int, keep: str) -> List[str]:
        """
        Remove least-recently-accessed rows until at most `capacity` remain.
        `keep` is never removed. Returns the evicted keys, oldest first.
        """
        with self.db.transaction() as conn:
            self._ensure(conn)
            total = conn.execute(f"SELECT COUNT(*) FROM {self.name}").fetchone()[0]
            excess = total - capacity
            if excess <= 0:
                return []
            victims = [
                r[0]
                for r in conn.execute(
                    f"SELECT key FROM {self.name} WHERE key != ? "
                    "ORDER BY last_accessed_at ASC, rowid ASC LIMIT ?",
                    (keep, excess),
                ).fetchall()
            ]
            conn.executemany(f"DELETE FROM {self.name} WHERE key = ?", [(k,) for k in victims])
            return victims
