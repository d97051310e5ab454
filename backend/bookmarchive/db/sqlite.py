"""SQLite management utilities."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any, Iterator, Sequence

from bookmarchive.core.errors import ConnectionClosed

DEFAULT_PRAGMAS = (
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
)


class SQLiteDatabase:
    """Thin wrapper around sqlite3 providing pragmatic defaults.

    One connection is shared between the ingestion worker and request
    handlers; every statement runs under a re-entrant lock. After ``close()``
    the handle is terminal and any access raises ``ConnectionClosed``.
    """

    def __init__(
        self,
        db_path: Path,
        wal_mode: bool = True,
        busy_timeout: timedelta = timedelta(seconds=5),
    ) -> None:
        self.db_path = db_path.expanduser()
        self.wal_mode = wal_mode
        self.busy_timeout = busy_timeout
        self._connection: sqlite3.Connection | None = None
        self._closed = False
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        with self._lock:
            if self._closed:
                raise ConnectionClosed(f"database {self.db_path} is closed")
            if self._connection is None:
                self._connection = self._open()
            return self._connection

    def _open(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self.db_path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        timeout_ms = int(self.busy_timeout.total_seconds() * 1000)
        connection.execute(f"PRAGMA busy_timeout={timeout_ms};")
        if self.wal_mode:
            connection.execute("PRAGMA journal_mode=WAL;")
        for pragma in DEFAULT_PRAGMAS:
            connection.execute(pragma)
        return connection

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
            self._closed = True

    def commit(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.commit()

    def rollback(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.rollback()

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        with self._lock:
            conn = self.connect()
            return conn.execute(sql, params or [])

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchall()

    def query_one(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Row | None:
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchone()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            conn = self.connect()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()


__all__ = ["SQLiteDatabase"]
