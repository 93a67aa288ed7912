from __future__ import annotations

"""
SQLite-backed KV
================

A small, fast embedded store using SQLite (BLOB keys & values).

- File: `<directory>/<name>.db`
- Table schema: kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)
- Keys/values are raw bytes; BLOB ordering is memcmp, i.e. the same
  lexicographic order Python uses for `bytes`.

Pragmas tuned for node workloads:
- WAL journal, NORMAL sync, page/cache tuned, mmap enabled.
- Sync writes (`set_sync`, `delete_sync`, `write_sync`) run with
  `synchronous=FULL` so the commit is on disk before returning.

Threading:
- One writer connection opened with `check_same_thread=False`; the store lock
  serializes access to it. Batches execute inside a single
  `BEGIN IMMEDIATE` transaction.
- Each iterator opens its own read connection and holds a read transaction
  for its lifetime. Under WAL that pins a snapshot: writes committed after
  the iterator was created are not visible to it.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from .base import BaseDB, BaseIterator, Op
from .errors import wrap_engine
from .registry import SQLITE, make_path, register_backend

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",      # concurrent readers with one writer
    "synchronous": "NORMAL",    # durability vs speed trade (NORMAL is fine with WAL)
    "temp_store": "MEMORY",
    "mmap_size": 256 * 1024 * 1024,  # 256 MiB
    "cache_size": -64 * 1024,  # negative = KiB; 64 MiB
    "busy_timeout": 5000,  # ms
}

_UPSERT = "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v"
_DELETE = "DELETE FROM kv WHERE k = ?"


def _apply_pragmas(conn: sqlite3.Connection, pragmas: Dict[str, Any]) -> None:
    cur = conn.cursor()
    cur.execute("PRAGMA journal_mode=%s" % pragmas["journal_mode"])
    cur.execute("PRAGMA synchronous=%s" % pragmas["synchronous"])
    cur.execute("PRAGMA temp_store=%s" % pragmas["temp_store"])
    cur.execute("PRAGMA mmap_size=%d" % int(pragmas["mmap_size"]))
    cur.execute("PRAGMA cache_size=%d" % int(pragmas["cache_size"]))
    cur.execute("PRAGMA busy_timeout=%d" % int(pragmas["busy_timeout"]))
    cur.close()


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            k BLOB PRIMARY KEY,
            v BLOB NOT NULL
        )
        """
    )


def _is_busy(exc: sqlite3.Error) -> bool:
    """Lock contention from another connection or process; the open may succeed later."""
    msg = str(exc).lower()
    return isinstance(exc, sqlite3.OperationalError) and ("locked" in msg or "busy" in msg)


def _connect(path: str, busy_timeout_ms: int) -> sqlite3.Connection:
    return sqlite3.connect(
        path,
        timeout=busy_timeout_ms / 1000.0,
        detect_types=0,
        isolation_level=None,      # autocommit; we explicitly BEGIN for batches
        check_same_thread=False,   # guarded by the store lock
    )


def _range_query(
    start: Optional[bytes], end: Optional[bytes], reverse: bool
) -> Tuple[str, Tuple[bytes, ...]]:
    conds: List[str] = []
    args: List[bytes] = []
    if start is not None:
        conds.append("k >= ?")
        args.append(start)
    if end is not None:
        conds.append("k < ?")
        args.append(end)
    sql = "SELECT k, v FROM kv"
    if conds:
        sql += " WHERE " + " AND ".join(conds)
    sql += " ORDER BY k DESC" if reverse else " ORDER BY k ASC"
    return sql, tuple(args)


class SQLiteIterator(BaseIterator):
    """Streams a range query over a dedicated read connection."""

    def __init__(
        self,
        path: str,
        start: Optional[bytes],
        end: Optional[bytes],
        reverse: bool,
        busy_timeout_ms: int,
    ) -> None:
        super().__init__(start, end, reverse)
        self._conn: Optional[sqlite3.Connection] = _connect(path, busy_timeout_ms)
        try:
            self._conn.execute("PRAGMA query_only=ON")
            self._conn.execute("BEGIN")
            sql, args = _range_query(start, end, reverse)
            self._rows = self._conn.execute(sql, args)
        except BaseException:
            self._conn.close()
            self._conn = None
            raise

    def _advance(self) -> Optional[Tuple[bytes, bytes]]:
        row = self._rows.fetchone()
        if row is None:
            return None
        return bytes(row[0]), bytes(row[1])

    def _release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            self._rows.close()
        finally:
            # Closing the connection also ends its read transaction.
            conn.close()


class SQLiteDB(BaseDB):
    """
    SQLite-backed store. Use `new_sqlite(name, directory)` or the registry.
    """

    backend = SQLITE

    def __init__(
        self,
        name: str,
        directory: str,
        *,
        pragmas: Optional[Dict[str, Any]] = None,
        low_priority: bool = False,
    ) -> None:
        super().__init__(name, low_priority=low_priority)
        self._pragmas = dict(DEFAULT_PRAGMAS)
        if pragmas:
            self._pragmas.update(pragmas)

        db_dir = make_path(directory)
        self._path = os.path.join(db_dir, name + ".db")
        try:
            conn = _connect(self._path, int(self._pragmas["busy_timeout"]))
        except sqlite3.Error as e:
            raise wrap_engine(
                e, "cannot open sqlite db", retryable=_is_busy(e), path=self._path
            ) from e
        try:
            _apply_pragmas(conn, self._pragmas)
            _migrate(conn)
        except sqlite3.Error as e:
            conn.close()
            raise wrap_engine(
                e, "cannot initialize sqlite db", retryable=_is_busy(e), path=self._path
            ) from e
        self._conn = conn
        self._log.debug("opened", extra={"path": self._path})

    @property
    def path(self) -> str:
        return self._path

    @contextmanager
    def _synchronous(self, sync: bool):
        if not sync:
            yield
            return
        self._conn.execute("PRAGMA synchronous=FULL")
        try:
            yield
        finally:
            self._conn.execute("PRAGMA synchronous=%s" % self._pragmas["synchronous"])

    # --- engine hooks ---

    def _get(self, key: bytes) -> Optional[bytes]:
        cur = self._conn.execute("SELECT v FROM kv WHERE k = ?", (key,))
        row = cur.fetchone()
        cur.close()
        return bytes(row[0]) if row is not None else None

    def _has(self, key: bytes) -> bool:
        cur = self._conn.execute("SELECT 1 FROM kv WHERE k = ? LIMIT 1", (key,))
        row = cur.fetchone()
        cur.close()
        return row is not None

    def _set(self, key: bytes, value: bytes, sync: bool) -> None:
        with self._synchronous(sync):
            self._conn.execute(_UPSERT, (key, value))

    def _delete(self, key: bytes, sync: bool) -> None:
        with self._synchronous(sync):
            self._conn.execute(_DELETE, (key,))

    def _write_batch(self, ops: List[Op], sync: bool) -> None:
        with self._synchronous(sync):
            # BEGIN IMMEDIATE takes the write lock up front; readers continue.
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                for key, value in ops:
                    if value is None:
                        self._conn.execute(_DELETE, (key,))
                    else:
                        self._conn.execute(_UPSERT, (key, value))
                self._conn.execute("COMMIT")
            except BaseException:
                # A failed COMMIT can leave the transaction open; never let
                # later writes run inside it.
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise

    def _new_iterator(
        self, start: Optional[bytes], end: Optional[bytes], reverse: bool
    ) -> BaseIterator:
        return SQLiteIterator(
            self._path, start, end, reverse, int(self._pragmas["busy_timeout"])
        )

    def _pragma(self, name: str) -> str:
        try:
            row = self._conn.execute(f"PRAGMA {name}").fetchone()
        except sqlite3.Error:
            return ""
        return "" if row is None else str(row[0])

    def _stats(self) -> Dict[str, object]:
        return {
            "sqlite.version": sqlite3.sqlite_version,
            "sqlite.path": self._path,
            "sqlite.journal_mode": self._pragma("journal_mode"),
            "sqlite.page_size": self._pragma("page_size"),
            "sqlite.page_count": self._pragma("page_count"),
            "sqlite.freelist_count": self._pragma("freelist_count"),
        }

    def _close(self) -> None:
        self._conn.close()


def new_sqlite(name: str, directory: Optional[str], **options: Any) -> SQLiteDB:
    if not directory:
        raise ValueError("sqlite backend requires a directory")
    return SQLiteDB(name, directory, **options)


register_backend(SQLITE, new_sqlite, requires_dir=True)


__all__ = [
    "DEFAULT_PRAGMAS",
    "SQLiteDB",
    "SQLiteIterator",
    "new_sqlite",
]
