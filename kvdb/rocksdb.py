from __future__ import annotations

"""
RocksDB-backed KV (optional)
============================

A high-throughput store using python-rocksdb when available. If the module or
native library is missing the backend is simply not registered, and
`new_rocksdb` raises a helpful `DependencyMissing`.

Features
- Binary keys & values (bytes in, bytes out)
- Range scans via iterator seek / seek_for_prev over an engine snapshot, so an
  iterator never sees writes made after it was created
- Atomic batches via WriteBatch; sync writes pass `sync=True`
- Tuned defaults: 1 GiB LRU block cache, Bloom filter (10 bits/key), LZ4,
  parallelism sized to the CPU count, level-style compaction with a 512 MiB
  memtable budget

Layout: `<directory>/<name>.db`.
"""

import os
from typing import Any, Dict, List, Optional, Tuple

try:
    import rocksdb  # type: ignore
    _ROCKS_OK = True
except Exception:
    rocksdb = None  # type: ignore
    _ROCKS_OK = False

from .base import BaseDB, BaseIterator, Op
from .errors import DependencyMissing, wrap_engine
from .registry import ROCKSDB, make_path, register_backend

BLOCK_CACHE_BYTES = 1 << 30
MEMTABLE_BUDGET_BYTES = 512 * 1024 * 1024
STATS_PROPERTIES = ("rocksdb.stats",)


def _err_help() -> DependencyMissing:
    return DependencyMissing(
        "python-rocksdb",
        "apt-get install librocksdb-dev && pip install python-rocksdb",
    )


def default_options() -> "rocksdb.Options":  # type: ignore[name-defined]
    """
    Defaults good enough for most workloads, including heavy ones: point
    lookups, prefix scans and write bursts.
    """
    if not _ROCKS_OK:
        raise _err_help()
    opts = rocksdb.Options()  # type: ignore[attr-defined]
    opts.create_if_missing = True
    opts.max_open_files = 512
    opts.compression = rocksdb.CompressionType.lz4_compression  # type: ignore[attr-defined]
    opts.table_factory = rocksdb.BlockBasedTableFactory(  # type: ignore[attr-defined]
        block_cache=rocksdb.LRUCache(BLOCK_CACHE_BYTES),
        filter_policy=rocksdb.BloomFilterPolicy(10),
    )
    opts.IncreaseParallelism(os.cpu_count() or 1)
    opts.OptimizeLevelStyleCompaction(MEMTABLE_BUDGET_BYTES)
    return opts


class RocksIterator(BaseIterator):
    """
    Engine cursor over a snapshot. Forward cursors seek to `start`; reverse
    cursors seek_for_prev to `end`. BaseIterator trims anything outside the range.
    """

    def __init__(
        self,
        db: "rocksdb.DB",  # type: ignore[name-defined]
        start: Optional[bytes],
        end: Optional[bytes],
        reverse: bool,
    ) -> None:
        super().__init__(start, end, reverse)
        self._snap = db.snapshot()
        it = db.iteritems(snapshot=self._snap)
        if reverse:
            if end is not None:
                it.seek_for_prev(end)
            else:
                it.seek_to_last()
            self._it: Any = reversed(it)
        else:
            if start is not None:
                it.seek(start)
            else:
                it.seek_to_first()
            self._it = it

    def _advance(self) -> Optional[Tuple[bytes, bytes]]:
        if self._it is None:
            return None
        return next(self._it, None)

    def _release(self) -> None:
        # Drop the cursor before its snapshot; native handles free on dealloc.
        self._it = None
        self._snap = None


class RocksDB(BaseDB):
    """
    RocksDB-backed store. Use `new_rocksdb(name, directory)` or the registry.
    """

    backend = ROCKSDB

    def __init__(
        self,
        name: str,
        directory: str,
        *,
        options: Optional["rocksdb.Options"] = None,  # type: ignore[name-defined]
        low_priority: bool = False,
    ) -> None:
        if not _ROCKS_OK:
            raise _err_help()
        super().__init__(name, low_priority=low_priority)
        self._path = os.path.join(make_path(directory), name + ".db")
        opts = options or default_options()
        try:
            self._db = rocksdb.DB(self._path, opts)  # type: ignore[attr-defined]
        except Exception as e:
            # Another process holding the LOCK file is the one transient open failure.
            held = "lock" in str(e).lower()
            raise wrap_engine(e, "cannot open rocksdb", retryable=held, path=self._path) from e
        self._log.debug("opened", extra={"path": self._path})

    @property
    def path(self) -> str:
        return self._path

    # --- engine hooks ---

    def _get(self, key: bytes) -> Optional[bytes]:
        v = self._db.get(key)
        return v if v is None else bytes(v)

    def _set(self, key: bytes, value: bytes, sync: bool) -> None:
        self._db.put(key, value, sync=sync)

    def _delete(self, key: bytes, sync: bool) -> None:
        self._db.delete(key, sync=sync)

    def _write_batch(self, ops: List[Op], sync: bool) -> None:
        wb = rocksdb.WriteBatch()  # type: ignore[attr-defined]
        for key, value in ops:
            if value is None:
                wb.delete(key)
            else:
                wb.put(key, value)
        self._db.write(wb, sync=sync)

    def _new_iterator(
        self, start: Optional[bytes], end: Optional[bytes], reverse: bool
    ) -> BaseIterator:
        return RocksIterator(self._db, start, end, reverse)

    def _stats(self) -> Dict[str, object]:
        stats: Dict[str, object] = {}
        for prop in STATS_PROPERTIES:
            raw = self._db.get_property(prop.encode())
            stats[prop] = raw.decode("utf-8", "replace") if raw else ""
        return stats

    def _close(self) -> None:
        db, self._db = self._db, None
        close = getattr(db, "close", None)
        if close is not None:
            close()


def new_rocksdb(name: str, directory: Optional[str], **options: Any) -> RocksDB:
    if not directory:
        raise ValueError("rocksdb backend requires a directory")
    return RocksDB(name, directory, **options)


if _ROCKS_OK:
    register_backend(ROCKSDB, new_rocksdb, requires_dir=True)


__all__ = [
    "RocksDB",
    "RocksIterator",
    "default_options",
    "new_rocksdb",
    "_ROCKS_OK",
]
