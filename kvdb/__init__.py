from __future__ import annotations

"""
kvdb
====

Backend-agnostic key-value storage: one contract (get/set/delete, ordered
iterators, atomic batches) over several engines, constructed by name.

Backends
--------
- memdb   (always available; in-memory)
- sqlite  (always available; default on-disk engine)
- rocksdb (optional; registered if python-rocksdb imports)

URIs
----
- "memdb://name"                  → in-memory store called `name`
- "sqlite:///path/to/dir/name"    → SQLite file path/to/dir/name.db
- "rocksdb:///path/to/dir/name"   → RocksDB directory path/to/dir/name.db
- Bare path heuristics:
    * endswith(".db") → sqlite file path
    * otherwise       → rocksdb if available, else sqlite

Paths after `scheme:///` are relative; use four slashes for absolute ones
(`sqlite:////var/lib/app/state`).

Example
-------
>>> from kvdb import open_db
>>> db = open_db("memdb://scratch")
>>> with db.new_batch() as b:
...     b.set(b"k", b"hello")
>>> db.get(b"k")
b'hello'
"""

import os
from typing import Any, Optional, Tuple

from .errors import (BatchClosedError, ClosedResourceError, EmptyKeyError,
                     EngineFailure, InvalidIteratorError, KVError,
                     NilValueError, NotFoundError, StoreClosedError)
from .kv import (DB, Batch, Iterator, ReadOnlyDB, delete_many, get_or_raise,
                 iter_items, iter_prefixed, set_many)
from .ranges import prefix_to_range
from .registry import (MEMDB, ROCKSDB, SQLITE, backends, new_db,
                       register_backend)
from .version import __version__

# --- Required backends -------------------------------------------------------

from . import memdb as _memdb_backend  # noqa: F401
from . import sqlite as _sqlite_backend  # noqa: F401

# --- Optional backend: RocksDB ------------------------------------------------

from . import rocksdb as _rocks_backend  # noqa: F401


def prefer_rocks() -> bool:
    """Return True if the RocksDB backend is importable."""
    return _rocks_backend._ROCKS_OK


def _split_path(path: str) -> Tuple[str, str]:
    directory, base = os.path.split(path)
    if base.endswith(".db"):
        base = base[: -len(".db")]
    return directory or ".", base


def _parse_uri(uri: str) -> Tuple[str, str, Optional[str]]:
    """
    Parse a DB URI into (backend, name, directory).
    """
    u = uri.strip()
    if not u:
        raise ValueError("empty DB URI")
    for scheme in (MEMDB, "memory"):
        prefix = scheme + "://"
        if u.startswith(prefix):
            return (MEMDB, u[len(prefix):] or "kvdb", None)
    for scheme in (SQLITE, ROCKSDB):
        prefix = scheme + ":///"
        if u.startswith(prefix):
            directory, name = _split_path(u[len(prefix):])
            return (scheme, name, directory)
    if "://" in u:
        raise ValueError(f"Unsupported DB URI: {uri!r}")
    # Heuristics for bare paths to keep CLI simple
    directory, name = _split_path(u)
    if u.endswith(".db") or not prefer_rocks():
        return (SQLITE, name, directory)
    return (ROCKSDB, name, directory)


def open_db(uri: str, **options: Any) -> DB:
    """
    Open a store by URI. See module docstring for supported forms.

    Raises:
        UnknownBackendError if the chosen backend is not registered.
        ValueError for invalid URIs.
    """
    backend, name, directory = _parse_uri(uri)
    return new_db(name, backend, directory, **options)


def open_from_config(cfg: Any) -> DB:
    """Open the store described by a `kvdb.config.DBConfig`."""
    directory = str(cfg.dir) if getattr(cfg, "dir", None) is not None else None
    return new_db(cfg.name, cfg.backend, directory, low_priority=cfg.low_priority)


__all__ = [
    "__version__",
    # interfaces
    "DB",
    "ReadOnlyDB",
    "Batch",
    "Iterator",
    # errors
    "KVError",
    "EmptyKeyError",
    "NilValueError",
    "NotFoundError",
    "EngineFailure",
    "ClosedResourceError",
    "StoreClosedError",
    "BatchClosedError",
    "InvalidIteratorError",
    # helpers
    "prefix_to_range",
    "iter_items",
    "iter_prefixed",
    "get_or_raise",
    "set_many",
    "delete_many",
    # construction
    "MEMDB",
    "SQLITE",
    "ROCKSDB",
    "backends",
    "register_backend",
    "new_db",
    "open_db",
    "open_from_config",
    "prefer_rocks",
]
