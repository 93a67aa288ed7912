from __future__ import annotations

"""
Backend registry
================

Process-wide map of backend name -> constructor. Backend modules register
themselves at import time (`kvdb/__init__.py` imports them); callers then
construct stores by name:

>>> from kvdb.registry import new_db
>>> db = new_db("state", "sqlite", "/var/lib/app")

Every constructor is called as `creator(name, directory, **options)`. Backends that
keep data on disk register with `requires_dir=True`; the registry insists on
a directory for them but leaves creating it to the backend.
"""

import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .errors import (ConfigError, DuplicateBackendError, UnknownBackendError,
                     wrap_engine)
from .kv import DB

MEMDB = "memdb"
SQLITE = "sqlite"
ROCKSDB = "rocksdb"

# Called as creator(name, directory, **options); options are backend keywords
# such as low_priority.
Creator = Callable[..., DB]


@dataclass(frozen=True)
class BackendEntry:
    name: str
    creator: Creator
    requires_dir: bool


_REGISTRY: Dict[str, BackendEntry] = {}
_LOCK = threading.Lock()


def register_backend(
    backend: str, creator: Creator, requires_dir: bool = True, *, force: bool = False
) -> None:
    """Register `creator` under `backend`. Re-registering needs `force=True`."""
    if not backend:
        raise ConfigError("backend name cannot be empty")
    with _LOCK:
        if backend in _REGISTRY and not force:
            raise DuplicateBackendError(backend)
        _REGISTRY[backend] = BackendEntry(backend, creator, requires_dir)


def unregister_backend(backend: str) -> None:
    with _LOCK:
        _REGISTRY.pop(backend, None)


def backends() -> List[str]:
    with _LOCK:
        return sorted(_REGISTRY)


def requires_dir(backend: str) -> bool:
    return _entry(backend).requires_dir


def _entry(backend: str) -> BackendEntry:
    with _LOCK:
        entry = _REGISTRY.get(backend)
        if entry is None:
            raise UnknownBackendError(backend, list(_REGISTRY))
        return entry


def new_db(
    name: str, backend: str, directory: Optional[str] = None, **options: Any
) -> DB:
    """Construct the store `name` with the registered `backend`."""
    entry = _entry(backend)
    if not name:
        raise ConfigError("database name cannot be empty", backend=backend)
    if entry.requires_dir and not directory:
        raise ConfigError(
            f"backend {backend!r} requires a directory", backend=backend, db=name
        )
    return entry.creator(name, directory, **options)


def make_path(directory: str) -> str:
    """Create `directory` (and parents) for an on-disk backend; return it absolute."""
    path = os.path.abspath(os.fspath(directory))
    try:
        os.makedirs(path, mode=0o755, exist_ok=True)
    except OSError as e:
        raise wrap_engine(e, "cannot create db directory", directory=path) from e
    return path


__all__ = [
    "MEMDB",
    "SQLITE",
    "ROCKSDB",
    "Creator",
    "BackendEntry",
    "register_backend",
    "unregister_backend",
    "backends",
    "requires_dir",
    "new_db",
    "make_path",
]
