from __future__ import annotations

"""
KV interface
============

This module defines the backend-agnostic key-value contract every engine
satisfies: the store (`DB`), its cursors (`Iterator`) and its atomic write
batches (`Batch`). Backends (memdb, sqlite, rocksdb) implement these
protocols, normally by subclassing `kvdb.base`. This file is *pure interface +
helpers* and contains no I/O.

Keys and values
---------------
Keys are non-empty `bytes` ordered lexicographically. Values are `bytes`;
`b""` is a real value, `None` means "absent". `get()` returns None for a
missing key.

Iterators
---------
`db.iterator(start, end)` walks `[start, end)` ascending,
`db.reverse_iterator(start, end)` walks the same range descending.
Either bound may be None (unbounded).

>>> it = db.iterator(None, None)
>>> while it.valid():
...     print(it.key(), it.value())
...     it.next()
>>> it.close()

Iterators are also Python iterables and context managers:

>>> with db.prefix_iterator(b"acct/") as it:
...     for k, v in it:
...         ...

Batching
--------
`db.new_batch()` stages writes; `write()` / `write_sync()` apply them
atomically. As a context manager it commits on clean exit and discards if an
exception escapes:

>>> with db.new_batch() as b:
...     b.set(b"a", b"1")
...     b.delete(b"b")

Typing
------
We expose Protocols (PEP 544) so backends can be duck-typed.
"""

from typing import (IO, Dict, Iterable, Iterator as TIterator, Optional,
                    Protocol, Tuple, runtime_checkable)

from .errors import NotFoundError

# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Iterator(Protocol):
    """A directional cursor over `[start, end)`."""

    def domain(self) -> Tuple[Optional[bytes], Optional[bytes]]:
        """The (start, end) bounds this iterator was created with."""
        ...

    def valid(self) -> bool:
        """True while positioned on an in-range key. Check before key()/value()."""
        ...

    def next(self) -> None:
        """Advance one step in the iterator's direction."""
        ...

    def key(self) -> bytes: ...
    def value(self) -> bytes: ...

    def error(self) -> Optional[BaseException]:
        """Engine fault met while iterating, if any."""
        ...

    def close(self) -> None:
        """Release the cursor. Idempotent."""
        ...

    def __iter__(self) -> TIterator[Tuple[bytes, bytes]]: ...
    def __enter__(self) -> "Iterator": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class Batch(Protocol):
    """
    Staged writes applied atomically by write()/write_sync(). Nothing is
    visible to readers before the commit; close() discards.
    """

    def set(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def write(self) -> None: ...
    def write_sync(self) -> None: ...
    def close(self) -> None: ...
    def __len__(self) -> int: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class ReadOnlyDB(Protocol):
    """Minimal read-only surface."""

    @property
    def name(self) -> str: ...

    def get(self, key: bytes) -> Optional[bytes]:
        """Fetch value or None if missing."""
        ...

    def has(self, key: bytes) -> bool:
        """Return True if key exists."""
        ...

    def iterator(self, start: Optional[bytes], end: Optional[bytes]) -> Iterator: ...
    def reverse_iterator(self, start: Optional[bytes], end: Optional[bytes]) -> Iterator: ...
    def prefix_iterator(self, prefix: bytes) -> Iterator: ...
    def reverse_prefix_iterator(self, prefix: bytes) -> Iterator: ...

    def stats(self) -> Dict[str, str]: ...

    def close(self) -> None:
        """Release engine resources. Idempotent."""
        ...

    def __enter__(self) -> "ReadOnlyDB": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class DB(ReadOnlyDB, Protocol):
    """Full read-write surface."""

    def set(self, key: bytes, value: bytes) -> None:
        """Store (key, value). Overwrites if exists."""
        ...

    def set_sync(self, key: bytes, value: bytes) -> None:
        """As set(), durable before returning."""
        ...

    def delete(self, key: bytes) -> None:
        """Remove key if present (idempotent)."""
        ...

    def delete_sync(self, key: bytes) -> None: ...

    def new_batch(self) -> Batch:
        """Return a new write batch bound to this store."""
        ...

    def print(self, stream: Optional[IO[str]] = None) -> None:
        """Dump every entry as `[KEY]:\\t[VALUE]` in hex."""
        ...


# ---------------------------------------------------------------------------
# Portable helpers built atop the interface
# ---------------------------------------------------------------------------


def iter_items(
    db: ReadOnlyDB,
    start: Optional[bytes] = None,
    end: Optional[bytes] = None,
    *,
    reverse: bool = False,
) -> TIterator[Tuple[bytes, bytes]]:
    """Yield (key, value) over [start, end); the iterator is always closed."""
    it = db.reverse_iterator(start, end) if reverse else db.iterator(start, end)
    with it:
        yield from it


def iter_prefixed(
    db: ReadOnlyDB, prefix: bytes, *, reverse: bool = False
) -> TIterator[Tuple[bytes, bytes]]:
    """Yield (key, value) for keys starting with `prefix`."""
    it = db.reverse_prefix_iterator(prefix) if reverse else db.prefix_iterator(prefix)
    with it:
        yield from it


def get_or_raise(db: ReadOnlyDB, key: bytes) -> bytes:
    v = db.get(key)
    if v is None:
        raise NotFoundError(key, db.name)
    return v


def set_many(db: DB, items: Iterable[Tuple[bytes, bytes]], *, sync: bool = False) -> None:
    """Write many keys using a single batch."""
    with db.new_batch() as b:
        for k, v in items:
            b.set(k, v)
        if sync:
            b.write_sync()


def delete_many(db: DB, keys: Iterable[bytes], *, sync: bool = False) -> None:
    """Delete many keys using a single batch."""
    with db.new_batch() as b:
        for k in keys:
            b.delete(k)
        if sync:
            b.write_sync()


__all__ = [
    # Protocols
    "ReadOnlyDB",
    "DB",
    "Batch",
    "Iterator",
    # Helpers
    "iter_items",
    "iter_prefixed",
    "get_or_raise",
    "set_many",
    "delete_many",
]
