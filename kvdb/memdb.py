from __future__ import annotations

"""
In-memory KV
============

A dict plus a sorted key list (`bisect`) guarded by the store lock. Nothing
is persisted, so sync writes are plain writes. Useful for tests and caches.

Iterators take a copy-on-create snapshot of the entries in their range, so
writes made after an iterator was created are never observed by it.
"""

import bisect
from typing import Any, Dict, List, Optional, Tuple

from .base import BaseDB, BaseIterator, Op
from .registry import MEMDB, register_backend


class MemIterator(BaseIterator):
    def __init__(
        self,
        items: List[Tuple[bytes, bytes]],
        start: Optional[bytes],
        end: Optional[bytes],
        reverse: bool,
    ) -> None:
        super().__init__(start, end, reverse)
        if reverse:
            items.reverse()
        self._items = items
        self._pos = 0

    def _advance(self) -> Optional[Tuple[bytes, bytes]]:
        if self._pos >= len(self._items):
            return None
        item = self._items[self._pos]
        self._pos += 1
        return item

    def _release(self) -> None:
        self._items = []


class MemDB(BaseDB):
    """In-memory backend. `directory` is accepted for signature parity and ignored."""

    backend = MEMDB

    def __init__(self, name: str, directory: Optional[str] = None, *, low_priority: bool = False) -> None:
        super().__init__(name, low_priority=low_priority)
        self._data: Dict[bytes, bytes] = {}
        self._keys: List[bytes] = []

    def _get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(key)

    def _has(self, key: bytes) -> bool:
        return key in self._data

    def _set(self, key: bytes, value: bytes, sync: bool) -> None:
        if key not in self._data:
            bisect.insort(self._keys, key)
        self._data[key] = value

    def _delete(self, key: bytes, sync: bool) -> None:
        if self._data.pop(key, None) is None:
            return
        i = bisect.bisect_left(self._keys, key)
        del self._keys[i]

    def _write_batch(self, ops: List[Op], sync: bool) -> None:
        # Caller holds the store lock, so readers never see a partial batch.
        for key, value in ops:
            if value is None:
                self._delete(key, sync)
            else:
                self._set(key, value, sync)

    def _new_iterator(
        self, start: Optional[bytes], end: Optional[bytes], reverse: bool
    ) -> BaseIterator:
        lo = 0 if start is None else bisect.bisect_left(self._keys, start)
        hi = len(self._keys) if end is None else bisect.bisect_left(self._keys, end)
        items = [(k, self._data[k]) for k in self._keys[lo:hi]]
        return MemIterator(items, start, end, reverse)

    def _stats(self) -> Dict[str, object]:
        return {
            "database.type": "memDB",
            "database.size": len(self._data),
        }

    def _close(self) -> None:
        self._data = {}
        self._keys = []


def new_memdb(name: str, directory: Optional[str] = None, **options: Any) -> MemDB:
    return MemDB(name, directory, **options)


register_backend(MEMDB, new_memdb, requires_dir=False)


__all__ = ["MemDB", "MemIterator", "new_memdb"]
