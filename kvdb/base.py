from __future__ import annotations

"""
Shared store / iterator / batch machinery
=========================================

Backends subclass `BaseDB` and implement a handful of engine hooks
(`_get`, `_set`, `_delete`, `_write_batch`, `_new_iterator`, `_stats`,
`_close`). Everything engine-independent lives here so every backend has the
same semantics:

- argument validation happens before any engine hook runs;
- closed stores, iterators and batches raise `ClosedResourceError` subclasses;
- iterators enforce `[start, end)` themselves, so an engine cursor only has to
  start at a sensible position and walk in one direction;
- the store tracks its live iterators and batches (weakly) and closes them
  when it is closed.

Engine cursors implement `BaseIterator._advance()` returning the next
`(key, value)` in the iterator's direction, or None when the cursor is done,
and `_release()` to free native state.
"""

import sys
import threading
import weakref
from typing import IO, Dict, List, Optional, Tuple

from . import logging as klog
from .errors import (BatchClosedError, InvalidIteratorError,
                     IteratorClosedError, StoreClosedError)
from .ranges import (BytesLike, check_bounds, check_key, check_value,
                     is_empty_range, prefix_to_range)

# Staged batch operation: (key, value) for a set, (key, None) for a delete.
Op = Tuple[bytes, Optional[bytes]]


class BaseIterator:
    """
    Cursor state machine: positioned -> exhausted, or -> closed from any state.
    """

    def __init__(
        self,
        start: Optional[bytes],
        end: Optional[bytes],
        reverse: bool = False,
    ) -> None:
        self._start = start
        self._end = end
        self._reverse = reverse
        self._cur: Optional[Tuple[bytes, bytes]] = None
        self._err: Optional[BaseException] = None
        self._closed = False
        self._released = False
        # close() may race with the owning store closing us from another thread.
        self._flags = threading.Lock()
        self._owner: Optional["weakref.ref[BaseDB]"] = None

    # --- engine hooks ---

    def _advance(self) -> Optional[Tuple[bytes, bytes]]:
        raise NotImplementedError

    def _release(self) -> None:
        pass

    # --- internal ---

    def _prime(self) -> None:
        """Position on the first entry. The store calls this once after `_new_iterator`."""
        if is_empty_range(self._start, self._end):
            self._finish()
            return
        self._step()

    def _step(self) -> None:
        while True:
            try:
                item = self._advance()
            except Exception as e:
                # Surface through error(); the iterator just stops.
                self._err = e
                item = None
            if item is None:
                self._finish()
                return
            k = item[0]
            if self._reverse:
                if self._end is not None and k >= self._end:
                    continue
                if self._start is not None and k < self._start:
                    self._finish()
                    return
            else:
                if self._start is not None and k < self._start:
                    continue
                if self._end is not None and k >= self._end:
                    self._finish()
                    return
            self._cur = (bytes(item[0]), bytes(item[1]))
            return

    def _finish(self) -> None:
        self._cur = None
        self._release_once()

    def _release_once(self) -> None:
        with self._flags:
            if self._released:
                return
            self._released = True
        self._release()

    def _assert_valid(self) -> Tuple[bytes, bytes]:
        if self._closed:
            raise IteratorClosedError()
        if self._cur is None:
            raise InvalidIteratorError()
        return self._cur

    # --- contract ---

    def domain(self) -> Tuple[Optional[bytes], Optional[bytes]]:
        return self._start, self._end

    @property
    def reverse(self) -> bool:
        return self._reverse

    def valid(self) -> bool:
        return not self._closed and self._cur is not None

    def next(self) -> None:
        self._assert_valid()
        self._step()

    def key(self) -> bytes:
        return self._assert_valid()[0]

    def value(self) -> bytes:
        return self._assert_valid()[1]

    def error(self) -> Optional[BaseException]:
        return self._err

    def close(self) -> None:
        with self._flags:
            if self._closed:
                return
            self._closed = True
            self._cur = None
        try:
            self._release_once()
        finally:
            owner = self._owner() if self._owner is not None else None
            if owner is not None:
                owner._forget(self)

    # --- Python conveniences ---

    def __iter__(self):
        while self.valid():
            item = self._cur
            yield item  # type: ignore[misc]
            # the loop body may have closed us
            if self.valid():
                self._step()

    def __enter__(self) -> "BaseIterator":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None


class EmptyIterator(BaseIterator):
    """Iterator over a range that cannot hold any key (start >= end)."""

    def _advance(self) -> Optional[Tuple[bytes, bytes]]:
        return None


class BaseBatch:
    """
    Staged writes: open -> committed (write/write_sync) or -> closed (close).
    Operations apply in staging order when committed.
    """

    def __init__(self, db: "BaseDB") -> None:
        self._db = db
        self._ops: List[Op] = []
        self._state = "open"

    def _check_open(self) -> None:
        if self._state != "open":
            raise BatchClosedError(self._state)

    def set(self, key: BytesLike, value: BytesLike) -> None:
        k = check_key(key)
        v = check_value(value)
        self._check_open()
        self._ops.append((k, v))

    def delete(self, key: BytesLike) -> None:
        k = check_key(key)
        self._check_open()
        self._ops.append((k, None))

    def write(self) -> None:
        self._commit(sync=False)

    def write_sync(self) -> None:
        self._commit(sync=True)

    def _commit(self, sync: bool) -> None:
        self._check_open()
        # On an engine error the batch stays open; the caller may retry or close.
        self._db._apply_batch(self._ops, sync)
        self._ops = []
        self._state = "committed"
        self._db._forget(self)

    def close(self) -> None:
        if self._state == "open":
            self._ops = []
            self._state = "closed"
            self._db._forget(self)

    @property
    def state(self) -> str:
        return self._state

    def __len__(self) -> int:
        return len(self._ops)

    def __enter__(self) -> "BaseBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        try:
            if exc_type is None and self._state == "open":
                self.write()
        finally:
            self.close()
        return None


class BaseDB:
    """
    Engine-independent half of every store. Subclasses set `backend` and
    implement the `_`-prefixed engine hooks; callers only use the public API.
    """

    backend = "base"

    def __init__(self, name: str, *, low_priority: bool = False) -> None:
        self._name = name
        self._closed = False
        # Best-effort write hint; no shipped engine changes behavior for it.
        self._low_priority = low_priority
        self._lock = threading.RLock()
        self._children: "weakref.WeakSet[object]" = weakref.WeakSet()
        self._log = klog.with_fields(
            klog.get_logger(f"kvdb.{self.backend}"), backend=self.backend, db=name
        )

    # --- engine hooks ---

    def _get(self, key: bytes) -> Optional[bytes]:
        raise NotImplementedError

    def _has(self, key: bytes) -> bool:
        return self._get(key) is not None

    def _set(self, key: bytes, value: bytes, sync: bool) -> None:
        raise NotImplementedError

    def _delete(self, key: bytes, sync: bool) -> None:
        raise NotImplementedError

    def _write_batch(self, ops: List[Op], sync: bool) -> None:
        raise NotImplementedError

    def _new_iterator(
        self, start: Optional[bytes], end: Optional[bytes], reverse: bool
    ) -> BaseIterator:
        raise NotImplementedError

    def _stats(self) -> Dict[str, object]:
        return {}

    def _close(self) -> None:
        pass

    # --- internal ---

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError(self._name)

    def _forget(self, child: object) -> None:
        with self._lock:
            self._children.discard(child)

    def _apply_batch(self, ops: List[Op], sync: bool) -> None:
        with self._lock:
            self._check_open()
            if ops:
                self._write_batch(ops, sync)

    def _open_iterator(
        self, start: Optional[bytes], end: Optional[bytes], reverse: bool
    ) -> BaseIterator:
        with self._lock:
            self._check_open()
            if is_empty_range(start, end):
                it: BaseIterator = EmptyIterator(start, end, reverse)
            else:
                it = self._new_iterator(start, end, reverse)
            it._prime()
            it._owner = weakref.ref(self)
            self._children.add(it)
            return it

    # --- contract ---

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def low_priority(self) -> bool:
        return self._low_priority

    def get(self, key: BytesLike) -> Optional[bytes]:
        k = check_key(key)
        with self._lock:
            self._check_open()
            return self._get(k)

    def has(self, key: BytesLike) -> bool:
        k = check_key(key)
        with self._lock:
            self._check_open()
            return self._has(k)

    def set(self, key: BytesLike, value: BytesLike) -> None:
        k = check_key(key)
        v = check_value(value)
        with self._lock:
            self._check_open()
            self._set(k, v, False)

    def set_sync(self, key: BytesLike, value: BytesLike) -> None:
        k = check_key(key)
        v = check_value(value)
        with self._lock:
            self._check_open()
            self._set(k, v, True)

    def delete(self, key: BytesLike) -> None:
        k = check_key(key)
        with self._lock:
            self._check_open()
            self._delete(k, False)

    def delete_sync(self, key: BytesLike) -> None:
        k = check_key(key)
        with self._lock:
            self._check_open()
            self._delete(k, True)

    def new_batch(self) -> BaseBatch:
        with self._lock:
            self._check_open()
            b = BaseBatch(self)
            self._children.add(b)
            return b

    def iterator(
        self, start: Optional[BytesLike], end: Optional[BytesLike]
    ) -> BaseIterator:
        s, e = check_bounds(start, end)
        return self._open_iterator(s, e, reverse=False)

    def reverse_iterator(
        self, start: Optional[BytesLike], end: Optional[BytesLike]
    ) -> BaseIterator:
        s, e = check_bounds(start, end)
        return self._open_iterator(s, e, reverse=True)

    def prefix_iterator(self, prefix: BytesLike) -> BaseIterator:
        s, e = prefix_to_range(prefix)
        return self._open_iterator(s, e, reverse=False)

    def reverse_prefix_iterator(self, prefix: BytesLike) -> BaseIterator:
        s, e = prefix_to_range(prefix)
        return self._open_iterator(s, e, reverse=True)

    def stats(self) -> Dict[str, str]:
        with self._lock:
            self._check_open()
            raw = self._stats()
        return {str(k): "" if v is None else str(v) for k, v in raw.items()}

    def print(self, stream: Optional[IO[str]] = None) -> None:
        out = stream if stream is not None else sys.stdout
        with self.iterator(None, None) as it:
            for k, v in it:
                out.write(f"[{k.hex().upper()}]:\t[{v.hex().upper()}]\n")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            children = list(self._children)
            self._children = weakref.WeakSet()
            for child in children:
                try:
                    child.close()  # type: ignore[attr-defined]
                except Exception:
                    self._log.warning("failed to close child resource", exc_info=True)
            try:
                self._close()
            except Exception:
                self._log.warning("engine close failed", exc_info=True)
            else:
                self._log.debug("closed")

    def __enter__(self) -> "BaseDB":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} name={self._name!r} {state}>"


__all__ = [
    "Op",
    "BaseIterator",
    "EmptyIterator",
    "BaseBatch",
    "BaseDB",
]
