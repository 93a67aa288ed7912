from __future__ import annotations

"""
Key validation & byte ranges
============================

Pure helpers shared by every backend. Nothing here touches an engine, so all
validation errors are raised before a store, batch or iterator reaches its
engine.

Ordering
--------
Keys are compared as unsigned byte strings, which is exactly how Python
orders `bytes`. A range is half-open: `[start, end)`. `None` on either side
means "unbounded". An explicit empty bound (`b""`) is rejected.

Prefixes
--------
`prefix_to_range(p)` returns the half-open range holding exactly the keys that
start with `p`:

>>> prefix_to_range(b"ab")
(b'ab', b'ac')
>>> prefix_to_range(b"a\\xff")
(b'a\\xff', b'b')
>>> prefix_to_range(b"\\xff\\xff")
(b'\\xff\\xff', None)
"""

from typing import Optional, Tuple, Union

from .errors import EmptyKeyError, NilValueError

BytesLike = Union[bytes, bytearray, memoryview]
Range = Tuple[Optional[bytes], Optional[bytes]]


def _to_bytes(b: BytesLike, what: str) -> bytes:
    if isinstance(b, bytes):
        return b
    if isinstance(b, (bytearray, memoryview)):
        return bytes(b)
    raise TypeError(f"{what} must be bytes-like, got {type(b).__name__}")


def check_key(key: Optional[BytesLike]) -> bytes:
    """Return `key` as bytes; `None` and `b""` raise EmptyKeyError."""
    if key is None:
        raise EmptyKeyError()
    k = _to_bytes(key, "key")
    if not k:
        raise EmptyKeyError()
    return k


def check_value(value: Optional[BytesLike]) -> bytes:
    """Return `value` as bytes; `None` is the absent sentinel and is rejected."""
    if value is None:
        raise NilValueError()
    return _to_bytes(value, "value")


def check_bounds(start: Optional[BytesLike], end: Optional[BytesLike]) -> Range:
    """Validate iterator bounds: absent (`None`) is fine, empty is not."""
    s = None if start is None else _to_bytes(start, "start")
    e = None if end is None else _to_bytes(end, "end")
    if s is not None and not s:
        raise EmptyKeyError("iterator start bound cannot be empty")
    if e is not None and not e:
        raise EmptyKeyError("iterator end bound cannot be empty")
    return s, e


def prefix_to_range(prefix: Optional[BytesLike]) -> Range:
    """
    Translate a non-empty prefix into `(start, end)`.

    `end` is the smallest key greater than every key beginning with `prefix`:
    trailing 0xFF bytes are dropped and the last remaining byte is bumped.
    If the prefix is all 0xFF there is no such key and `end` is None.
    """
    if prefix is None:
        raise EmptyKeyError("prefix cannot be empty")
    start = _to_bytes(prefix, "prefix")
    if not start:
        raise EmptyKeyError("prefix cannot be empty")

    end = bytearray(start)
    while end and end[-1] == 0xFF:
        end.pop()
    if not end:
        return start, None
    end[-1] += 1
    return start, bytes(end)


def is_empty_range(start: Optional[bytes], end: Optional[bytes]) -> bool:
    return start is not None and end is not None and start >= end


def in_range(key: bytes, start: Optional[bytes], end: Optional[bytes]) -> bool:
    """Half-open membership: start <= key < end, with None as unbounded."""
    if start is not None and key < start:
        return False
    if end is not None and key >= end:
        return False
    return True


__all__ = [
    "BytesLike",
    "Range",
    "check_key",
    "check_value",
    "check_bounds",
    "prefix_to_range",
    "is_empty_range",
    "in_range",
]
