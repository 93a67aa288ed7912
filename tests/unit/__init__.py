"""
Unit tests for kvdb.

Small shared helpers; test modules import them relatively:

    from . import fill, keys_of
"""

from __future__ import annotations

from typing import List


def fill(store, *keys: bytes) -> None:
    """Set each key to its upper-cased bytes (b"ab" -> b"AB")."""
    for k in keys:
        store.set(k, k.upper())


def keys_of(it) -> List[bytes]:
    """Drain an iterator through the Valid/Next protocol and close it."""
    out: List[bytes] = []
    try:
        while it.valid():
            out.append(it.key())
            it.next()
    finally:
        it.close()
    return out
