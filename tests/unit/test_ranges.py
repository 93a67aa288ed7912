"""
Key validation and prefix -> range translation.

prefix_to_range must return the tightest half-open range holding exactly the
keys that start with the prefix, including the 0xFF carry cases.
"""

from __future__ import annotations

import pytest

from kvdb.errors import EmptyKeyError, NilValueError
from kvdb.ranges import (check_bounds, check_key, check_value, in_range,
                         is_empty_range, prefix_to_range)


@pytest.mark.parametrize(
    "prefix, expected",
    [
        (b"ab", (b"ab", b"ac")),
        (b"a", (b"a", b"b")),
        (b"\x00", (b"\x00", b"\x01")),
        (b"a\xff", (b"a\xff", b"b")),
        (b"a\xff\xff", (b"a\xff\xff", b"b")),
        (b"\x01\xfe", (b"\x01\xfe", b"\x01\xff")),
        (b"\xff", (b"\xff", None)),
        (b"\xff\xff", (b"\xff\xff", None)),
    ],
)
def test_prefix_to_range(prefix, expected):
    assert prefix_to_range(prefix) == expected


def test_prefix_to_range_does_not_mutate_input():
    p = bytearray(b"a\xff")
    start, end = prefix_to_range(p)
    assert p == bytearray(b"a\xff")
    assert isinstance(start, bytes) and start == b"a\xff"
    assert end == b"b"


@pytest.mark.parametrize("prefix", [b"", None])
def test_prefix_to_range_rejects_empty(prefix):
    with pytest.raises(EmptyKeyError):
        prefix_to_range(prefix)


def test_check_key():
    assert check_key(b"k") == b"k"
    assert check_key(bytearray(b"k")) == b"k"
    assert check_key(memoryview(b"k")) == b"k"
    with pytest.raises(EmptyKeyError):
        check_key(b"")
    with pytest.raises(EmptyKeyError):
        check_key(None)
    with pytest.raises(TypeError):
        check_key("k")  # type: ignore[arg-type]


def test_check_value_accepts_empty_rejects_none():
    assert check_value(b"") == b""
    with pytest.raises(NilValueError):
        check_value(None)


def test_validation_errors_are_value_errors():
    with pytest.raises(ValueError):
        check_key(b"")
    with pytest.raises(ValueError):
        check_value(None)


def test_check_bounds():
    assert check_bounds(None, None) == (None, None)
    assert check_bounds(b"a", None) == (b"a", None)
    assert check_bounds(None, bytearray(b"z")) == (None, b"z")
    with pytest.raises(EmptyKeyError):
        check_bounds(b"", b"z")
    with pytest.raises(EmptyKeyError):
        check_bounds(b"a", b"")


def test_is_empty_range():
    assert is_empty_range(b"b", b"a")
    assert is_empty_range(b"a", b"a")
    assert not is_empty_range(b"a", b"b")
    assert not is_empty_range(None, b"a")
    assert not is_empty_range(b"a", None)


def test_in_range_half_open():
    assert in_range(b"a", b"a", b"b")
    assert not in_range(b"b", b"a", b"b")
    assert in_range(b"ab", b"a", b"b")
    assert in_range(b"zzz", None, None)
    assert not in_range(b"0", b"a", None)
