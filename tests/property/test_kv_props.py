"""
Property tests: random operation sequences against a dict model.

Each example builds its own store so no state leaks between examples; the
SQLite variant uses a throwaway directory per example. Disk engines also get
checked after a close and reopen.
"""

from __future__ import annotations

import tempfile

import pytest
from hypothesis import given
from hypothesis import strategies as st

from kvdb.ranges import prefix_to_range
from kvdb.registry import backends, new_db

BACKENDS = [b for b in ("memdb", "sqlite", "rocksdb") if b in backends()]
DISK = [b for b in ("sqlite", "rocksdb") if b in backends()]

# Small alphabet so sequences collide on keys and share prefixes.
keys = st.binary(min_size=1, max_size=4).map(lambda b: bytes(x % 4 for x in b))
edge_keys = st.one_of(keys, st.binary(min_size=1, max_size=3).map(lambda b: b"\xff" * len(b)))
values = st.binary(max_size=8)

ops = st.lists(
    st.one_of(
        st.tuples(st.just("set"), edge_keys, values),
        st.tuples(st.just("delete"), edge_keys, st.none()),
        st.tuples(
            st.just("batch"),
            st.lists(st.tuples(edge_keys, st.one_of(values, st.none())), max_size=6),
            st.none(),
        ),
    ),
    max_size=30,
)


def _apply(store, model, op):
    kind, a, b = op
    if kind == "set":
        store.set(a, b)
        model[a] = b
    elif kind == "delete":
        store.delete(a)
        model.pop(a, None)
    else:
        with store.new_batch() as batch:
            for k, v in a:
                if v is None:
                    batch.delete(k)
                    model.pop(k, None)
                else:
                    batch.set(k, v)
                    model[k] = v


def _items(it):
    with it:
        return list(it)


@pytest.mark.slow
@pytest.mark.parametrize("backend", BACKENDS)
@given(seq=ops, lookup=edge_keys, bounds=st.tuples(st.none() | keys, st.none() | keys))
def test_store_matches_model(backend, seq, lookup, bounds):
    with tempfile.TemporaryDirectory() as d:
        with new_db("prop", backend, d) as store:
            model = {}
            for op in seq:
                _apply(store, model, op)

            for k, v in model.items():
                assert store.get(k) == v
                assert store.has(k)
            assert store.get(lookup) == model.get(lookup)

            ordered = sorted(model.items())
            assert _items(store.iterator(None, None)) == ordered
            assert _items(store.reverse_iterator(None, None)) == ordered[::-1]

            start, end = bounds
            window = [
                (k, v)
                for k, v in ordered
                if (start is None or k >= start) and (end is None or k < end)
            ]
            assert _items(store.iterator(start, end)) == window
            assert _items(store.reverse_iterator(start, end)) == window[::-1]

            under = [(k, v) for k, v in ordered if k.startswith(lookup)]
            assert _items(store.prefix_iterator(lookup)) == under
            assert _items(store.reverse_prefix_iterator(lookup)) == under[::-1]


@pytest.mark.slow
@pytest.mark.parametrize("backend", DISK)
@given(seq=ops)
def test_reopen_matches_model(backend, seq):
    with tempfile.TemporaryDirectory() as d:
        model = {}
        with new_db("durable", backend, d) as store:
            for op in seq:
                _apply(store, model, op)

        with new_db("durable", backend, d) as store:
            assert _items(store.iterator(None, None)) == sorted(model.items())
            for k, v in model.items():
                assert store.get(k) == v


@given(prefix=st.binary(min_size=1, max_size=6), key=st.binary(min_size=1, max_size=8))
def test_prefix_range_membership_matches_startswith(prefix, key):
    start, end = prefix_to_range(prefix)
    inside = key >= start and (end is None or key < end)
    assert inside == key.startswith(prefix)


@given(prefix=st.binary(min_size=1, max_size=6))
def test_prefix_range_end_is_tight(prefix):
    start, end = prefix_to_range(prefix)
    assert start == prefix
    if end is None:
        assert set(prefix) == {0xFF}
    else:
        assert end > prefix and not end.startswith(prefix)
        assert len(end) <= len(prefix)
