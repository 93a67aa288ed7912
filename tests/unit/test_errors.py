"""Error hierarchy: codes, context and JSON-safe shapes."""

from __future__ import annotations

import json

from kvdb.errors import (BatchClosedError, ClosedResourceError, ConfigError,
                         DependencyMissing, EmptyKeyError, EngineFailure,
                         InvalidIteratorError, IteratorClosedError, KVError,
                         KVErrorCode, NilValueError, NotFoundError,
                         StoreClosedError, UnknownBackendError, wrap_engine)


def test_codes():
    assert EmptyKeyError().code == KVErrorCode.EMPTY_KEY
    assert NilValueError().code == KVErrorCode.NIL_VALUE
    assert NotFoundError(b"k").code == KVErrorCode.NOT_FOUND
    assert StoreClosedError("s").code == KVErrorCode.CLOSED
    assert InvalidIteratorError().code == KVErrorCode.ITERATOR_INVALID
    assert EngineFailure().code == KVErrorCode.ENGINE
    assert DependencyMissing("python-rocksdb").code == KVErrorCode.DEP_MISSING
    assert ConfigError().code == KVErrorCode.CONFIG


def test_hierarchy():
    for cls in (StoreClosedError, IteratorClosedError, BatchClosedError):
        assert issubclass(cls, ClosedResourceError)
        assert issubclass(cls, KVError)
    assert issubclass(DependencyMissing, EngineFailure)
    assert issubclass(UnknownBackendError, ValueError)
    assert issubclass(ConfigError, ValueError)


def test_to_dict_is_json_safe():
    err = NotFoundError(b"\x01\x02", "state")
    d = err.to_dict()
    assert d == {
        "code": "KV/NOT_FOUND",
        "message": "not found",
        "data": {"key": "0102", "db": "state"},
        "retryable": False,
    }
    json.dumps(d)


def test_str_includes_code_and_data():
    s = str(BatchClosedError("committed"))
    assert s.startswith("KV/CLOSED: batch has been committed")
    assert "state=committed" in s


def test_wrap_engine_keeps_cause():
    cause = OSError("disk full")
    err = wrap_engine(cause, "cannot open", path="/tmp/x.db")
    assert isinstance(err, EngineFailure)
    assert err.cause is cause
    assert "disk full" in err.message
    assert err.to_dict(include_cause=True)["cause"] == {
        "type": "OSError",
        "message": "disk full",
    }


def test_unknown_backend_lists_available():
    err = UnknownBackendError("leveldb", ["sqlite", "memdb"])
    assert err.data == {"backend": "leveldb", "available": ["memdb", "sqlite"]}


def test_wrap_engine_retryable():
    busy = wrap_engine(OSError("locked"), "cannot open", retryable=True)
    assert busy.retryable is True
    assert busy.to_dict()["retryable"] is True
    assert wrap_engine(OSError("gone"), "cannot open").retryable is False
