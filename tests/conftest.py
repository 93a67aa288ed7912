from __future__ import annotations

import pytest

import kvdb  # noqa: F401  (registers backends)
from kvdb.registry import ROCKSDB, backends, new_db

ALL_BACKENDS = [b for b in ("memdb", "sqlite", ROCKSDB) if b in backends()]
DISK_BACKENDS = [b for b in ("sqlite", ROCKSDB) if b in backends()]


@pytest.fixture(params=ALL_BACKENDS)
def backend(request) -> str:
    return request.param


@pytest.fixture
def db(backend, tmp_path):
    store = new_db("test", backend, str(tmp_path))
    yield store
    store.close()


@pytest.fixture(params=DISK_BACKENDS)
def disk_backend(request) -> str:
    return request.param
