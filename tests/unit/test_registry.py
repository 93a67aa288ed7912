"""
Backend registry and URI / config based construction.
"""

from __future__ import annotations

import pytest

import kvdb
from kvdb import open_db, open_from_config
from kvdb.config import DBConfig
from kvdb.errors import (ConfigError, DuplicateBackendError, EngineFailure,
                         UnknownBackendError)
from kvdb.memdb import MemDB
from kvdb.registry import (backends, make_path, new_db, register_backend,
                           requires_dir, unregister_backend)
from kvdb.sqlite import SQLiteDB


@pytest.fixture
def scratch_backend():
    created = []

    def creator(name, directory, **options):
        created.append((name, directory, options))
        return MemDB(name, directory, **options)

    register_backend("scratch", creator, requires_dir=False)
    try:
        yield created
    finally:
        unregister_backend("scratch")


def test_builtin_backends_registered():
    names = backends()
    assert "memdb" in names
    assert "sqlite" in names
    assert names == sorted(names)
    assert requires_dir("sqlite")
    assert not requires_dir("memdb")
    assert ("rocksdb" in names) == kvdb.prefer_rocks()


def test_register_and_construct(scratch_backend):
    store = new_db("x", "scratch", None, low_priority=True)
    assert store.name == "x"
    assert scratch_backend == [("x", None, {"low_priority": True})]
    store.close()


def test_duplicate_registration(scratch_backend):
    with pytest.raises(DuplicateBackendError):
        register_backend("scratch", lambda n, d, **o: MemDB(n))
    register_backend("scratch", lambda n, d, **o: MemDB("forced"), requires_dir=False, force=True)
    with new_db("x", "scratch") as store:
        assert store.name == "forced"


def test_empty_backend_name_rejected():
    with pytest.raises(ConfigError):
        register_backend("", lambda n, d, **o: MemDB(n))


def test_unknown_backend():
    with pytest.raises(UnknownBackendError) as ei:
        new_db("x", "leveldb", "/tmp")
    assert "sqlite" in ei.value.data["available"]


def test_dir_required():
    with pytest.raises(ConfigError):
        new_db("x", "sqlite", None)
    with pytest.raises(ConfigError):
        new_db("x", "sqlite", "")


def test_empty_name_rejected(tmp_path):
    with pytest.raises(ConfigError):
        new_db("", "sqlite", str(tmp_path))


def test_memdb_ignores_directory(tmp_path):
    with new_db("m", "memdb", str(tmp_path / "unused")) as store:
        store.set(b"k", b"v")
    assert not (tmp_path / "unused").exists()


def test_make_path_failure_is_engine_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a dir")
    with pytest.raises(EngineFailure) as ei:
        make_path(str(blocker / "sub"))
    assert isinstance(ei.value.cause, OSError)
    assert isinstance(ei.value.__cause__, OSError)


def test_disk_backend_dir_failure(disk_backend, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a dir")
    with pytest.raises(EngineFailure):
        new_db("x", disk_backend, str(blocker))


def test_open_db_memdb():
    with open_db("memdb://scratch") as store:
        assert isinstance(store, MemDB)
        assert store.name == "scratch"
    with open_db("memory://") as store:
        assert store.name == "kvdb"


def test_open_db_sqlite_uri(tmp_path):
    with open_db(f"sqlite:///{tmp_path}/state") as store:
        assert isinstance(store, SQLiteDB)
        assert store.name == "state"
        store.set(b"k", b"v")
    assert (tmp_path / "state.db").exists()


def test_open_db_bare_path(tmp_path):
    with open_db(str(tmp_path / "chain.db")) as store:
        assert isinstance(store, SQLiteDB)
        assert store.name == "chain"


@pytest.mark.parametrize("uri", ["", "   ", "leveldb:///x/y"])
def test_open_db_bad_uri(uri):
    with pytest.raises(ValueError):
        open_db(uri)


def test_open_from_config(tmp_path):
    cfg = DBConfig(backend="sqlite", name="cfg", dir=tmp_path, low_priority=True)
    with open_from_config(cfg) as store:
        assert store.name == "cfg"
        assert store.low_priority
    assert (tmp_path / "cfg.db").exists()
