"""
Several threads sharing one store: point writes, batches and iterators
interleave without corrupting data, and racing closes release engine
cursors exactly once.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from kvdb.registry import new_db

from . import keys_of

THREADS = 8
ROUNDS = 25


def _key(t: int, i: int) -> bytes:
    return b"t%d/%03d" % (t, i)


def _worker(db, t: int, barrier: threading.Barrier) -> int:
    prefix = b"t%d/" % t
    barrier.wait()
    for i in range(ROUNDS):
        key = _key(t, i)
        db.set(key, b"v%d" % i)
        with db.new_batch() as b:
            b.set(key + b"/b", b"batch")
            if i:
                b.delete(_key(t, i - 1) + b"/b")
        with db.prefix_iterator(prefix) as it:
            seen = [k for k, _ in it]
        assert seen == sorted(seen)
        assert all(k.startswith(prefix) for k in seen)
        assert key in seen and key + b"/b" in seen
        assert db.get(key) == b"v%d" % i
    return t


def test_threads_share_a_store(db):
    barrier = threading.Barrier(THREADS)
    with ThreadPoolExecutor(max_workers=THREADS) as pool:
        futures = [pool.submit(_worker, db, t, barrier) for t in range(THREADS)]
        assert sorted(f.result(timeout=120) for f in futures) == list(range(THREADS))

    expected = {}
    for t in range(THREADS):
        for i in range(ROUNDS):
            expected[_key(t, i)] = b"v%d" % i
        expected[_key(t, ROUNDS - 1) + b"/b"] = b"batch"
    with db.iterator(None, None) as it:
        assert dict(it) == expected
    assert keys_of(db.iterator(None, None)) == sorted(expected)


def test_racing_closes_release_cursor_once(backend, tmp_path):
    for n in range(20):
        store = new_db(f"race{n}", backend, str(tmp_path))
        store.set(b"k", b"v")
        it = store.iterator(None, None)
        calls = []
        release = it._release

        def counting(release=release, calls=calls):
            calls.append(1)
            release()

        it._release = counting
        barrier = threading.Barrier(3)

        def close_iterator():
            barrier.wait()
            it.close()

        def close_store():
            barrier.wait()
            store.close()

        threads = [
            threading.Thread(target=close_iterator),
            threading.Thread(target=close_iterator),
            threading.Thread(target=close_store),
        ]
        for th in threads:
            th.start()
        for th in threads:
            th.join(timeout=30)

        assert calls == [1]
        assert store.closed
        assert not it.valid()
