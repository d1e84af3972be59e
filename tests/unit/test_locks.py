import threading
import time
from uuid import uuid4

from imgmod.core.services.locks import KeyedLockTable


def test_lock_is_dropped_after_use():
    table = KeyedLockTable()
    asset_id = uuid4()
    with table.lock(asset_id):
        assert table.is_locked(asset_id)
        assert len(table) == 1
    assert not table.is_locked(asset_id)
    assert len(table) == 0


def test_different_ids_do_not_block():
    table = KeyedLockTable()
    a, b = uuid4(), uuid4()
    with table.lock(a):
        acquired = threading.Event()

        def other():
            with table.lock(b):
                acquired.set()

        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(timeout=5)
        t.join()


def test_same_id_is_serialized():
    table = KeyedLockTable()
    asset_id = uuid4()
    active = 0
    overlap = []
    guard = threading.Lock()

    def worker():
        nonlocal active
        with table.lock(asset_id):
            with guard:
                active += 1
                overlap.append(active)
            time.sleep(0.01)
            with guard:
                active -= 1

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert max(overlap) == 1
    assert len(table) == 0


def test_released_on_exception():
    table = KeyedLockTable()
    asset_id = uuid4()
    try:
        with table.lock(asset_id):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert len(table) == 0
