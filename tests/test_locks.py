from __future__ import annotations

import threading
import time

from asset_pipeline.locks import ReadWriteLock


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    inside = []
    barrier = threading.Barrier(3, timeout=2)

    def reader():
        with lock.read():
            inside.append(1)
            barrier.wait()

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(2)
    assert len(inside) == 3


def test_writer_excludes_readers():
    lock = ReadWriteLock()
    events = []
    lock.acquire_write()

    def reader():
        with lock.read():
            events.append("read")

    t = threading.Thread(target=reader)
    t.start()
    time.sleep(0.05)
    events.append("write-done")
    lock.release_write()
    t.join(2)
    assert events == ["write-done", "read"]
