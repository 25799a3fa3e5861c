import threading
import time

from chickenscratch.core.keyed_lock import KeyedLockRegistry


def test_same_key_is_serialized():
    registry = KeyedLockRegistry()
    events: list[str] = []

    def worker(name: str) -> None:
        with registry.hold("submission-1"):
            events.append(f"{name}:start")
            time.sleep(0.05)
            events.append(f"{name}:end")

    threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # 同一 key 的临界区不交叉
    assert events[0].split(":")[0] == events[1].split(":")[0]
    assert events[2].split(":")[0] == events[3].split(":")[0]


def test_different_keys_do_not_block():
    registry = KeyedLockRegistry()
    inside = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with registry.hold("a"):
            inside.set()
            release.wait(timeout=2)

    t = threading.Thread(target=holder)
    t.start()
    assert inside.wait(timeout=2)

    acquired = threading.Event()

    def other() -> None:
        with registry.hold("b"):
            acquired.set()

    t2 = threading.Thread(target=other)
    t2.start()
    assert acquired.wait(timeout=1)
    release.set()
    t.join()
    t2.join()


def test_locks_are_reclaimed():
    registry = KeyedLockRegistry()
    with registry.hold("x"):
        assert registry.active_keys() == 1
    assert registry.active_keys() == 0
