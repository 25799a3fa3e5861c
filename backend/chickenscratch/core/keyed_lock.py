from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator


class KeyedLockRegistry:
    """
    进程内按 key 串行化的锁表（如 submission_id、提醒去重三元组）。

    设计目标：
    - 同 key 串行，不同 key 完全并行；
    - 引用计数归零即回收，避免长期运行后锁对象无限增长；
    - 不跨进程：多 worker 部署时仍需依赖数据库侧的串行点。
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[str, tuple[Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, refs = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, refs + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                current, refs = self._locks[key]
                if refs <= 1:
                    self._locks.pop(key, None)
                else:
                    self._locks[key] = (current, refs - 1)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


# 进程级单例：工作流按稿件串行。
submission_locks = KeyedLockRegistry()

# 进程级单例：提醒去重按 (entity, kind, recipient) 串行。
reminder_locks = KeyedLockRegistry()
