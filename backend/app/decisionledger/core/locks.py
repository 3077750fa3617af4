"""DecisionLedger - Per-Record Locks

按记录 ID 串行化临界区（重算、证据封存）。

Features:
- 每个 record_id 一把可重入锁（封存可在持锁的关闭流程中再次获取）
- 无等待者时自动回收，避免长期运行进程中的锁表膨胀
- 线程安全
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    """单条记录的锁与引用计数"""
    lock: threading.RLock = field(default_factory=threading.RLock)
    holders: int = 0


class RecordLockRegistry:
    """按记录 ID 分配的互斥锁表

    用法:
        locks = RecordLockRegistry()
        with locks.hold(record_id):
            ...  # 替换缺口 + 更新分数
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}  # record_id -> entry

    @contextmanager
    def hold(self, record_id: object) -> Iterator[None]:
        """获取记录锁，退出上下文时释放"""
        key = str(record_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _LockEntry()
                self._entries[key] = entry
            entry.holders += 1

        try:
            with entry.lock:
                logger.debug(f"Record lock acquired: {key}")
                yield
        finally:
            with self._lock:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]
            logger.debug(f"Record lock released: {key}")

    def active_keys(self) -> list[str]:
        """当前被持有或等待中的记录 ID"""
        with self._lock:
            return sorted(self._entries)


# 进程级单例
_registry: Optional[RecordLockRegistry] = None
_registry_guard = threading.Lock()


def get_record_locks() -> RecordLockRegistry:
    """获取进程级记录锁表"""
    global _registry
    with _registry_guard:
        if _registry is None:
            _registry = RecordLockRegistry()
        return _registry
