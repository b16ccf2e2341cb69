"""单线程调度器接口。

后台线程只通过 call_soon 把回调投递回单线程上下文，
所有会话日志与回合状态的修改都在该上下文中执行。
"""

import queue
import time
from typing import Callable, Optional, Protocol

Callback = Callable[[], None]


class Scheduler(Protocol):
    def call_soon(self, callback: Callback) -> None:
        """线程安全地安排 callback 在单线程上下文中执行。"""

        ...


class QueuedScheduler:
    """基于 queue.Queue 的调度器，用于无界面运行和测试。

    call_soon 可以在任意线程调用；回调只在调用 run_pending / run_until 的线程上执行。
    """

    def __init__(self):
        self._pending: "queue.Queue[Callback]" = queue.Queue()

    def call_soon(self, callback: Callback) -> None:
        self._pending.put(callback)

    def run_pending(self, timeout: Optional[float] = None) -> int:
        """执行已排队的回调；队列为空时最多等待 timeout 秒，返回执行的回调数。"""

        ran = 0
        try:
            callback = self._pending.get(timeout=timeout) if timeout else self._pending.get_nowait()
        except queue.Empty:
            return ran
        while True:
            callback()
            ran += 1
            try:
                callback = self._pending.get_nowait()
            except queue.Empty:
                return ran

    def run_until(self, predicate: Callable[[], bool], timeout: float = 10.0) -> bool:
        """持续执行回调直到 predicate 成立或超时。"""

        deadline = time.monotonic() + timeout
        while not predicate():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self.run_pending(timeout=min(remaining, 0.1))
        return True
