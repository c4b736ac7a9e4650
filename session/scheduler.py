"""逐帧调度：单个后台线程依次执行 tick，支持幂等取消"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TickHandle:
    """调度句柄，cancel() 停止后续 tick"""

    def __init__(self, stop_event: threading.Event, thread: threading.Thread, join_timeout: float):
        self._stop_event = stop_event
        self._thread = thread
        self._join_timeout = join_timeout

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    def cancel(self):
        """
        停止调度并等待正在执行的 tick 结束。

        重复调用为空操作；在 tick 内部调用时不等待自身。
        """
        self._stop_event.set()
        if threading.current_thread() is self._thread:
            return
        if self._thread.is_alive():
            self._thread.join(self._join_timeout)
            if self._thread.is_alive():
                logger.warning("调度线程未在 %.1f 秒内退出", self._join_timeout)


class ThreadTicker:
    """
    在单个守护线程中循环调用 tick()。

    同一时刻只有一个 tick 在执行；tick 返回 None 表示本次没有可处理的帧，
    此时等待 idle_delay 秒再尝试，避免空转。
    """

    def __init__(
        self,
        tick: Callable[[], object],
        idle_delay: float = 0.01,
        join_timeout: float = 1.0,
        name: str = "frame-loop",
    ):
        self._tick = tick
        self.idle_delay = idle_delay
        self.join_timeout = join_timeout
        self.name = name

    def start(self) -> TickHandle:
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run, args=(stop_event,), name=self.name, daemon=True,
        )
        handle = TickHandle(stop_event, thread, self.join_timeout)
        thread.start()
        return handle

    def _run(self, stop_event: threading.Event):
        logger.debug("调度线程启动")
        while not stop_event.is_set():
            result: Optional[object] = None
            try:
                result = self._tick()
            except Exception:
                logger.exception("帧处理异常，跳过本帧")
            if result is None:
                stop_event.wait(self.idle_delay)
        logger.debug("调度线程退出")
