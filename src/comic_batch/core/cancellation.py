"""协作式取消令牌。"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Dict

LOGGER = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]


class CancellationToken:
    """线程安全的取消标记，取消时同步触发已注册的回调。"""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._ids = itertools.count(1)

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        LOGGER.debug("收到取消请求，触发 %d 个回调", len(callbacks))
        for callback in callbacks:
            try:
                callback()
            except Exception:  # noqa: BLE001
                LOGGER.exception("取消回调执行失败")

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> int:
        """注册回调；若已取消则立即在当前线程执行。"""

        with self._lock:
            if not self._event.is_set():
                handle = next(self._ids)
                self._callbacks[handle] = callback
                return handle

        callback()
        return 0

    def remove_callback(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)
