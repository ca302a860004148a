"""运行结束时的通知接口。"""

from __future__ import annotations

import logging
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class CompletionNotifier(Protocol):
    def notify_completion(self, processed: int, failed: int, duration: str) -> None: ...


class LoggingNotifier:
    """默认实现：写一条日志。"""

    def notify_completion(self, processed: int, failed: int, duration: str) -> None:
        LOGGER.info("处理完成：成功 %d 张，失败 %d 张，耗时 %s", processed, failed, duration)
