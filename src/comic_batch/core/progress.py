"""进度更新的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息，completed 包含成功与失败的图片。"""

    total: int
    completed: int
    failed: int = 0
    message: Optional[str] = None
    status: str = "running"  # running | finished | cancelled | error

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.completed / self.total)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
