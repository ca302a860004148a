"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Optional


@dataclass(slots=True, frozen=True)
class ImageRef:
    """扫描阶段得到的源图片信息。"""

    path: Path

    @property
    def directory_name(self) -> str:
        return self.path.parent.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lstrip(".").lower()

    @property
    def stem(self) -> str:
        return self.path.stem


@dataclass(slots=True, frozen=True)
class ImageDimensions:
    width: int
    height: int


class DirectoryCategory(Enum):
    """子目录的处理类别。"""

    GLOBAL_BATCH = "global_batch"  # 无需裁切，可合并处理
    ISOLATED = "isolated"  # 需要裁切或无法判定


@dataclass(slots=True, frozen=True)
class DirectoryScanResult:
    """单个子目录的扫描与分类结果。"""

    directory: Path
    images: tuple[ImageRef, ...]
    category: DirectoryCategory
    is_high_resolution: bool = False


class TaskPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


@dataclass(slots=True, frozen=True)
class BatchTask:
    """交给执行引擎的一个批次。"""

    images: tuple[ImageRef, ...]
    output_dir: Path
    batch_size: int
    is_global: bool
    priority: TaskPriority = TaskPriority.NORMAL
    estimated_cost: int = 0


@dataclass(slots=True)
class BatchResult:
    """单个批次的处理结果。"""

    processed: int
    failed: list[str]
    is_global: bool = False

    @classmethod
    def empty(cls, is_global: bool = False) -> "BatchResult":
        return cls(processed=0, failed=[], is_global=is_global)


@dataclass(slots=True)
class RunSummary:
    """一次完整运行的汇总，提前结束时也会返回。"""

    total_images: int = 0
    processed: int = 0
    failed_files: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    cancelled: bool = False
    global_processed: int = 0
    isolated_directories: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> int:
        return len(self.failed_files)
