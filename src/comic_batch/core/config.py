"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from comic_batch.core.exceptions import InvalidParameterError

AUTO_WORKER_COUNT = 0
MAX_WORKER_COUNT = 6
MAX_BATCH_SIZE = 1000


@dataclass(slots=True, frozen=True)
class UnsharpConfig:
    """USM 锐化参数，amount 为 0 时不追加 -unsharp。"""

    radius: float = 1.5
    sigma: float = 1.0
    amount: float = 0.7
    threshold: float = 0.02


@dataclass(slots=True, frozen=True)
class ProcessingParameters:
    """单次批处理使用的图像参数。"""

    width_threshold: int = 3000
    resize_height: int = 1648
    quality: int = 85
    unsharp: UnsharpConfig = field(default_factory=UnsharpConfig)
    worker_count: int = AUTO_WORKER_COUNT  # 0 表示自动
    batch_size: int = 40
    grayscale: bool = True

    @property
    def is_auto(self) -> bool:
        return self.worker_count == AUTO_WORKER_COUNT


@dataclass(slots=True)
class JobConfig:
    """单次批处理任务的配置集合。"""

    input_dir: Path
    output_dir: Path
    parameters: ProcessingParameters = field(default_factory=ProcessingParameters)
    gm_path: Optional[Path] = None
    report_filename: Optional[str] = None


def validate_parameters(params: ProcessingParameters) -> ProcessingParameters:
    """在入口处一次性校验参数，失败时抛出 InvalidParameterError。"""

    if params.width_threshold <= 0:
        raise InvalidParameterError("width_threshold", "必须大于 0")
    if params.resize_height <= 0:
        raise InvalidParameterError("resize_height", "必须大于 0")
    if not 1 <= params.quality <= 100:
        raise InvalidParameterError("quality", "必须在 1~100 之间")

    unsharp = params.unsharp
    for name in ("radius", "sigma", "amount", "threshold"):
        if getattr(unsharp, name) < 0:
            raise InvalidParameterError(f"unsharp.{name}", "不能为负数")

    if params.worker_count != AUTO_WORKER_COUNT and not 1 <= params.worker_count <= MAX_WORKER_COUNT:
        raise InvalidParameterError("worker_count", f"必须为 0 (自动) 或 1~{MAX_WORKER_COUNT}")
    if not 1 <= params.batch_size <= MAX_BATCH_SIZE:
        raise InvalidParameterError("batch_size", f"必须在 1~{MAX_BATCH_SIZE} 之间")

    return params
