"""批次划分与优先级调度。"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence, TypeVar

from comic_batch.core.config import ProcessingParameters
from comic_batch.core.models import (
    BatchTask,
    DirectoryCategory,
    DirectoryScanResult,
    ImageRef,
    TaskPriority,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

HIGH_RESOLUTION_BATCH_SIZE = 2
NORMAL_BATCH_SIZE = 10
MIXED_MODE_BATCH_SIZE = 5
HIGH_RESOLUTION_COST_FACTOR = 5


def split_into_batches(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """按顺序切分为长度不超过 batch_size 的连续批次。"""

    if batch_size <= 0 or not items:
        return []
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


def estimate_cost(image_count: int, is_high_resolution: bool) -> int:
    return image_count * (HIGH_RESOLUTION_COST_FACTOR if is_high_resolution else 1)


def adaptive_batch_size(
    image_count: int,
    is_high_resolution: bool,
    has_high_resolution: bool,
    workers: int,
) -> int:
    """自动模式下独立目录的批大小。"""

    workers = max(1, workers)
    if is_high_resolution:
        # 高分辨率目录拆成很小的批次，便于在各并发之间均衡
        target_batches = max(workers * 2, image_count // 2)
        return min(HIGH_RESOLUTION_BATCH_SIZE, max(1, image_count // max(1, target_batches)))
    if has_high_resolution:
        return MIXED_MODE_BATCH_SIZE
    return min(NORMAL_BATCH_SIZE, max(1, image_count // workers))


def organize_tasks(
    scan_results: Sequence[DirectoryScanResult],
    global_batch_images: Sequence[ImageRef],
    params: ProcessingParameters,
    effective_workers: int,
    effective_batch_size: int,
    output_root: Path,
) -> list[BatchTask]:
    """把分类后的目录与全局图片池转换为批处理任务列表。"""

    tasks: list[BatchTask] = []
    has_high_resolution = any(result.is_high_resolution for result in scan_results)

    for result in scan_results:
        if result.category is not DirectoryCategory.ISOLATED:
            continue

        priority = TaskPriority.CRITICAL if result.is_high_resolution else TaskPriority.HIGH
        if params.is_auto:
            batch_size = adaptive_batch_size(
                len(result.images), result.is_high_resolution, has_high_resolution, effective_workers
            )
        else:
            batch_size = max(1, params.batch_size)

        batches = split_into_batches(result.images, batch_size)
        LOGGER.info("开始处理子目录: %s%s", result.directory.name, " [高分辨率]" if result.is_high_resolution else "")
        LOGGER.debug(
            "独立目录 %s: %d 张, priority=%s, batch=%d, batches=%d",
            result.directory.name,
            len(result.images),
            priority.name,
            batch_size,
            len(batches),
        )

        output_dir = output_root / result.directory.name
        for batch in batches:
            tasks.append(
                BatchTask(
                    images=tuple(batch),
                    output_dir=output_dir,
                    batch_size=len(batch),
                    is_global=False,
                    priority=priority,
                    estimated_cost=estimate_cost(len(batch), result.is_high_resolution),
                )
            )

    if global_batch_images:
        LOGGER.info("开始处理全局批次: %d 张图片", len(global_batch_images))
        high_res_dirs = {result.directory for result in scan_results if result.is_high_resolution}
        high_res_images = [image for image in global_batch_images if image.path.parent in high_res_dirs]
        normal_images = [image for image in global_batch_images if image.path.parent not in high_res_dirs]

        for batch in split_into_batches(high_res_images, HIGH_RESOLUTION_BATCH_SIZE):
            tasks.append(
                BatchTask(
                    images=tuple(batch),
                    output_dir=output_root,
                    batch_size=len(batch),
                    is_global=True,
                    priority=TaskPriority.HIGH,
                    estimated_cost=estimate_cost(len(batch), True),
                )
            )

        normal_batch_size = MIXED_MODE_BATCH_SIZE if has_high_resolution else effective_batch_size
        for batch in split_into_batches(normal_images, normal_batch_size):
            tasks.append(
                BatchTask(
                    images=tuple(batch),
                    output_dir=output_root,
                    batch_size=len(batch),
                    is_global=True,
                    priority=TaskPriority.NORMAL,
                    estimated_cost=estimate_cost(len(batch), False),
                )
            )
        LOGGER.debug(
            "全局批次: 高分辨率 %d 张, 普通 %d 张 (batch=%d)",
            len(high_res_images),
            len(normal_images),
            normal_batch_size,
        )

    LOGGER.debug("共生成 %d 个批处理任务", len(tasks))
    return tasks


class PriorityTaskQueue:
    """线程安全的优先级队列，跟踪进行中的高优先级任务数。"""

    def __init__(self, tasks: Sequence[BatchTask]) -> None:
        self._lock = threading.Lock()
        self._active = 0
        self._high_in_flight = 0
        # 稳定排序：优先级高者在前，同优先级下估算成本高者在前
        self._pending = sorted(tasks, key=lambda task: (-task.priority, -task.estimated_cost))

    def next_task(self) -> Optional[BatchTask]:
        with self._lock:
            if not self._pending:
                return None

            # 待处理列表已按优先级降序排列，队首即当前应派发的任务
            task = self._pending.pop(0)
            self._active += 1
            if task.priority >= TaskPriority.HIGH:
                self._high_in_flight += 1
            return task

    def task_completed(self, task: BatchTask) -> None:
        with self._lock:
            self._active = max(0, self._active - 1)
            if task.priority >= TaskPriority.HIGH:
                self._high_in_flight = max(0, self._high_in_flight - 1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def statistics(self) -> tuple[int, int, int]:
        """返回 (待处理, 进行中, 进行中的高优先级)。"""

        with self._lock:
            return len(self._pending), self._active, self._high_in_flight
