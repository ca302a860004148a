"""根据图片总数自动计算并发数与批大小。"""

from __future__ import annotations

import logging
import math

from comic_batch.core.config import AUTO_WORKER_COUNT, MAX_BATCH_SIZE, MAX_WORKER_COUNT

LOGGER = logging.getLogger(__name__)

HIGH_RESOLUTION_MIN_IMAGES = 10


def auto_worker_count(total_images: int) -> int:
    """按工作量分段分配并发数，随图片数单调不减。"""

    if total_images < 10:
        return 1
    if total_images < 50:
        return min(3, 1 + math.ceil((total_images - 10) / 20))
    if total_images < 300:
        return min(MAX_WORKER_COUNT, 3 + math.ceil((total_images - 50) / 50))
    return MAX_WORKER_COUNT


def batch_size_for(total_images: int, workers: int) -> int:
    return max(1, min(MAX_BATCH_SIZE, math.ceil(total_images / max(1, workers))))


def tune(
    requested_workers: int,
    requested_batch_size: int,
    total_images: int,
    has_high_resolution: bool = False,
) -> tuple[int, int]:
    """返回 (有效并发数, 有效批大小)。

    requested_workers 不为 0 时原样返回调用者的设置。
    """

    if requested_workers != AUTO_WORKER_COUNT:
        LOGGER.debug("手动模式: workers=%d, batch=%d", requested_workers, requested_batch_size)
        return requested_workers, requested_batch_size

    if has_high_resolution and total_images >= HIGH_RESOLUTION_MIN_IMAGES:
        workers = MAX_WORKER_COUNT
    else:
        workers = auto_worker_count(total_images)

    batch_size = batch_size_for(total_images, workers)
    LOGGER.info("自动模式: %d 张图片 -> %d 个并发, 每批 %d 张", total_images, workers, batch_size)
    return workers, batch_size
