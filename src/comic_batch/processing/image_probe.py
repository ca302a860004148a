"""图片尺寸探测：只读取文件头，不解码像素数据。"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from comic_batch.core.cancellation import CancelCheck
from comic_batch.core.exceptions import ImageDimensionsUnavailable
from comic_batch.core.models import ImageDimensions

LOGGER = logging.getLogger(__name__)

SMALL_BATCH_THRESHOLD = 20

# 只读取文件头，像素解码交给 gm；跨页扫描图常超过 Pillow 默认的像素上限
Image.MAX_IMAGE_PIXELS = None


def probe_dimensions(path: Path) -> ImageDimensions:
    """读取单张图片的像素宽高。

    Image.open 是惰性的，只解析文件头；这里不调用 load()。
    """

    try:
        with Image.open(path) as img:
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        LOGGER.debug("无法读取图片尺寸 %s: %s", path, exc)
        raise ImageDimensionsUnavailable(path) from exc

    if width <= 0 or height <= 0:
        raise ImageDimensionsUnavailable(path)
    return ImageDimensions(width=width, height=height)


def batch_dimensions(
    paths: Sequence[Path],
    cancel_check: Optional[CancelCheck] = None,
    max_workers: Optional[int] = None,
) -> Dict[Path, ImageDimensions]:
    """批量读取尺寸，读取失败的图片不出现在结果中。

    少于 SMALL_BATCH_THRESHOLD 张时串行执行；否则按可用核数分块并发。
    """

    if not paths:
        return {}

    is_cancelled = cancel_check or (lambda: False)

    if len(paths) < SMALL_BATCH_THRESHOLD:
        return _probe_chunk(paths, is_cancelled)

    worker_count = min(len(paths), max_workers or os.cpu_count() or 1)
    chunk_size = -(-len(paths) // worker_count)
    chunks = [paths[i : i + chunk_size] for i in range(0, len(paths), chunk_size)]

    results: Dict[Path, ImageDimensions] = {}
    with ThreadPoolExecutor(max_workers=len(chunks), thread_name_prefix="probe") as executor:
        # 各分块返回独立字典，在此串行合并。
        for partial in executor.map(lambda chunk: _probe_chunk(chunk, is_cancelled), chunks):
            results.update(partial)
    return results


def _probe_chunk(paths: Sequence[Path], is_cancelled: CancelCheck) -> Dict[Path, ImageDimensions]:
    found: Dict[Path, ImageDimensions] = {}
    for path in paths:
        if is_cancelled():
            break
        try:
            found[path] = probe_dimensions(path)
        except ImageDimensionsUnavailable:
            continue
    return found
