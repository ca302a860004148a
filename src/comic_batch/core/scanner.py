"""子目录扫描与分类逻辑。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional, Sequence

from comic_batch.core.cancellation import CancelCheck
from comic_batch.core.exceptions import DirectoryReadError, NoImagesFoundError
from comic_batch.core.models import DirectoryCategory, DirectoryScanResult, ImageRef
from comic_batch.processing.image_probe import batch_dimensions

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp"}
SAMPLE_SIZE = 5
HIGH_RESOLUTION_THRESHOLD = 3000


def list_subdirectories(root: Path) -> list[Path]:
    """列出输入根目录下的直接子目录（跳过隐藏目录）。"""

    try:
        entries = sorted(root.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise DirectoryReadError(root, exc) from exc

    return [entry for entry in entries if entry.is_dir() and not entry.name.startswith(".")]


def _iter_candidate_files(directory: Path) -> Iterator[Path]:
    """非递归遍历目录下的普通文件。"""

    for candidate in directory.iterdir():
        if candidate.name.startswith("."):
            continue
        if candidate.is_file():
            yield candidate


def list_image_files(directory: Path) -> list[ImageRef]:
    """返回目录中受支持的图片，按文件名排序以保证同一次运行内顺序稳定。"""

    try:
        files = [p for p in _iter_candidate_files(directory) if p.suffix.lower() in IMAGE_EXTENSIONS]
    except OSError as exc:
        raise DirectoryReadError(directory, exc) from exc

    files.sort(key=lambda p: p.name)
    return [ImageRef(path=p) for p in files]


def classify_directory(
    images: Sequence[ImageRef],
    width_threshold: int,
    cancel_check: Optional[CancelCheck] = None,
) -> tuple[DirectoryCategory, bool]:
    """抽样前 SAMPLE_SIZE 张图片判断目录类别。

    任一样本宽度 >= 阈值或尺寸不可读即判为 ISOLATED；返回 (类别, 是否高分辨率)。
    """

    is_cancelled = cancel_check or (lambda: False)
    samples = [image.path for image in images[:SAMPLE_SIZE]]
    dimensions = batch_dimensions(samples, cancel_check=is_cancelled)

    is_high_resolution = any(
        max(dims.width, dims.height) >= HIGH_RESOLUTION_THRESHOLD for dims in dimensions.values()
    )

    for path in samples:
        if is_cancelled():
            return DirectoryCategory.ISOLATED, is_high_resolution

        dims = dimensions.get(path)
        if dims is None:
            LOGGER.debug("样本 %s 尺寸不可用，按独立目录处理", path.name)
            return DirectoryCategory.ISOLATED, is_high_resolution

        LOGGER.debug("样本 %s: %dx%d", path.name, dims.width, dims.height)
        if dims.width >= width_threshold:
            LOGGER.debug("样本 %s 宽度 %d >= %d，判定为独立目录", path.name, dims.width, width_threshold)
            return DirectoryCategory.ISOLATED, is_high_resolution

    return DirectoryCategory.GLOBAL_BATCH, is_high_resolution


def analyze_directories(
    root: Path,
    width_threshold: int,
    cancel_check: Optional[CancelCheck] = None,
) -> list[DirectoryScanResult]:
    """扫描输入根目录并对每个子目录分类。

    根目录不可读时抛出 DirectoryReadError；中途取消时返回已完成的部分结果。
    """

    is_cancelled = cancel_check or (lambda: False)
    subdirectories = list_subdirectories(root)
    if not subdirectories:
        LOGGER.warning("输入目录下没有子目录: %s", root)
        return []

    LOGGER.debug("发现 %d 个子目录待分析", len(subdirectories))
    results: list[DirectoryScanResult] = []

    for subdirectory in subdirectories:
        if is_cancelled():
            LOGGER.debug("目录分析已取消，返回 %d 个已完成结果", len(results))
            return results

        try:
            images = list_image_files(subdirectory)
        except DirectoryReadError as exc:
            LOGGER.error("%s", exc)
            continue

        if not images:
            LOGGER.warning("%s", NoImagesFoundError(subdirectory.name))
            continue

        category, is_high_resolution = classify_directory(images, width_threshold, is_cancelled)
        if is_cancelled():
            LOGGER.debug("目录 %s 分类过程中被取消", subdirectory.name)
            return results

        LOGGER.debug(
            "目录 %s: %d 张图片，类别 %s%s",
            subdirectory.name,
            len(images),
            category.value,
            " [高分辨率]" if is_high_resolution else "",
        )
        results.append(
            DirectoryScanResult(
                directory=subdirectory,
                images=tuple(images),
                category=category,
                is_high_resolution=is_high_resolution,
            )
        )

    return results
