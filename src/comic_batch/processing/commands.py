"""为单张图片生成 gm convert 命令。"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import AbstractSet, Iterable

from comic_batch.core.config import ProcessingParameters
from comic_batch.core.models import ImageDimensions, ImageRef
from comic_batch.core.output_manager import PathCollisionManager
from comic_batch.processing.graphicsmagick import build_convert_command

LOGGER = logging.getLogger(__name__)

SINGLE_SUFFIX = ".jpg"
RIGHT_HALF_SUFFIX = "-1.jpg"
LEFT_HALF_SUFFIX = "-2.jpg"


def find_duplicate_base_names(images: Iterable[ImageRef]) -> set[str]:
    """返回出现多次的文件名主干（小写），如 page.jpg 与 page.png。"""

    counts = Counter(image.stem.lower() for image in images)
    duplicates = {name for name, total in counts.items() if total > 1}
    if duplicates:
        LOGGER.debug("发现 %d 个重复的文件名主干", len(duplicates))
    return duplicates


def split_widths(width: int) -> tuple[int, int]:
    """返回 (左半宽, 右半宽)，左半向上取整。"""

    left = (width + 1) // 2
    return left, width - left


class CommandBuilder:
    """根据宽度阈值决定整页缩放还是左右拆分。"""

    def __init__(self, params: ProcessingParameters) -> None:
        self.params = params

    def output_base_path(self, image: ImageRef, output_dir: Path, duplicate_names: AbstractSet[str]) -> str:
        if output_dir.name == image.directory_name:
            final_dir = output_dir
        else:
            final_dir = output_dir / image.directory_name

        base_name = image.stem
        if base_name.lower() in duplicate_names:
            base_name = f"{image.stem}_{image.extension}"
        return str(final_dir / base_name)

    def build_commands(
        self,
        image: ImageRef,
        dimensions: ImageDimensions,
        output_dir: Path,
        path_manager: PathCollisionManager,
        duplicate_names: AbstractSet[str] = frozenset(),
    ) -> list[str]:
        """生成一张图片对应的命令；拆分时先右半 (-1) 后左半 (-2)。"""

        base_path = self.output_base_path(image, output_dir, duplicate_names)
        width, height = dimensions.width, dimensions.height

        if width < self.params.width_threshold:
            output_path = path_manager.reserve(base_path, SINGLE_SUFFIX)
            LOGGER.debug("整页处理: %s (%dx%d)", image.path.name, width, height)
            return [self._convert(image, output_path, None)]

        left_width, right_width = split_widths(width)
        LOGGER.debug(
            "拆分处理: %s (%dx%d) -> L:%d R:%d", image.path.name, width, height, left_width, right_width
        )
        right_path = path_manager.reserve(base_path, RIGHT_HALF_SUFFIX)
        left_path = path_manager.reserve(base_path, LEFT_HALF_SUFFIX)
        return [
            self._convert(image, right_path, f"{right_width}x{height}+{left_width}+0"),
            self._convert(image, left_path, f"{left_width}x{height}+0+0"),
        ]

    def _convert(self, image: ImageRef, output_path: str, crop: str | None) -> str:
        params = self.params
        return build_convert_command(
            input_path=str(image.path),
            output_path=output_path,
            crop=crop,
            resize_height=params.resize_height,
            quality=params.quality,
            unsharp=params.unsharp,
            grayscale=params.grayscale,
        )
