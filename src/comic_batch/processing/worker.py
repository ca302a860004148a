"""并发处理的工作单元：一个批次对应一个 gm batch 进程。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AbstractSet, Mapping, Optional

from comic_batch.core.cancellation import CancellationToken
from comic_batch.core.exceptions import CommandEncodingError, ComicBatchError, ProcessingCancelled
from comic_batch.core.models import BatchResult, BatchTask, ImageRef
from comic_batch.core.output_manager import PathCollisionManager
from comic_batch.processing.commands import CommandBuilder
from comic_batch.processing.gm_executor import CommandWriter, GMProcessExecutor
from comic_batch.processing.image_probe import batch_dimensions

LOGGER = logging.getLogger(__name__)


class BatchProcessor:
    """读取尺寸、生成命令并写入 gm 进程，返回批次结果。"""

    def __init__(
        self,
        executor: GMProcessExecutor,
        builder: CommandBuilder,
        path_manager: PathCollisionManager,
        duplicate_names: Optional[Mapping[Path, AbstractSet[str]]] = None,
    ) -> None:
        self.executor = executor
        self.builder = builder
        self.path_manager = path_manager
        self.duplicate_names = duplicate_names or {}

    def process(self, task: BatchTask, token: Optional[CancellationToken] = None) -> BatchResult:
        token = token or CancellationToken()
        if not task.images or token.is_cancelled():
            return BatchResult.empty(task.is_global)

        dimensions = batch_dimensions([image.path for image in task.images], cancel_check=token.is_cancelled)
        if token.is_cancelled():
            return BatchResult.empty(task.is_global)

        failed: list[str] = []
        written: list[ImageRef] = []
        skipped: list[ImageRef] = []
        pending = [image for image in task.images if image.path in dimensions]
        for image in task.images:
            if image.path not in dimensions:
                LOGGER.warning("无法读取图片尺寸，跳过: %s", image.path)
                failed.append(str(image.path))

        if not pending:
            return BatchResult(processed=0, failed=failed, is_global=task.is_global)

        def write_commands(writer: CommandWriter) -> None:
            for image in pending:
                if token.is_cancelled():
                    raise ProcessingCancelled()
                commands = self.builder.build_commands(
                    image,
                    dimensions[image.path],
                    task.output_dir,
                    self.path_manager,
                    self.duplicate_names.get(image.path.parent, frozenset()),
                )
                try:
                    writer.write_commands(commands)
                except CommandEncodingError:
                    LOGGER.warning("命令编码失败，跳过: %s", image.path)
                    skipped.append(image)
                    failed.append(str(image.path))
                    continue
                written.append(image)

        try:
            self.executor.execute_batch(write_commands, token)
        except ProcessingCancelled:
            LOGGER.debug("批次已取消，不计入结果 (%d 张)", len(task.images))
            return BatchResult.empty(task.is_global)
        except ComicBatchError as exc:
            LOGGER.error("批次处理失败 (%d 张): %s", len(pending), exc)
            failed.extend(str(image.path) for image in pending if image not in skipped)
            return BatchResult(processed=0, failed=failed, is_global=task.is_global)

        return BatchResult(processed=len(written), failed=failed, is_global=task.is_global)
