"""处理流水线：校验、扫描分类、任务划分、并发执行与汇总。"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Optional

from comic_batch.core.cancellation import CancellationToken
from comic_batch.core.config import JobConfig, ProcessingParameters, validate_parameters
from comic_batch.core.exceptions import ComicBatchError
from comic_batch.core.models import BatchResult, BatchTask, DirectoryCategory, RunSummary
from comic_batch.core.notifications import CompletionNotifier, LoggingNotifier
from comic_batch.core.output_manager import PathCollisionManager, create_directory, create_output_directories
from comic_batch.core.progress import ProgressCallback, ProgressUpdate
from comic_batch.core.report import format_duration, summary_lines, write_failure_report
from comic_batch.core.scanner import analyze_directories
from comic_batch.processing.auto_params import tune
from comic_batch.processing.commands import CommandBuilder, find_duplicate_base_names
from comic_batch.processing.engine import ExecutionEngine
from comic_batch.processing.gm_executor import GMProcessExecutor
from comic_batch.processing.graphicsmagick import resolve_graphicsmagick
from comic_batch.processing.scheduler import organize_tasks
from comic_batch.processing.worker import BatchProcessor

LOGGER = logging.getLogger(__name__)


def process_batch(
    config: JobConfig,
    progress_callback: ProgressCallback = None,
    token: Optional[CancellationToken] = None,
    notifier: Optional[CompletionNotifier] = None,
) -> RunSummary:
    """批量处理入口。

    参数不合法时直接抛出 InvalidParameterError；其余结构性失败（找不到 gm、
    输出目录无法创建、输入目录不可读）会中止运行，并以带 error 的汇总返回。
    """

    params = validate_parameters(config.parameters)
    token = token or CancellationToken()
    notifier = notifier or LoggingNotifier()
    started = time.monotonic()
    summary = RunSummary()

    _log_start_parameters(params)
    try:
        _run(config, params, token, progress_callback, summary)
    except ComicBatchError as exc:
        LOGGER.error("%s", exc)
        summary.error = str(exc)

    summary.cancelled = token.is_cancelled()
    summary.elapsed_seconds = time.monotonic() - started
    _finish(config, summary, progress_callback, notifier)
    return summary


def _run(
    config: JobConfig,
    params: ProcessingParameters,
    token: CancellationToken,
    progress_callback: ProgressCallback,
    summary: RunSummary,
) -> None:
    gm_path = resolve_graphicsmagick(config.gm_path)
    output_root = create_directory(Path(config.output_dir).expanduser().resolve())
    input_root = Path(config.input_dir).expanduser().resolve()

    if token.is_cancelled():
        return

    LOGGER.info("开始扫描输入目录: %s", input_root)
    scan_results = analyze_directories(input_root, params.width_threshold, token.is_cancelled)
    if not scan_results or token.is_cancelled():
        return

    total = sum(len(result.images) for result in scan_results)
    has_high_resolution = any(result.is_high_resolution for result in scan_results)
    summary.total_images = total
    LOGGER.info("待处理图片共 %d 张", total)
    _emit_progress(progress_callback, ProgressUpdate(total=total, completed=0, message="扫描完成"))

    global_images = [
        image
        for result in scan_results
        if result.category is DirectoryCategory.GLOBAL_BATCH
        for image in result.images
    ]
    workers, batch_size = tune(params.worker_count, params.batch_size, total, has_high_resolution)

    create_output_directories(scan_results, output_root)
    tasks = organize_tasks(scan_results, global_images, params, workers, batch_size, output_root)
    if not tasks or token.is_cancelled():
        return

    processor = BatchProcessor(
        executor=GMProcessExecutor(gm_path),
        builder=CommandBuilder(params),
        path_manager=PathCollisionManager(),
        duplicate_names={result.directory: find_duplicate_base_names(result.images) for result in scan_results},
    )

    lock = threading.Lock()
    completed = 0
    failed = 0

    def on_task_completed(task: BatchTask, result: BatchResult) -> None:
        nonlocal completed, failed
        with lock:
            completed += result.processed + len(result.failed)
            failed += len(result.failed)
            update = ProgressUpdate(total=total, completed=completed, failed=failed)
        _emit_progress(progress_callback, update)

    engine = ExecutionEngine(processor.process, workers, token, on_task_completed=on_task_completed)
    engine_result = engine.run(tasks)

    summary.processed = engine_result.processed
    summary.failed_files = engine_result.failed
    summary.global_processed = engine_result.global_processed
    summary.isolated_directories = [
        result.directory.name for result in scan_results if result.category is DirectoryCategory.ISOLATED
    ]


def _finish(
    config: JobConfig,
    summary: RunSummary,
    progress_callback: ProgressCallback,
    notifier: CompletionNotifier,
) -> None:
    for line in summary_lines(summary):
        LOGGER.info("%s", line)

    if config.report_filename and summary.failed_files:
        try:
            write_failure_report(summary.failed_files, Path(config.output_dir), config.report_filename)
        except OSError as exc:
            LOGGER.error("写入报告失败：%s", exc)

    status = "error" if summary.error else "cancelled" if summary.cancelled else "finished"
    _emit_progress(
        progress_callback,
        ProgressUpdate(
            total=summary.total_images,
            completed=summary.processed + summary.failed,
            failed=summary.failed,
            message="处理完成",
            status=status,
        ),
    )

    try:
        notifier.notify_completion(summary.processed, summary.failed, format_duration(summary.elapsed_seconds))
    except Exception:  # noqa: BLE001
        LOGGER.exception("发送完成通知失败")


def _log_start_parameters(params: ProcessingParameters) -> None:
    gray = "开启" if params.grayscale else "关闭"
    workers = "自动" if params.is_auto else str(params.worker_count)
    if params.unsharp.amount > 0:
        unsharp = params.unsharp
        LOGGER.info(
            "开始处理: 宽度阈值 %d, 目标高度 %d, 质量 %d, 并发 %s, 锐化 %.2fx%.2f+%.2f+%.2f, 灰度 %s",
            params.width_threshold,
            params.resize_height,
            params.quality,
            workers,
            unsharp.radius,
            unsharp.sigma,
            unsharp.amount,
            unsharp.threshold,
            gray,
        )
    else:
        LOGGER.info(
            "开始处理: 宽度阈值 %d, 目标高度 %d, 质量 %d, 并发 %s, 灰度 %s",
            params.width_threshold,
            params.resize_height,
            params.quality,
            workers,
            gray,
        )


def _emit_progress(callback: ProgressCallback, update: ProgressUpdate) -> None:
    if not callback:
        return
    callback(update)
