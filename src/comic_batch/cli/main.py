"""命令行入口。"""

from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from comic_batch.core.cancellation import CancellationToken
from comic_batch.core.config import JobConfig, ProcessingParameters, UnsharpConfig
from comic_batch.core.exceptions import ComicBatchError, InvalidParameterError
from comic_batch.core.progress import ProgressUpdate
from comic_batch.processing.graphicsmagick import resolve_graphicsmagick
from comic_batch.processing.pipeline import process_batch
from comic_batch.utils.logging import setup_logging

app = typer.Typer(help="漫画图片批量缩放与跨页拆分工具（基于 GraphicsMagick）。")


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("处理图片", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.message:
            progress.log(update.message)

    return callback


@app.command("run")
def run_cli(  # noqa: PLR0913
    input_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="输入根目录（包含各章节子目录）"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    width_threshold: int = typer.Option(3000, "--width-threshold", help="宽度达到该值的图片将左右拆分"),
    resize_height: int = typer.Option(1648, "--resize-height", help="输出高度"),
    quality: int = typer.Option(85, "--quality", "-q", help="JPEG 质量 1~100"),
    unsharp_radius: float = typer.Option(1.5, "--unsharp-radius", help="锐化半径"),
    unsharp_sigma: float = typer.Option(1.0, "--unsharp-sigma", help="锐化 sigma"),
    unsharp_amount: float = typer.Option(0.7, "--unsharp-amount", help="锐化强度，0 表示不锐化"),
    unsharp_threshold: float = typer.Option(0.02, "--unsharp-threshold", help="锐化阈值"),
    workers: int = typer.Option(0, "--workers", "-w", help="并发数量，0 为自动"),
    batch_size: int = typer.Option(40, "--batch-size", "-b", help="每批图片数量 1~1000"),
    grayscale: bool = typer.Option(True, "--gray/--no-gray", help="是否转换为灰度"),
    gm_path: Optional[Path] = typer.Option(None, "--gm-path", help="指定 gm 可执行文件"),
    report: Optional[str] = typer.Option(None, "--report", help="失败文件报告名（CSV，写入输出目录）"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="调试日志文件"),
) -> None:
    """执行批量处理。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    params = ProcessingParameters(
        width_threshold=width_threshold,
        resize_height=resize_height,
        quality=quality,
        unsharp=UnsharpConfig(
            radius=unsharp_radius,
            sigma=unsharp_sigma,
            amount=unsharp_amount,
            threshold=unsharp_threshold,
        ),
        worker_count=workers,
        batch_size=batch_size,
        grayscale=grayscale,
    )
    job = JobConfig(
        input_dir=input_dir.expanduser().resolve(),
        output_dir=output.expanduser().resolve(),
        parameters=params,
        gm_path=gm_path,
        report_filename=report,
    )

    token = CancellationToken()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )

    try:
        with progress:
            summary = process_batch(job, progress_callback=_build_progress_callback(progress), token=token)
    except InvalidParameterError as exc:
        typer.echo(f"参数错误：{exc}", err=True)
        raise typer.Exit(code=2) from exc
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    typer.echo(f"处理完成：成功 {summary.processed} 张，失败 {summary.failed} 张。")
    if summary.error:
        typer.echo(f"运行中止：{summary.error}", err=True)
        raise typer.Exit(code=1)
    if summary.cancelled:
        raise typer.Exit(code=130)


@app.command("check-tool")
def check_tool(
    gm_path: Optional[Path] = typer.Option(None, "--gm-path", help="指定 gm 可执行文件"),
) -> None:
    """检查 GraphicsMagick 是否可用。"""

    setup_logging(logging.WARNING)
    try:
        path = resolve_graphicsmagick(gm_path)
    except ComicBatchError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"GraphicsMagick 已就绪：{path}")


if __name__ == "__main__":
    app()
