"""运行汇总与失败报告。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from comic_batch.core.models import RunSummary

HEADER = ["source_path", "status"]
MAX_FAILED_SAMPLE = 10


def format_duration(seconds: float) -> str:
    """格式化耗时，例如 42s、3m 5s。"""

    total = int(seconds)
    if total < 60:
        return f"{total}s"
    return f"{total // 60}m {total % 60}s"


def summary_lines(summary: RunSummary, max_failed: int = MAX_FAILED_SAMPLE) -> list[str]:
    """生成汇总文本，失败列表最多展示 max_failed 条。"""

    lines: list[str] = []
    if summary.error:
        lines.append(f"运行中止: {summary.error}")
    if summary.cancelled:
        lines.append("处理已停止，以下为已完成部分的统计")

    for name in summary.isolated_directories:
        lines.append(f"已处理子目录: {name}")
    if summary.global_processed:
        lines.append(f"全局批次完成: {summary.global_processed} 张")

    if summary.failed_files:
        lines.append(f"失败文件: {summary.failed} 个")
        lines.extend(f"  - {item}" for item in summary.failed_files[:max_failed])
        if summary.failed > max_failed:
            lines.append(f"... 另有 {summary.failed - max_failed} 个")

    lines.append(f"共处理图片: {summary.processed} 张")
    lines.append(f"耗时: {format_duration(summary.elapsed_seconds)}")
    return lines


def write_failure_report(failed_files: Iterable[str], output_dir: Path, filename: str) -> Path:
    """将失败文件写入 CSV 报告。"""

    report_path = output_dir / filename
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for path in failed_files:
            writer.writerow([path, "failed"])
    return report_path
