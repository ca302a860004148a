"""项目内使用的自定义异常定义。"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class ComicBatchError(Exception):
    """基础异常类型。"""


class ToolNotFoundError(ComicBatchError):
    """未能在已知路径及 PATH 中找到 GraphicsMagick。"""

    def __init__(self) -> None:
        super().__init__("找不到 GraphicsMagick 可执行文件 (gm)")


class ToolVerificationError(ComicBatchError):
    """gm --version 执行失败。"""

    def __init__(self, details: str) -> None:
        super().__init__(f"GraphicsMagick 校验失败: {details}")
        self.details = details


class ToolExecutionError(ComicBatchError):
    """gm batch 进程以非零退出码结束。"""

    def __init__(self, exit_code: int, stderr: Optional[str] = None) -> None:
        if stderr:
            message = f"GraphicsMagick 执行异常: {stderr.strip()}"
        else:
            message = f"GraphicsMagick 执行异常 (exit code: {exit_code})"
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class DirectoryReadError(ComicBatchError):
    """读取目录内容失败。"""

    def __init__(self, path: Path, reason: object = None) -> None:
        message = f"读取目录失败: {path}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = path


class DirectoryCreationError(ComicBatchError):
    """创建输出目录失败。"""

    def __init__(self, path: Path, reason: object = None) -> None:
        message = f"无法创建输出目录: {path}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = path


class ImageDimensionsUnavailable(ComicBatchError):
    """无法读取图片尺寸。"""

    def __init__(self, path: Path) -> None:
        super().__init__(f"无法读取图片尺寸: {path}")
        self.path = path


class PipeWriteError(ComicBatchError):
    """向 gm 输入管道写入失败。"""

    def __init__(self, errno: int, reason: str = "") -> None:
        super().__init__(f"管道写入失败 (errno {errno}) {reason}".rstrip())
        self.errno = errno


class PipeBrokenError(ComicBatchError):
    """管道已断开 (EPIPE)。"""

    def __init__(self) -> None:
        super().__init__("GraphicsMagick 执行异常: 管道已断开")


class ProcessIOTimeout(ComicBatchError):
    """多次重试后管道仍不可写。"""

    def __init__(self) -> None:
        super().__init__("GraphicsMagick 执行异常: 进程 I/O 超时")


class CommandEncodingError(ComicBatchError):
    """命令无法编码为 UTF-8。"""

    def __init__(self) -> None:
        super().__init__("GraphicsMagick 执行异常: 命令编码失败")


class InvalidParameterError(ComicBatchError):
    """处理参数不合法时抛出。"""

    def __init__(self, parameter: str, reason: str) -> None:
        super().__init__(f"{parameter}: {reason}")
        self.parameter = parameter
        self.reason = reason


class NoImagesFoundError(ComicBatchError):
    """目录中没有可处理的图片。"""

    def __init__(self, directory: str) -> None:
        super().__init__(f"目录中没有图片: {directory}")
        self.directory = directory


class ProcessingCancelled(ComicBatchError):
    """任务被用户中断时抛出。"""

    def __init__(self) -> None:
        super().__init__("处理已停止")
