"""GraphicsMagick 可执行文件的定位、校验与命令拼装。"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from comic_batch.core.config import UnsharpConfig
from comic_batch.core.exceptions import ToolNotFoundError, ToolVerificationError

LOGGER = logging.getLogger(__name__)

KNOWN_GM_PATHS = ("/opt/homebrew/bin/gm", "/usr/local/bin/gm", "/usr/bin/gm")
EXTRA_SEARCH_DIRS = ("/opt/homebrew/bin", "/usr/local/bin")
VERIFY_TIMEOUT = 30


def locate_graphicsmagick(known_paths: Sequence[str] = KNOWN_GM_PATHS) -> Path:
    """依次检查常见安装路径，找不到时在扩充后的 PATH 中搜索 gm。"""

    for candidate in known_paths:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return Path(candidate)

    search_path = os.pathsep.join([*EXTRA_SEARCH_DIRS, os.environ.get("PATH", "")])
    found = shutil.which("gm", path=search_path)
    if not found:
        LOGGER.error("在 PATH 中找不到 gm")
        raise ToolNotFoundError()
    return Path(found)


def verify_graphicsmagick(gm_path: Path) -> str:
    """执行 gm --version，退出码为 0 时返回版本信息首行。"""

    try:
        completed = subprocess.run(
            [str(gm_path), "--version"],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=VERIFY_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        raise ToolVerificationError(str(exc)) from exc

    output = completed.stdout.decode("utf-8", errors="replace").strip()
    if completed.returncode != 0:
        raise ToolVerificationError(output or f"exit code {completed.returncode}")

    version = output.splitlines()[0] if output else ""
    LOGGER.info("GraphicsMagick 版本: %s", version)
    return version


def resolve_graphicsmagick(explicit_path: Optional[Path] = None) -> Path:
    """定位并校验 gm，任一步失败都会抛出异常。"""

    if explicit_path is not None:
        gm_path = Path(explicit_path)
        if not gm_path.is_file():
            raise ToolNotFoundError()
    else:
        gm_path = locate_graphicsmagick()

    verify_graphicsmagick(gm_path)
    LOGGER.info("GraphicsMagick 已就绪: %s", gm_path)
    return gm_path


def escape_path_for_shell(path: str) -> str:
    """单引号包裹路径，内部单引号转义为 '\\''。"""

    return "'" + path.replace("'", "'\\''") + "'"


def build_convert_command(
    input_path: str,
    output_path: str,
    crop: Optional[str],
    resize_height: int,
    quality: int,
    unsharp: UnsharpConfig,
    grayscale: bool,
) -> str:
    """拼装一行 gm batch 模式下的 convert 命令。"""

    parts = ["convert", escape_path_for_shell(input_path)]
    if crop:
        parts.extend(["-crop", crop])
    parts.extend(["-resize", f"x{resize_height}"])
    if grayscale:
        parts.extend(["-colorspace", "GRAY"])
    if unsharp.amount > 0:
        parts.extend(
            [
                "-unsharp",
                f"{float(unsharp.radius)}x{float(unsharp.sigma)}"
                f"+{float(unsharp.amount)}+{float(unsharp.threshold)}",
            ]
        )
    parts.extend(["-quality", str(quality), escape_path_for_shell(output_path)])
    return " ".join(parts)
