"""输出目录创建与输出路径冲突处理。"""

from __future__ import annotations

import logging
import threading
import time
from itertools import count
from pathlib import Path
from typing import Iterable

from comic_batch.core.exceptions import DirectoryCreationError
from comic_batch.core.models import DirectoryScanResult

LOGGER = logging.getLogger(__name__)

MAX_COLLISION_ATTEMPTS = 10000


class PathCollisionManager:
    """在一次运行内保证生成的输出路径互不冲突（忽略大小写）。

    多个批次并发写入同一输出目录，reserve 调用在锁内串行执行。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reserved: set[str] = set()

    def reserve(self, base_path: str, suffix: str) -> str:
        """预留 base_path + suffix，冲突时在两者之间追加 -N。"""

        with self._lock:
            candidate = base_path + suffix
            attempts = 0
            if candidate.lower() in self._reserved:
                for idx in count(1):
                    candidate = f"{base_path}-{idx}{suffix}"
                    attempts = idx
                    if candidate.lower() not in self._reserved or idx >= MAX_COLLISION_ATTEMPTS:
                        break

            if candidate.lower() in self._reserved:
                LOGGER.debug("路径冲突过多，改用时间戳: %s", base_path)
                candidate = f"{base_path}-{int(time.time() * 1000)}{suffix}"

            self._reserved.add(candidate.lower())

        if attempts:
            LOGGER.debug("路径冲突已解决 (%d 次尝试): %s", attempts, candidate)
        return candidate

    def reset(self) -> None:
        with self._lock:
            self._reserved.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._reserved)


def create_directory(path: Path) -> Path:
    """创建目录（已存在时不报错）。"""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryCreationError(path, exc) from exc
    return path


def create_output_directories(scan_results: Iterable[DirectoryScanResult], output_root: Path) -> list[Path]:
    """为每个扫描到的子目录在输出根目录下创建同名目录。"""

    unique = sorted({output_root / result.directory.name for result in scan_results})
    for path in unique:
        create_directory(path)
    LOGGER.debug("已创建 %d 个输出子目录", len(unique))
    return unique
