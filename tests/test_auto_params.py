"""按图片总数自动计算并发数与批大小。"""

from __future__ import annotations

import math

import pytest

from comic_batch.core.config import MAX_BATCH_SIZE, MAX_WORKER_COUNT
from comic_batch.processing.auto_params import auto_worker_count, tune


@pytest.mark.parametrize(
    ("total", "workers"),
    [
        (0, 1),
        (9, 1),
        (10, 1),
        (11, 2),
        (30, 2),
        (31, 3),
        (49, 3),
        (50, 3),
        (51, 4),
        (100, 4),
        (101, 5),
        (151, 6),
        (299, 6),
        (300, 6),
        (5000, 6),
    ],
)
def test_worker_table(total: int, workers: int) -> None:
    assert auto_worker_count(total) == workers


def test_workers_are_monotonic() -> None:
    previous = 0
    for total in range(0, 1200):
        current = auto_worker_count(total)
        assert current >= previous
        assert 1 <= current <= MAX_WORKER_COUNT
        previous = current


def test_batch_size_matches_ceiling_division() -> None:
    for total in range(1, 3000, 7):
        workers, batch_size = tune(0, 40, total)
        assert batch_size == max(1, min(MAX_BATCH_SIZE, math.ceil(total / workers)))


def test_batch_size_is_capped() -> None:
    workers, batch_size = tune(0, 40, 100_000)

    assert workers == MAX_WORKER_COUNT
    assert batch_size == MAX_BATCH_SIZE


def test_manual_mode_passes_through() -> None:
    assert tune(3, 17, 12345) == (3, 17)


def test_high_resolution_uses_max_workers() -> None:
    assert tune(0, 40, 12, has_high_resolution=True) == (MAX_WORKER_COUNT, 2)
    # 图片太少时沿用普通分段
    assert tune(0, 40, 5, has_high_resolution=True) == (1, 5)
