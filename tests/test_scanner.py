"""图片尺寸探测、子目录列举与分类。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from comic_batch.core.cancellation import CancellationToken
from comic_batch.core.exceptions import DirectoryReadError, ImageDimensionsUnavailable
from comic_batch.core.models import DirectoryCategory
from comic_batch.core.scanner import analyze_directories, classify_directory, list_image_files
from comic_batch.processing.image_probe import batch_dimensions, probe_dimensions
from conftest import make_image


def test_probe_reads_header_dimensions(tmp_path: Path) -> None:
    path = make_image(tmp_path / "page.png", (640, 960))

    dims = probe_dimensions(path)

    assert (dims.width, dims.height) == (640, 960)


def test_probe_rejects_corrupted_file(tmp_path: Path) -> None:
    broken = tmp_path / "broken.jpg"
    broken.write_text("not an image")

    with pytest.raises(ImageDimensionsUnavailable):
        probe_dimensions(broken)


def test_batch_dimensions_skips_failures_and_runs_in_parallel(tmp_path: Path) -> None:
    paths = [make_image(tmp_path / f"{idx:03d}.png", (10 + idx, 20)) for idx in range(25)]
    broken = tmp_path / "zz_broken.png"
    broken.write_text("garbage")

    result = batch_dimensions([*paths, broken], max_workers=4)

    assert len(result) == 25
    assert broken not in result
    assert result[paths[7]].width == 17


def test_batch_dimensions_stops_when_cancelled(tmp_path: Path) -> None:
    paths = [make_image(tmp_path / f"{idx}.png", (10, 10)) for idx in range(3)]

    assert batch_dimensions(paths, cancel_check=lambda: True) == {}


def test_list_image_files_filters_and_skips_hidden(tmp_path: Path) -> None:
    chapter = tmp_path / "ch1"
    make_image(chapter / "b.jpg", (10, 10))
    make_image(chapter / "a.PNG", (10, 10))
    make_image(chapter / ".hidden.jpg", (10, 10))
    (chapter / "notes.txt").write_text("hello")
    make_image(chapter / "nested" / "c.jpg", (10, 10))

    images = list_image_files(chapter)

    assert [image.path.name for image in images] == ["a.PNG", "b.jpg"]
    assert images[0].extension == "png"
    assert images[0].directory_name == "ch1"


@pytest.mark.parametrize(
    ("widths", "expected"),
    [
        ((800, 900, 999), DirectoryCategory.GLOBAL_BATCH),
        ((800, 1000, 700), DirectoryCategory.ISOLATED),
        ((1800,), DirectoryCategory.ISOLATED),
    ],
)
def test_classification_by_sample_width(tmp_path: Path, widths: tuple[int, ...], expected: DirectoryCategory) -> None:
    chapter = tmp_path / "ch"
    for idx, width in enumerate(widths):
        make_image(chapter / f"{idx:02d}.png", (width, 50))

    category, _ = classify_directory(list_image_files(chapter), width_threshold=1000)

    assert category is expected


def test_unreadable_sample_is_isolated(tmp_path: Path) -> None:
    chapter = tmp_path / "ch"
    make_image(chapter / "01.png", (500, 50))
    (chapter / "02.png").write_text("broken")

    category, _ = classify_directory(list_image_files(chapter), width_threshold=1000)

    assert category is DirectoryCategory.ISOLATED


def test_only_first_five_images_are_sampled(tmp_path: Path) -> None:
    chapter = tmp_path / "ch"
    for idx in range(5):
        make_image(chapter / f"{idx:02d}.png", (500, 50))
    make_image(chapter / "99.png", (5000, 50))

    category, _ = classify_directory(list_image_files(chapter), width_threshold=1000)

    assert category is DirectoryCategory.GLOBAL_BATCH


def test_analyze_directories_builds_results(tmp_path: Path) -> None:
    root = tmp_path / "input"
    make_image(root / "narrow" / "01.jpg", (800, 1200))
    make_image(root / "wide" / "01.jpg", (1800, 1200))
    make_image(root / "tall" / "01.jpg", (900, 3200))
    (root / "empty").mkdir()
    (root / "loose.jpg").write_text("ignored")

    results = {result.directory.name: result for result in analyze_directories(root, 1000)}

    assert set(results) == {"narrow", "wide", "tall"}
    assert results["narrow"].category is DirectoryCategory.GLOBAL_BATCH
    assert results["wide"].category is DirectoryCategory.ISOLATED
    assert results["tall"].is_high_resolution is True
    assert results["narrow"].is_high_resolution is False


def test_analyze_without_subdirectories_returns_empty(tmp_path: Path) -> None:
    root = tmp_path / "input"
    make_image(root / "01.jpg", (100, 100))

    assert analyze_directories(root, 1000) == []


def test_analyze_unreadable_root_raises(tmp_path: Path) -> None:
    with pytest.raises(DirectoryReadError):
        analyze_directories(tmp_path / "missing", 1000)


def test_analyze_returns_partial_results_when_cancelled(tmp_path: Path) -> None:
    root = tmp_path / "input"
    for name in ("a", "b", "c"):
        make_image(root / name / "01.jpg", (100, 100))

    token = CancellationToken()
    checks = {"count": 0}

    def cancel_after_first_directory() -> bool:
        checks["count"] += 1
        # 子目录 a 共经过 4 次检查：进入目录、探测样本、遍历样本、分类完成
        if checks["count"] > 4:
            token.cancel()
        return token.is_cancelled()

    results = analyze_directories(root, 1000, cancel_after_first_directory)

    assert [result.directory.name for result in results] == ["a"]


def test_probe_reads_pages_beyond_pillow_pixel_limit(tmp_path: Path) -> None:
    path = tmp_path / "big.png"
    Image.new("1", (14000, 14000)).save(path)

    dims = probe_dimensions(path)

    assert (dims.width, dims.height) == (14000, 14000)


def test_decompression_bomb_counts_as_unavailable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    chapter = tmp_path / "ch"
    bomb = make_image(chapter / "00.png", (300, 300))
    make_image(chapter / "01.png", (5, 5))

    with pytest.raises(ImageDimensionsUnavailable):
        probe_dimensions(bomb)
    category, _ = classify_directory(list_image_files(chapter), width_threshold=1000)

    assert category is DirectoryCategory.ISOLATED
