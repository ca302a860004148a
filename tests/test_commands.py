"""gm convert 命令生成、输出路径与冲突处理。"""

from __future__ import annotations

import shlex
import threading
from pathlib import Path

from comic_batch.core.config import ProcessingParameters, UnsharpConfig
from comic_batch.core.models import DirectoryCategory, DirectoryScanResult, ImageDimensions, ImageRef
from comic_batch.core.output_manager import PathCollisionManager, create_output_directories
from comic_batch.processing.commands import CommandBuilder, find_duplicate_base_names, split_widths
from comic_batch.processing.graphicsmagick import build_convert_command, escape_path_for_shell


def test_escape_wraps_and_escapes_single_quotes() -> None:
    assert escape_path_for_shell("/in/a b.jpg") == "'/in/a b.jpg'"
    assert escape_path_for_shell("/in/it's.jpg") == "'/in/it'\\''s.jpg'"
    assert shlex.split(escape_path_for_shell("/in/it's here.jpg")) == ["/in/it's here.jpg"]


def test_convert_command_layout() -> None:
    command = build_convert_command(
        input_path="/in/a.jpg",
        output_path="/out/a.jpg",
        crop="900x100+900+0",
        resize_height=1648,
        quality=85,
        unsharp=UnsharpConfig(),
        grayscale=True,
    )

    assert command == (
        "convert '/in/a.jpg' -crop 900x100+900+0 -resize x1648 -colorspace GRAY "
        "-unsharp 1.5x1.0+0.7+0.02 -quality 85 '/out/a.jpg'"
    )


def test_convert_command_without_optional_steps() -> None:
    command = build_convert_command(
        input_path="/in/a.jpg",
        output_path="/out/a.jpg",
        crop=None,
        resize_height=1200,
        quality=70,
        unsharp=UnsharpConfig(amount=0),
        grayscale=False,
    )

    assert command == "convert '/in/a.jpg' -resize x1200 -quality 70 '/out/a.jpg'"


def test_split_widths_rounds_left_half_up() -> None:
    assert split_widths(1800) == (900, 900)
    assert split_widths(1801) == (901, 900)


def test_narrow_page_produces_single_command() -> None:
    builder = CommandBuilder(ProcessingParameters(width_threshold=1000))
    image = ImageRef(path=Path("/in/ch1/001.jpg"))

    commands = builder.build_commands(image, ImageDimensions(800, 1200), Path("/out/ch1"), PathCollisionManager())

    assert len(commands) == 1
    assert shlex.split(commands[0])[-1] == "/out/ch1/001.jpg"
    assert "-crop" not in commands[0]


def test_wide_page_is_split_right_half_first() -> None:
    builder = CommandBuilder(ProcessingParameters(width_threshold=1000))
    image = ImageRef(path=Path("/in/ch1/001.jpg"))

    commands = builder.build_commands(image, ImageDimensions(1800, 100), Path("/out/ch1"), PathCollisionManager())

    right, left = (shlex.split(command) for command in commands)
    assert right[right.index("-crop") + 1] == "900x100+900+0"
    assert right[-1] == "/out/ch1/001-1.jpg"
    assert left[left.index("-crop") + 1] == "900x100+0+0"
    assert left[-1] == "/out/ch1/001-2.jpg"


def test_global_output_is_routed_into_mirrored_subdirectory() -> None:
    builder = CommandBuilder(ProcessingParameters(width_threshold=1000))
    image = ImageRef(path=Path("/in/ch2/010.png"))

    commands = builder.build_commands(image, ImageDimensions(500, 700), Path("/out"), PathCollisionManager())

    assert shlex.split(commands[0])[-1] == "/out/ch2/010.jpg"


def test_duplicate_base_names_keep_extension() -> None:
    images = [
        ImageRef(path=Path("/in/ch1/page.jpg")),
        ImageRef(path=Path("/in/ch1/page.png")),
        ImageRef(path=Path("/in/ch1/other.jpg")),
    ]
    duplicates = find_duplicate_base_names(images)
    builder = CommandBuilder(ProcessingParameters(width_threshold=1000))
    manager = PathCollisionManager()

    outputs = [
        shlex.split(builder.build_commands(image, ImageDimensions(500, 700), Path("/out/ch1"), manager, duplicates)[0])[-1]
        for image in images
    ]

    assert duplicates == {"page"}
    assert outputs == ["/out/ch1/page_jpg.jpg", "/out/ch1/page_png.jpg", "/out/ch1/other.jpg"]


def test_collision_manager_appends_counter_case_insensitively() -> None:
    manager = PathCollisionManager()

    assert manager.reserve("/out/a", ".jpg") == "/out/a.jpg"
    assert manager.reserve("/out/A", ".jpg") == "/out/A-1.jpg"
    assert manager.reserve("/out/a", ".jpg") == "/out/a-2.jpg"
    assert len(manager) == 3

    manager.reset()
    assert manager.reserve("/out/a", ".jpg") == "/out/a.jpg"


def test_collision_manager_is_unique_across_threads() -> None:
    manager = PathCollisionManager()
    reserved: list[str] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(50):
            path = manager.reserve("/out/same", ".jpg")
            with lock:
                reserved.append(path)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(reserved) == 400
    assert len({path.lower() for path in reserved}) == 400


def test_create_output_directories_mirrors_subdirectories(tmp_path: Path) -> None:
    results = [
        DirectoryScanResult(directory=Path("/in/ch1"), images=(), category=DirectoryCategory.GLOBAL_BATCH),
        DirectoryScanResult(directory=Path("/in/ch2"), images=(), category=DirectoryCategory.ISOLATED),
    ]

    created = create_output_directories(results, tmp_path / "out")

    assert created == [tmp_path / "out" / "ch1", tmp_path / "out" / "ch2"]
    assert all(path.is_dir() for path in created)
