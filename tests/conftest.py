"""测试共用的伪 GraphicsMagick 可执行文件。"""

from __future__ import annotations

import stat
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from PIL import Image

FAKE_GM_SOURCE = '''
import os
import shlex
import sys
import time

log_path = os.environ.get("FAKE_GM_LOG")
mode = os.environ.get("FAKE_GM_MODE", "ok")


def log(line):
    if log_path:
        with open(log_path, "a", encoding="utf-8", errors="surrogateescape") as handle:
            handle.write(line + "\\n")


def emit(stream, text):
    stream.buffer.write(text.encode("utf-8", "surrogateescape"))
    stream.buffer.flush()


args = sys.argv[1:]
if args[:1] == ["--version"]:
    if mode == "broken-version":
        sys.stderr.write("gm: cannot start\\n")
        sys.exit(1)
    print("GraphicsMagick 1.3.42 fake")
    sys.exit(0)

if args[:1] != ["batch"]:
    sys.exit(2)

log("batch")
for raw in sys.stdin.buffer:
    line = raw.decode("utf-8", "surrogateescape").strip()
    if not line:
        continue
    log("cmd " + line)
    if mode == "noisy":
        emit(sys.stdout, "o" * 200000 + "\\n")
        emit(sys.stderr, "e" * 200000 + "\\n")
    if mode in ("fail", "hang"):
        continue
    destination = shlex.split(line)[-1]
    with open(os.fsencode(destination), "wb") as handle:
        handle.write(raw)
    emit(sys.stdout, "wrote " + destination + "\\n")

if mode == "hang":
    time.sleep(60)
if mode == "fail":
    emit(sys.stderr, "convert: simulated failure\\n")
    sys.exit(3)
sys.exit(0)
'''


@dataclass
class FakeGM:
    path: Path
    script: Path
    log: Path

    def lines(self) -> list[str]:
        if not self.log.exists():
            return []
        return self.log.read_text(encoding="utf-8", errors="surrogateescape").splitlines()

    def invocations(self) -> int:
        return sum(1 for line in self.lines() if line == "batch")

    def commands(self) -> list[str]:
        return [line[4:] for line in self.lines() if line.startswith("cmd ")]


def write_fake_gm(directory: Path) -> tuple[Path, Path]:
    """写出伪 gm：返回 (带 shebang 的可执行文件, 纯脚本)。"""

    directory.mkdir(parents=True, exist_ok=True)
    script = directory / "fake_gm.py"
    script.write_text(FAKE_GM_SOURCE, encoding="utf-8")

    executable = directory / "gm"
    executable.write_text(f"#!{sys.executable}\n{FAKE_GM_SOURCE}", encoding="utf-8")
    executable.chmod(executable.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return executable, script


@pytest.fixture
def fake_gm(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeGM:
    executable, script = write_fake_gm(tmp_path / "bin")
    log = tmp_path / "gm.log"
    monkeypatch.setenv("FAKE_GM_LOG", str(log))
    monkeypatch.setenv("FAKE_GM_MODE", "ok")
    return FakeGM(path=executable, script=script, log=log)


def make_image(path: Path, size: tuple[int, int], color: str = "white") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path)
    return path
