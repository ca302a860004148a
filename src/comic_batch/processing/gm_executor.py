"""GraphicsMagick batch 进程的启动、命令写入与回收。

每个批次启动一个 ``gm batch`` 子进程，命令逐行写入其标准输入；
stdout/stderr 由后台线程持续读取，防止子进程因管道写满而阻塞。
状态依次为 IDLE -> STARTED -> WRITING -> DRAINING -> TERMINATED，
任一状态下收到取消都会直接终止子进程并进入 TERMINATED。
"""

from __future__ import annotations

import contextlib
import errno as errno_codes
import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO, Callable, Optional, Sequence

from comic_batch.core.cancellation import CancellationToken
from comic_batch.core.exceptions import (
    CommandEncodingError,
    PipeBrokenError,
    PipeWriteError,
    ProcessingCancelled,
    ProcessIOTimeout,
    ToolExecutionError,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_ARGS = ("batch", "-stop-on-error", "off")
WRITE_CHUNK_SIZE = 16 * 1024
MAX_WRITE_ATTEMPTS = 50
MAX_ZERO_WRITES = 5
RETRY_DELAY = 0.01
READ_CHUNK_SIZE = 64 * 1024
TERMINATE_GRACE = 5.0


class ExecutorState(Enum):
    IDLE = "idle"
    STARTED = "started"
    WRITING = "writing"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass(slots=True)
class ProcessOutput:
    exit_code: int
    stdout: bytes
    stderr: bytes

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class OutputCollector:
    """线程安全地累积子进程输出。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stdout = bytearray()
        self._stderr = bytearray()

    def append_stdout(self, data: bytes) -> None:
        with self._lock:
            self._stdout.extend(data)

    def append_stderr(self, data: bytes) -> None:
        with self._lock:
            self._stderr.extend(data)

    def snapshot(self) -> tuple[bytes, bytes]:
        with self._lock:
            return bytes(self._stdout), bytes(self._stderr)


def write_all(
    fd: int,
    data: bytes,
    token: Optional[CancellationToken] = None,
    *,
    chunk_size: int = WRITE_CHUNK_SIZE,
    max_attempts: int = MAX_WRITE_ATTEMPTS,
    retry_delay: float = RETRY_DELAY,
) -> None:
    """分块写入全部数据。

    EINTR 立即重试；EAGAIN 按固定间隔重试，超过 max_attempts 抛出 ProcessIOTimeout；
    EPIPE 立即抛出 PipeBrokenError。
    """

    view = memoryview(data)
    total = len(view)
    written = 0
    attempts = 0
    zero_writes = 0

    while written < total:
        if token is not None and token.is_cancelled():
            raise ProcessingCancelled()

        chunk = view[written : written + chunk_size]
        try:
            count = os.write(fd, chunk)
        except InterruptedError:
            LOGGER.debug("写入被信号中断，重试")
            continue
        except BlockingIOError:
            attempts += 1
            if attempts > max_attempts:
                LOGGER.debug("写入重试 %d 次后仍不可写", max_attempts)
                raise ProcessIOTimeout() from None
            time.sleep(retry_delay)
            continue
        except BrokenPipeError as exc:
            LOGGER.debug("检测到管道断开 (EPIPE)")
            raise PipeBrokenError() from exc
        except OSError as exc:
            raise PipeWriteError(exc.errno or errno_codes.EIO, exc.strerror or "") from exc

        if count > 0:
            written += count
            attempts = 0
            continue

        zero_writes += 1
        if zero_writes > MAX_ZERO_WRITES:
            raise PipeWriteError(errno_codes.EIO, "写入无进展")
        time.sleep(retry_delay)


def encode_command(command: str) -> bytes:
    """编码为一行命令。

    surrogateescape 还原 POSIX 下非 UTF-8 文件名的原始字节。
    """

    try:
        return (command + "\n").encode("utf-8", "surrogateescape")
    except UnicodeEncodeError as exc:
        raise CommandEncodingError() from exc


class CommandWriter:
    """按行向 gm 输入管道写入命令。"""

    def __init__(
        self,
        fd: int,
        token: Optional[CancellationToken] = None,
        *,
        chunk_size: int = WRITE_CHUNK_SIZE,
        max_attempts: int = MAX_WRITE_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        self._fd = fd
        self._token = token
        self._chunk_size = chunk_size
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self.commands_written = 0

    def write_command(self, command: str) -> None:
        self._write(encode_command(command))

    def write_commands(self, commands: Sequence[str]) -> None:
        """先编码全部命令再写入，编码失败时不会写出其中任何一条。"""

        encoded = [encode_command(command) for command in commands]
        for data in encoded:
            self._write(data)

    def _write(self, data: bytes) -> None:
        write_all(
            self._fd,
            data,
            self._token,
            chunk_size=self._chunk_size,
            max_attempts=self._max_attempts,
            retry_delay=self._retry_delay,
        )
        self.commands_written += 1


CommandSource = Callable[[CommandWriter], None]
StateListener = Callable[[ExecutorState], None]


class GMProcessExecutor:
    """管理单个 gm batch 子进程的完整生命周期。"""

    def __init__(
        self,
        gm_path: Path,
        batch_args: Sequence[str] = DEFAULT_BATCH_ARGS,
        *,
        chunk_size: int = WRITE_CHUNK_SIZE,
        max_write_attempts: int = MAX_WRITE_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        self.gm_path = Path(gm_path)
        self.batch_args = tuple(batch_args)
        self.chunk_size = chunk_size
        self.max_write_attempts = max_write_attempts
        self.retry_delay = retry_delay

    def execute_batch(
        self,
        command_source: CommandSource,
        token: Optional[CancellationToken] = None,
        state_listener: Optional[StateListener] = None,
    ) -> ProcessOutput:
        """启动子进程，由 command_source 写入命令，等待进程结束并返回输出。

        非零退出码抛出 ToolExecutionError；取消时抛出 ProcessingCancelled。
        """

        token = token or CancellationToken()
        notify = state_listener or (lambda state: None)

        notify(ExecutorState.IDLE)
        if token.is_cancelled():
            notify(ExecutorState.TERMINATED)
            raise ProcessingCancelled()

        args = [str(self.gm_path), *self.batch_args]
        LOGGER.debug("启动 GraphicsMagick 批处理进程: %s", " ".join(args))
        try:
            process = subprocess.Popen(
                args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            notify(ExecutorState.TERMINATED)
            raise ToolExecutionError(-1, str(exc)) from exc

        collector = OutputCollector()
        drains = [
            self._start_drain(process, process.stdout, collector.append_stdout, token, "stdout"),
            self._start_drain(process, process.stderr, collector.append_stderr, token, "stderr"),
        ]
        handle = token.on_cancel(lambda: _terminate(process))

        try:
            notify(ExecutorState.STARTED)
            if token.is_cancelled():
                raise ProcessingCancelled()

            if process.stdin is None:
                raise ToolExecutionError(-1, "无法打开 gm 输入管道")
            writer = CommandWriter(
                process.stdin.fileno(),
                token,
                chunk_size=self.chunk_size,
                max_attempts=self.max_write_attempts,
                retry_delay=self.retry_delay,
            )

            notify(ExecutorState.WRITING)
            try:
                command_source(writer)
            except (PipeBrokenError, PipeWriteError) as exc:
                if token.is_cancelled():
                    raise ProcessingCancelled() from exc
                raise

            # 关闭输入管道即通知 gm 批次结束
            _close_stream(process.stdin)
            LOGGER.debug("已写入 %d 条命令，等待进程结束", writer.commands_written)

            notify(ExecutorState.DRAINING)
            exit_code = process.wait()
            for thread in drains:
                thread.join()

            stdout, stderr = collector.snapshot()
            output = ProcessOutput(exit_code=exit_code, stdout=stdout, stderr=stderr)
            LOGGER.debug("GraphicsMagick 进程退出码: %d", exit_code)
            if exit_code == 0:
                # 进程已正常退出，输出已落盘，之后到达的取消不影响本批结果
                return output
            if token.is_cancelled():
                raise ProcessingCancelled()
            error = ToolExecutionError(exit_code, output.stderr_text or None)
            LOGGER.error("%s", error)
            raise error
        finally:
            token.remove_callback(handle)
            _close_stream(process.stdin)
            if process.poll() is None:
                _terminate(process)
                try:
                    process.wait(timeout=TERMINATE_GRACE)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait()
            for thread in drains:
                thread.join(timeout=TERMINATE_GRACE)
            _close_stream(process.stdout)
            _close_stream(process.stderr)
            notify(ExecutorState.TERMINATED)

    def _start_drain(
        self,
        process: subprocess.Popen,
        stream: Optional[IO[bytes]],
        sink: Callable[[bytes], None],
        token: CancellationToken,
        name: str,
    ) -> threading.Thread:
        def drain() -> None:
            if stream is None:
                return
            fd = stream.fileno()
            while True:
                try:
                    data = os.read(fd, READ_CHUNK_SIZE)
                except OSError:
                    break
                if not data:
                    break
                sink(data)
                if token.is_cancelled():
                    _terminate(process)

        thread = threading.Thread(target=drain, name=f"gm-{name}-{process.pid}", daemon=True)
        thread.start()
        return thread


def _terminate(process: subprocess.Popen) -> None:
    if process.poll() is None:
        LOGGER.debug("终止 GraphicsMagick 进程 %d", process.pid)
        with contextlib.suppress(OSError):
            process.terminate()


def _close_stream(stream: Optional[IO[bytes]]) -> None:
    if stream is None or stream.closed:
        return
    with contextlib.suppress(OSError):
        stream.close()
