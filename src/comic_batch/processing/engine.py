"""执行引擎：以有限并发运行批处理任务并汇总结果。"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from comic_batch.core.cancellation import CancellationToken
from comic_batch.core.models import BatchResult, BatchTask
from comic_batch.processing.scheduler import PriorityTaskQueue

LOGGER = logging.getLogger(__name__)

TaskRunner = Callable[[BatchTask, CancellationToken], BatchResult]
CompletionCallback = Callable[[BatchTask, BatchResult], None]


@dataclass(slots=True)
class EngineResult:
    processed: int = 0
    failed: list[str] = field(default_factory=list)
    global_processed: int = 0
    dispatched: int = 0


class ResultAggregator:
    """所有计数器的唯一修改入口。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._result = EngineResult()

    def mark_dispatched(self) -> None:
        with self._lock:
            self._result.dispatched += 1

    def add(self, result: BatchResult) -> None:
        with self._lock:
            self._result.processed += result.processed
            self._result.failed.extend(result.failed)
            if result.is_global:
                self._result.global_processed += result.processed

    def snapshot(self) -> EngineResult:
        with self._lock:
            return EngineResult(
                processed=self._result.processed,
                failed=list(self._result.failed),
                global_processed=self._result.global_processed,
                dispatched=self._result.dispatched,
            )


class ExecutionEngine:
    """用计数信号量限制同时执行的任务数。

    每次派发前先获取槽位再检查取消；已派发的任务无论成功与否都会释放槽位。
    """

    def __init__(
        self,
        runner: TaskRunner,
        max_concurrency: int,
        token: Optional[CancellationToken] = None,
        on_task_completed: Optional[CompletionCallback] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency 必须 >= 1")
        self.runner = runner
        self.max_concurrency = max_concurrency
        self.token = token or CancellationToken()
        self.on_task_completed = on_task_completed

    def run(self, tasks: Sequence[BatchTask]) -> EngineResult:
        queue = PriorityTaskQueue(tasks)
        slots = threading.BoundedSemaphore(self.max_concurrency)
        aggregator = ResultAggregator()

        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="batch") as pool:
            while True:
                slots.acquire()
                if self.token.is_cancelled():
                    slots.release()
                    LOGGER.info("已取消，停止派发剩余 %d 个任务", len(queue))
                    break

                task = queue.next_task()
                if task is None:
                    slots.release()
                    break

                aggregator.mark_dispatched()
                pool.submit(self._run_task, task, queue, slots, aggregator)

        result = aggregator.snapshot()
        LOGGER.debug(
            "执行结束: 派发 %d 个任务, 成功 %d 张, 失败 %d 张",
            result.dispatched,
            result.processed,
            len(result.failed),
        )
        return result

    def _run_task(
        self,
        task: BatchTask,
        queue: PriorityTaskQueue,
        slots: threading.BoundedSemaphore,
        aggregator: ResultAggregator,
    ) -> None:
        try:
            try:
                result = self.runner(task, self.token)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("任务执行异常：%s", exc)
                result = BatchResult(
                    processed=0,
                    failed=[str(image.path) for image in task.images],
                    is_global=task.is_global,
                )
            aggregator.add(result)
            if self.on_task_completed is not None:
                try:
                    self.on_task_completed(task, result)
                except Exception:  # noqa: BLE001
                    LOGGER.exception("进度回调执行失败")
        finally:
            queue.task_completed(task)
            slots.release()
