"""Serial task executor for asyncio."""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING, Union

from loguru import logger

from serial_pubsub.core.errors import TaskCancelledError

if TYPE_CHECKING:
    from serial_pubsub.core.config import Priority
    from serial_pubsub.core.topic import Topic


TaskFn = Callable[[], Union[Awaitable[Any], Any]]
QueueItem = tuple[int, TaskFn, asyncio.Future[Any]]


@dataclass
class ExecutorStatistics:
    """Statistics about executor activity."""

    tasks_submitted: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_skipped: int = 0
    start_time: float = field(default_factory=time.time)
    last_task_time: Optional[float] = None

    @property
    def pending(self) -> int:
        """Tasks submitted but not yet finished."""
        return (
            self.tasks_submitted
            - self.tasks_completed
            - self.tasks_failed
            - self.tasks_skipped
        )

    @property
    def elapsed_time(self) -> float:
        """Time since the executor started."""
        return time.time() - self.start_time


class SerialExecutor:
    """Runs submitted tasks one at a time, in submission order.

    A single worker task drains a FIFO queue, so no two task bodies ever
    overlap even when the tasks themselves await. A failing task fails
    only its own future; the worker moves on to the next entry.

    The worker binds to the running event loop on ``start()`` or on the
    first ``submit()``. Other threads must use ``submit_threadsafe()``.
    """

    def __init__(self, name: str = "executor") -> None:
        self.name = name
        self._queue: Optional[asyncio.Queue[QueueItem]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._sequence = 0
        self._statistics = ExecutorStatistics()

    @property
    def statistics(self) -> ExecutorStatistics:
        """Return current executor statistics."""
        return self._statistics

    @property
    def is_running(self) -> bool:
        """Check if the worker is alive."""
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Number of queued or running tasks."""
        return self._statistics.pending

    def submit(self, task: TaskFn) -> asyncio.Future[Any]:
        """Append a task to the queue and return its completion future.

        Must be called from the thread running the executor's loop. The
        append happens before this method returns, so two sequential
        calls always execute in call order.
        """
        loop = asyncio.get_running_loop()
        if not self.is_running:
            self._start(loop)
        elif loop is not self._loop:
            raise RuntimeError(
                f"{self.name} is bound to another event loop; use submit_threadsafe()"
            )
        queue = self._queue
        if queue is None:
            raise RuntimeError(f"{self.name} is not running")

        future: asyncio.Future[Any] = loop.create_future()
        self._sequence += 1
        self._statistics.tasks_submitted += 1
        queue.put_nowait((self._sequence, task, future))
        logger.debug("{}: queued task #{}", self.name, self._sequence)
        return future

    def submit_threadsafe(self, task: TaskFn) -> concurrent.futures.Future[Any]:
        """Submit a task from any thread.

        Concurrent callers are ordered by the loop's callback queue.
        """
        if self._loop is None or not self.is_running:
            raise RuntimeError(f"{self.name} is not running")

        async def relay() -> Any:
            return await self.submit(task)

        return asyncio.run_coroutine_threadsafe(relay(), self._loop)

    def create_topic(
        self,
        priority: Union[Priority, str],
        name: Optional[str] = None,
        **options: Any,
    ) -> Topic[Any]:
        """Create a topic bound to this executor."""
        from serial_pubsub.core.topic import TopicFactory

        return TopicFactory(self).create(priority, name=name, **options)

    async def join(self) -> None:
        """Wait until every task queued so far has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def _execute(
        self,
        sequence: int,
        task: TaskFn,
        future: asyncio.Future[Any],
    ) -> None:
        """Run one task and settle its future."""
        if future.done():
            # Cancelled by its submitter before it got to run
            self._statistics.tasks_skipped += 1
            logger.debug("{}: skipped cancelled task #{}", self.name, sequence)
            return

        try:
            result = task()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError as exc:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                self._statistics.tasks_skipped += 1
                if not future.done():
                    future.cancel()
                raise
            # The task cancelled itself; the worker keeps going
            self._statistics.tasks_failed += 1
            logger.warning("{}: task #{} cancelled itself", self.name, sequence)
            if not future.done():
                error = TaskCancelledError(f"task #{sequence} cancelled itself")
                error.__cause__ = exc
                future.set_exception(error)
        except Exception as exc:
            self._statistics.tasks_failed += 1
            logger.warning("{}: task #{} failed: {!r}", self.name, sequence, exc)
            if not future.done():
                future.set_exception(exc)
        else:
            self._statistics.tasks_completed += 1
            if not future.done():
                future.set_result(result)
        finally:
            self._statistics.last_task_time = time.time()

    async def _process_tasks(self, queue: asyncio.Queue[QueueItem]) -> None:
        """Drain the queue, one task at a time."""
        while True:
            sequence, task, future = await queue.get()
            try:
                await self._execute(sequence, task, future)
            finally:
                queue.task_done()

    def _start(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._queue = asyncio.Queue()
        self._worker = loop.create_task(self._process_tasks(self._queue))
        logger.debug("{}: worker started", self.name)

    async def start(self) -> None:
        """Start the worker loop."""
        if self.is_running:
            return
        self._statistics = ExecutorStatistics()
        self._start(asyncio.get_running_loop())

    async def stop(self) -> None:
        """Stop the worker and cancel tasks that have not run yet."""
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._queue is not None:
            while not self._queue.empty():
                try:
                    _, _, future = self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                self._statistics.tasks_skipped += 1
                future.cancel()
                self._queue.task_done()
        logger.debug("{}: worker stopped", self.name)

    async def __aenter__(self) -> SerialExecutor:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()
