"""Serial executor and topics for plain threads."""

from __future__ import annotations

import queue
import threading
import time
import weakref
from concurrent.futures import Future
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from loguru import logger

from serial_pubsub.core.config import Priority, TopicConfig
from serial_pubsub.core.errors import GroupFailure, PublishError
from serial_pubsub.core.executor import ExecutorStatistics
from serial_pubsub.core.topic import partition


T = TypeVar("T")
SyncSubscriber = Callable[[T], None]

_SHUTDOWN = object()


class ThreadSerialExecutor:
    """Runs submitted callables one at a time on a dedicated worker thread.

    ``queue.Queue`` provides the ordering: concurrent ``submit()`` calls
    from any number of threads are appended atomically and executed in
    that order.
    """

    def __init__(self, name: str = "thread-executor") -> None:
        self.name = name
        self._queue: queue.Queue[Any] = queue.Queue()
        self._lock = threading.Lock()
        self._shutdown = False
        self._sequence = 0
        self._statistics = ExecutorStatistics()
        # Worker holds only a weak reference; the finalizer stops it
        # once the executor is collected
        self._thread = threading.Thread(
            target=_process_tasks,
            args=(self._queue, weakref.ref(self)),
            name=name,
            daemon=True,
        )
        self._finalizer = weakref.finalize(self, self._queue.put, _SHUTDOWN)
        self._thread.start()
        logger.debug("{}: worker thread started", self.name)

    @property
    def statistics(self) -> ExecutorStatistics:
        """Return current executor statistics."""
        return self._statistics

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._shutdown

    def in_worker(self) -> bool:
        """Check if the caller is running on the worker thread."""
        return threading.current_thread() is self._thread

    def submit(self, task: Callable[[], Any]) -> Future[Any]:
        """Append a task to the queue and return its completion future."""
        future: Future[Any] = Future()
        with self._lock:
            if self._shutdown:
                raise RuntimeError(f"{self.name} has been shut down")
            self._sequence += 1
            self._statistics.tasks_submitted += 1
            self._queue.put((self._sequence, task, future))
        return future

    def join(self) -> None:
        """Block until every task queued so far has finished."""
        self._queue.join()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks; queued tasks still run."""
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            self._finalizer.detach()
            self._queue.put(_SHUTDOWN)
        if wait and not self.in_worker():
            self._thread.join()
        logger.debug("{}: shut down", self.name)

    def _execute(self, sequence: int, task: Callable[[], Any], future: Future[Any]) -> None:
        if not future.set_running_or_notify_cancel():
            self._statistics.tasks_skipped += 1
            return
        try:
            result = task()
        except Exception as exc:
            self._statistics.tasks_failed += 1
            logger.warning("{}: task #{} failed: {!r}", self.name, sequence, exc)
            future.set_exception(exc)
        else:
            self._statistics.tasks_completed += 1
            future.set_result(result)
        finally:
            self._statistics.last_task_time = time.time()

    def create_topic(
        self,
        priority: Union[Priority, str],
        name: Optional[str] = None,
        **options: Any,
    ) -> ThreadTopic[Any]:
        """Create a thread topic bound to this executor."""
        config = TopicConfig(priority=priority, **options)
        return ThreadTopic(self, config, name=name or f"{config.priority.value}-topic")

    def __enter__(self) -> ThreadSerialExecutor:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown(wait=True)


class ThreadTopic(Generic[T]):
    """Topic for synchronous subscribers on a ThreadSerialExecutor.

    Same delivery rules as Topic. The next group of a batched publish is
    submitted from the completion callback of the previous one, so
    ``publish()`` never blocks and is safe to call from a subscriber.
    """

    def __init__(
        self,
        executor: ThreadSerialExecutor,
        config: Optional[TopicConfig] = None,
        name: str = "topic",
    ) -> None:
        self.name = name
        self.config = config or TopicConfig()
        self._executor = executor
        self._subscribers: list[SyncSubscriber[T]] = []
        self._lock = threading.Lock()

    @property
    def priority(self) -> Priority:
        return self.config.priority

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, fn: SyncSubscriber[T]) -> SyncSubscriber[T]:
        with self._lock:
            self._subscribers.append(fn)
        return fn

    def publish(self, value: T) -> Future[None]:
        """Deliver ``value`` to every current subscriber.

        Call ``result()`` on the returned future to wait for delivery.
        Do not wait on it from inside a subscriber running on the same
        executor.
        """
        with self._lock:
            snapshot = tuple(self._subscribers)
        groups = partition(snapshot, self.config.priority, self.config.batch_size)

        outcome: Future[None] = Future()
        if not groups:
            outcome.set_result(None)
            return outcome

        failures: list[GroupFailure] = []

        def submit_group(index: int) -> None:
            group = groups[index]
            future = self._executor.submit(lambda: self._run_group(group, value))
            future.add_done_callback(lambda f: settled(index, f))

        def settled(index: int, future: Future[Any]) -> None:
            if future.cancelled():
                outcome.cancel()
                return
            exc = future.exception()
            if exc is not None:
                failures.append(GroupFailure(index=index, size=len(groups[index]), error=exc))
            stop = exc is not None and self.config.abort_on_failure
            if index + 1 < len(groups) and not stop:
                try:
                    submit_group(index + 1)
                    return
                except RuntimeError as submit_exc:
                    outcome.set_exception(submit_exc)
                    return
            if failures:
                error = PublishError(self.name, failures)
                error.__cause__ = failures[0].error
                outcome.set_exception(error)
            else:
                outcome.set_result(None)

        submit_group(0)
        return outcome

    @staticmethod
    def _run_group(group: tuple[SyncSubscriber[T], ...], value: T) -> None:
        for fn in group:
            fn(value)


def _process_tasks(
    tasks: queue.Queue[Any],
    executor_ref: weakref.ReferenceType[ThreadSerialExecutor],
) -> None:
    """Worker loop; holds the executor strongly only while a task runs."""
    while True:
        item = tasks.get()
        try:
            if item is _SHUTDOWN:
                return
            executor = executor_ref()
            if executor is None:
                item[2].cancel()
                continue
            executor._execute(*item)
        finally:
            executor = None
            item = None
            tasks.task_done()
