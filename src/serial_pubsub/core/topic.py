"""Topics: subscriber lists delivered through a serial executor."""

from __future__ import annotations

import asyncio
import inspect
import threading
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from loguru import logger

from serial_pubsub.core.config import BATCH_SIZE, Priority, TopicConfig
from serial_pubsub.core.errors import GroupFailure, PublishError
from serial_pubsub.core.executor import SerialExecutor


T = TypeVar("T")
S = TypeVar("S")
Subscriber = Callable[[T], Union[Awaitable[None], None]]


def partition(
    subscribers: Sequence[S],
    priority: Priority,
    batch_size: int = BATCH_SIZE,
) -> list[tuple[S, ...]]:
    """Split a subscriber snapshot into the groups submitted as jobs.

    IMMEDIATE yields one group holding everything, BATCHED yields
    consecutive groups of at most ``batch_size``. An empty snapshot
    yields no groups.
    """
    if not subscribers:
        return []
    if priority is Priority.IMMEDIATE:
        return [tuple(subscribers)]
    return [
        tuple(subscribers[i:i + batch_size])
        for i in range(0, len(subscribers), batch_size)
    ]


class Topic(Generic[T]):
    """A channel whose subscribers all run on a shared serial executor.

    Subscribers are kept in registration order and never deduplicated.
    ``publish()`` snapshots them, partitions the snapshot according to
    the topic's priority and submits one job per group. A group is only
    submitted after the previous group of the same publish has settled,
    so other work queued in the meantime runs between groups.
    """

    def __init__(
        self,
        executor: SerialExecutor,
        config: Optional[TopicConfig] = None,
        name: str = "topic",
    ) -> None:
        self.name = name
        self.config = config or TopicConfig()
        self._executor = executor
        self._subscribers: list[Subscriber[T]] = []
        self._lock = threading.Lock()
        self._deliveries: set[asyncio.Task[None]] = set()

    @property
    def priority(self) -> Priority:
        return self.config.priority

    @property
    def executor(self) -> SerialExecutor:
        return self._executor

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, fn: Subscriber[T]) -> Subscriber[T]:
        """Register a subscriber. Returns it so this works as a decorator."""
        with self._lock:
            self._subscribers.append(fn)
        return fn

    def publish(self, value: T) -> asyncio.Future[None]:
        """Deliver ``value`` to every current subscriber.

        The snapshot and the first job submission happen before this
        returns. The returned future resolves once the last group has
        run, or raises PublishError if any group failed.
        """
        with self._lock:
            snapshot = tuple(self._subscribers)
        groups = partition(snapshot, self.config.priority, self.config.batch_size)

        if not groups:
            done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            done.set_result(None)
            return done

        logger.debug(
            "{}: publishing to {} subscriber(s) in {} group(s)",
            self.name, len(snapshot), len(groups),
        )
        first = self._executor.submit(self._job(groups[0], value))
        delivery = asyncio.ensure_future(self._deliver(value, groups, first))
        self._deliveries.add(delivery)
        delivery.add_done_callback(self._delivery_done)
        return delivery

    def _job(self, group: tuple[Subscriber[T], ...], value: T) -> Callable[[], Awaitable[None]]:
        async def run() -> None:
            for fn in group:
                result = fn(value)
                if inspect.isawaitable(result):
                    await result
        return run

    async def _deliver(
        self,
        value: T,
        groups: list[tuple[Subscriber[T], ...]],
        first: asyncio.Future[Any],
    ) -> None:
        failures: list[GroupFailure] = []
        pending = first
        for index, group in enumerate(groups):
            if index:
                logger.debug("{}: submitting group {}/{}", self.name, index + 1, len(groups))
                pending = self._executor.submit(self._job(group, value))
            try:
                await pending
            except Exception as exc:
                failures.append(GroupFailure(index=index, size=len(group), error=exc))
                if self.config.abort_on_failure:
                    logger.debug("{}: aborting after failed group {}", self.name, index)
                    break

        if failures:
            raise PublishError(self.name, failures) from failures[0].error

    def _delivery_done(self, delivery: asyncio.Task[None]) -> None:
        self._deliveries.discard(delivery)
        if delivery.cancelled():
            return
        # Marks the exception retrieved; awaiting callers still see it
        exc = delivery.exception()
        if exc is not None:
            logger.debug("{}: {}", self.name, exc)

    def __repr__(self) -> str:
        return (
            f"Topic(name={self.name!r}, priority={self.priority.value}, "
            f"subscribers={self.subscriber_count})"
        )


class TopicFactory:
    """Creates topics bound to one executor."""

    def __init__(self, executor: SerialExecutor) -> None:
        self.executor = executor

    def create(
        self,
        priority: Union[Priority, str] = Priority.IMMEDIATE,
        name: Optional[str] = None,
        batch_size: int = BATCH_SIZE,
        abort_on_failure: bool = False,
    ) -> Topic[Any]:
        config = TopicConfig(
            priority=priority,
            batch_size=batch_size,
            abort_on_failure=abort_on_failure,
        )
        return Topic(self.executor, config, name=name or f"{config.priority.value}-topic")
