"""Command-line interface for Serial PubSub."""

import asyncio
import sys
import time
from typing import Callable

import click
from loguru import logger
from rich.console import Console

from serial_pubsub.core.config import Priority
from serial_pubsub.core.errors import PublishError
from serial_pubsub.core.executor import ExecutorStatistics, SerialExecutor
from serial_pubsub.core.threaded import ThreadSerialExecutor
from serial_pubsub.core.topic import TopicFactory
from serial_pubsub.visualization.console import ConsoleVisualizer


console = Console()


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Log executor activity to stderr")
def main(verbose: bool) -> None:
    """Serial PubSub - serialized publish/subscribe."""
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.enable("serial_pubsub")


@main.command()
@click.option("--high", default=10, help="Subscribers on the immediate topic")
@click.option("--low", default=100, help="Subscribers on the batched topic")
@click.option("--tick", "-t", default=1.0, help="Seconds per tick; each subscriber takes one tick")
@click.option(
    "--at",
    "marks",
    multiple=True,
    type=int,
    default=(10, 20, 50),
    show_default=True,
    help="Tick marks at which the immediate topic is published",
)
@click.option("--threads", is_flag=True, help="Use the thread executor instead of asyncio")
def demo(high: int, low: int, tick: float, marks: tuple[int, ...], threads: bool) -> None:
    """Publish a batched topic at t=0 and an immediate topic at each mark."""
    if tick <= 0:
        raise click.BadParameter("must be > 0", param_hint="--tick")

    visualizer = ConsoleVisualizer(console)
    runner = "threads" if threads else "asyncio"
    console.print(f"[bold]Starting demo[/bold] ({runner}, {high} immediate, {low} batched)")

    if threads:
        deliveries, statistics = _run_threaded_demo(high, low, tick, sorted(marks), visualizer)
    else:
        deliveries, statistics = asyncio.run(
            _run_demo(high, low, tick, sorted(marks), visualizer)
        )

    console.print("\n[bold]Demo Complete[/bold]")
    visualizer.print_statistics_table(statistics)
    visualizer.print_summary(statistics, deliveries)


async def _run_demo(
    high: int,
    low: int,
    tick: float,
    marks: list[int],
    visualizer: ConsoleVisualizer,
) -> tuple[int, ExecutorStatistics]:
    """Run the demo timeline on the asyncio executor."""
    executor = SerialExecutor("demo")
    factory = TopicFactory(executor)
    event1 = factory.create(Priority.IMMEDIATE, name="event1")
    event2 = factory.create(Priority.BATCHED, name="event2")

    start = time.monotonic()
    deliveries = 0

    def make_subscriber(label: str) -> Callable:
        async def deliver(event: str) -> None:
            nonlocal deliveries
            deliveries += 1
            visualizer.print_delivery(int((time.monotonic() - start) / tick), event, label)
            await asyncio.sleep(tick)
        return deliver

    for i in range(1, high + 1):
        event1.subscribe(make_subscriber(f"subscriber{i}"))
    for i in range(1, low + 1):
        event2.subscribe(make_subscriber(f"subscriber{i}"))

    visualizer.print_topics([event1, event2])

    async with executor:
        publishes = [event2.publish("event2")]
        for mark in marks:
            await asyncio.sleep(max(0.0, start + mark * tick - time.monotonic()))
            publishes.append(event1.publish(f"event1 (t={mark})"))

        results = await asyncio.gather(*publishes, return_exceptions=True)
        for result in results:
            if isinstance(result, PublishError):
                visualizer.print_failure(result.topic, result)

    return deliveries, executor.statistics


def _run_threaded_demo(
    high: int,
    low: int,
    tick: float,
    marks: list[int],
    visualizer: ConsoleVisualizer,
) -> tuple[int, ExecutorStatistics]:
    """Run the demo timeline on the thread executor."""
    start = time.monotonic()
    deliveries = 0

    def make_subscriber(label: str) -> Callable:
        def deliver(event: str) -> None:
            nonlocal deliveries
            deliveries += 1
            visualizer.print_delivery(int((time.monotonic() - start) / tick), event, label)
            time.sleep(tick)
        return deliver

    with ThreadSerialExecutor("demo") as executor:
        event1 = executor.create_topic(Priority.IMMEDIATE, name="event1")
        event2 = executor.create_topic(Priority.BATCHED, name="event2")
        for i in range(1, high + 1):
            event1.subscribe(make_subscriber(f"subscriber{i}"))
        for i in range(1, low + 1):
            event2.subscribe(make_subscriber(f"subscriber{i}"))

        visualizer.print_topics([event1, event2])

        publishes = [event2.publish("event2")]
        for mark in marks:
            time.sleep(max(0.0, start + mark * tick - time.monotonic()))
            publishes.append(event1.publish(f"event1 (t={mark})"))

        for publish in publishes:
            try:
                publish.result()
            except PublishError as e:
                visualizer.print_failure(e.topic, e)

    return deliveries, executor.statistics


if __name__ == "__main__":
    main()
