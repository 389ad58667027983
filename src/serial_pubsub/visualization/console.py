"""Console-based visualization using Rich."""

from __future__ import annotations

from typing import Any, Iterable, Optional, Union

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from serial_pubsub.core.config import Priority
from serial_pubsub.core.executor import ExecutorStatistics
from serial_pubsub.core.threaded import ThreadTopic
from serial_pubsub.core.topic import Topic


class ConsoleVisualizer:
    """Renders deliveries and executor statistics to the console."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def print_delivery(self, elapsed: int, event: str, subscriber: str) -> None:
        """Print one subscriber invocation."""
        self.console.print(
            f"[dim]{elapsed:>3}s:[/dim]  "
            f"[cyan]{event:<16}[/cyan] "
            f"[green]{subscriber}[/green]"
        )

    def print_failure(self, topic: str, error: BaseException) -> None:
        self.console.print(f"[bold red]FAILED[/bold red] [cyan]{topic}[/cyan] {error}")

    def print_topics(self, topics: Iterable[Union[Topic[Any], ThreadTopic[Any]]]) -> None:
        """Print a table of topics and how their publishes are chunked."""
        table = Table(title="Topics")

        table.add_column("Name", style="cyan")
        table.add_column("Priority")
        table.add_column("Subscribers", justify="right")
        table.add_column("Jobs/publish", justify="right")

        for topic in topics:
            count = topic.subscriber_count
            if topic.priority is Priority.IMMEDIATE:
                jobs = min(count, 1)
            else:
                jobs = -(-count // topic.config.batch_size)
            table.add_row(topic.name, topic.priority.value, str(count), str(jobs))

        self.console.print(table)

    def print_statistics_table(self, statistics: ExecutorStatistics) -> None:
        """Print executor statistics."""
        table = Table(title="Executor Statistics")

        table.add_column("Submitted", justify="right")
        table.add_column("Completed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Pending", justify="right")

        table.add_row(
            str(statistics.tasks_submitted),
            str(statistics.tasks_completed),
            str(statistics.tasks_failed),
            str(statistics.tasks_skipped),
            str(statistics.pending),
        )

        self.console.print(table)

    def print_summary(self, statistics: ExecutorStatistics, deliveries: int) -> None:
        panel = Panel(
            f"Deliveries: {deliveries}\n"
            f"Jobs run: {statistics.tasks_completed + statistics.tasks_failed}\n"
            f"Duration: {statistics.elapsed_time:.2f}s",
            title="Demo Summary",
        )
        self.console.print(panel)
