"""Errors raised by publish operations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GroupFailure:
    """A subscriber group whose job raised."""

    index: int
    size: int
    error: BaseException


class PublishError(Exception):
    """One or more subscriber groups of a publish failed.

    Groups that did not fail were still delivered (unless the topic
    aborts on failure). The first failure is chained as ``__cause__``.
    """

    def __init__(self, topic: str, failures: list[GroupFailure]) -> None:
        self.topic = topic
        self.failures = list(failures)
        groups = ", ".join(str(f.index) for f in self.failures)
        super().__init__(
            f"publish on {topic!r} failed in {len(self.failures)} group(s): {groups}"
        )

    @property
    def errors(self) -> list[BaseException]:
        """Exceptions of the failed groups, in group order."""
        return [f.error for f in self.failures]


class TaskCancelledError(RuntimeError):
    """A task was cancelled from inside its own body.

    The executor was not stopping, so this counts as a task failure.
    The original ``CancelledError`` is chained as ``__cause__``.
    """
