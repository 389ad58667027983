"""Topic configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


BATCH_SIZE = 20


class Priority(Enum):
    """How a publish is chunked into executor jobs.

    This is not a scheduling priority: the executor is strictly FIFO.
    IMMEDIATE delivers to every subscriber in a single job, BATCHED
    submits one job per group of ``batch_size`` subscribers.
    """

    IMMEDIATE = "immediate"
    BATCHED = "batched"

    @classmethod
    def coerce(cls, value: Union[Priority, str]) -> Priority:
        """Accept a Priority, its value, or the legacy high/low names."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        aliases = {"high": cls.IMMEDIATE, "low": cls.BATCHED}
        if name in aliases:
            return aliases[name]
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown priority: {value!r}") from None


@dataclass(frozen=True)
class TopicConfig:
    """Configuration fixed at topic creation."""

    priority: Priority = Priority.IMMEDIATE
    batch_size: int = BATCH_SIZE
    abort_on_failure: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "priority", Priority.coerce(self.priority))
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
