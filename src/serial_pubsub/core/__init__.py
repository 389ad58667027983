"""Core components: serial executors and topics."""

from serial_pubsub.core.config import BATCH_SIZE, Priority, TopicConfig
from serial_pubsub.core.errors import GroupFailure, PublishError, TaskCancelledError
from serial_pubsub.core.executor import ExecutorStatistics, SerialExecutor
from serial_pubsub.core.topic import Topic, TopicFactory, partition
from serial_pubsub.core.threaded import ThreadSerialExecutor, ThreadTopic

__all__ = [
    "BATCH_SIZE",
    "Priority",
    "TopicConfig",
    "GroupFailure",
    "PublishError",
    "TaskCancelledError",
    "ExecutorStatistics",
    "SerialExecutor",
    "Topic",
    "TopicFactory",
    "partition",
    "ThreadSerialExecutor",
    "ThreadTopic",
]
