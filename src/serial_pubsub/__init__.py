"""Serial PubSub - publish/subscribe with every subscriber call serialized."""

__version__ = "0.1.0"

from loguru import logger

from serial_pubsub.core.config import BATCH_SIZE, Priority, TopicConfig
from serial_pubsub.core.errors import GroupFailure, PublishError, TaskCancelledError
from serial_pubsub.core.executor import ExecutorStatistics, SerialExecutor
from serial_pubsub.core.topic import Topic, TopicFactory, partition
from serial_pubsub.core.threaded import ThreadSerialExecutor, ThreadTopic

# Library logging stays silent until an application enables it
logger.disable("serial_pubsub")

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
