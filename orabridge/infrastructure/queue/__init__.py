"""Queue adapter (RQ) used by the container."""

from .errors import QueueConfigurationError, QueueEnqueueError, QueueError
from .rq_queue import RQQueueConfig, RQSyncJobQueue

__all__ = [
    "QueueError",
    "QueueConfigurationError",
    "QueueEnqueueError",
    "RQQueueConfig",
    "RQSyncJobQueue",
]
