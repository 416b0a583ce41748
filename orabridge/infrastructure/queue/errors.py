"""
CRC — infrastructure/queue/errors.py

Name
- Typed queue errors

Responsibilities
- Explicit exceptions for the queue adapter so callers map them without
  catching generic Exception.
"""

from __future__ import annotations


class QueueError(Exception):
    """Base error of the queue subsystem."""

    code: str = "QUEUE_ERROR"


class QueueConfigurationError(QueueError):
    """Queue is misconfigured (bad job path, missing Redis URL...)."""

    code = "QUEUE_CONFIGURATION_ERROR"


class QueueEnqueueError(QueueError):
    """Enqueueing a job failed."""

    code = "QUEUE_ENQUEUE_ERROR"

    def __init__(self, message: str, *, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error
