"""
===============================================================================
FILE: infrastructure/queue/rq_queue.py
===============================================================================

CRC CARD (Class)
-------------------------------------------------------------------------------
Class:
    RQSyncJobQueue (Adapter)

Responsibilities:
    - Implement the SyncJobQueue port with RQ.
    - Enqueue reconciliation batches with a retry policy and job timeout.
    - Validate configuration (queue name, importable job path) fail-fast.

Collaborators:
    - domain.services.SyncJobQueue
    - job_paths.SYNC_BATCH_JOB_PATH
    - import_utils.is_importable_dotted_path
    - errors.QueueConfigurationError / QueueEnqueueError
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from rq import Queue, Retry

from ...crosscutting.logger import logger
from .errors import QueueConfigurationError, QueueEnqueueError
from .import_utils import is_importable_dotted_path
from .job_paths import SYNC_BATCH_JOB_PATH, SYNC_QUEUE_NAME


@dataclass(frozen=True)
class RQQueueConfig:
    """RQ adapter configuration.

    retry_max_attempts:
        Automatic re-runs when the job raises (0 disables).
    job_timeout_seconds:
        Max execution time of the job in the worker.
    result_ttl_seconds:
        How long the job result stays in Redis.
    """

    queue_name: str = SYNC_QUEUE_NAME
    retry_max_attempts: int = 3
    job_timeout_seconds: int = 900
    result_ttl_seconds: int = 3600


class RQSyncJobQueue:
    """RQ adapter for background reconciliation batches."""

    def __init__(self, *, redis: Any, config: RQQueueConfig) -> None:
        self._config = _validate_config(config)

        if not is_importable_dotted_path(SYNC_BATCH_JOB_PATH):
            raise QueueConfigurationError(
                f"RQ job path is not importable: {SYNC_BATCH_JOB_PATH}"
            )

        self._queue = Queue(name=self._config.queue_name, connection=redis)
        self._retry = (
            Retry(max=self._config.retry_max_attempts)
            if self._config.retry_max_attempts > 0
            else None
        )

        logger.info(
            "RQ queue ready",
            extra={
                "queue": self._config.queue_name,
                "retry_max_attempts": self._config.retry_max_attempts,
                "job_timeout_seconds": self._config.job_timeout_seconds,
            },
        )

    def enqueue_sync_batch(self, run_id: str, records: List[Dict[str, Any]]) -> str:
        """
        Enqueue one reconciliation batch.

        The run id doubles as the RQ job id and the workflow run id, so a
        re-enqueue of the same run resumes its progress markers.
        """
        try:
            job = self._queue.enqueue(
                SYNC_BATCH_JOB_PATH,
                args=(run_id, records),
                job_id=run_id,
                retry=self._retry,
                job_timeout=self._config.job_timeout_seconds,
                result_ttl=self._config.result_ttl_seconds,
                description=f"sync_batch:{run_id}",
            )
        except Exception as exc:
            logger.exception(
                "failed to enqueue sync batch",
                extra={"run_id": run_id, "queue": self._config.queue_name},
            )
            raise QueueEnqueueError(
                "could not enqueue the sync batch", original_error=exc
            ) from exc

        job_id = str(getattr(job, "id", "") or run_id)
        logger.info(
            "sync batch enqueued",
            extra={
                "run_id": run_id,
                "job_id": job_id,
                "records": len(records),
                "queue": self._config.queue_name,
            },
        )
        return job_id


def _validate_config(config: RQQueueConfig) -> RQQueueConfig:
    queue_name = (config.queue_name or "").strip() or SYNC_QUEUE_NAME
    if config.retry_max_attempts < 0:
        raise QueueConfigurationError("retry_max_attempts cannot be negative")
    if config.job_timeout_seconds <= 0:
        raise QueueConfigurationError("job_timeout_seconds must be > 0")
    if config.result_ttl_seconds < 0:
        raise QueueConfigurationError("result_ttl_seconds cannot be negative")
    return RQQueueConfig(
        queue_name=queue_name,
        retry_max_attempts=int(config.retry_max_attempts),
        job_timeout_seconds=int(config.job_timeout_seconds),
        result_ttl_seconds=int(config.result_ttl_seconds),
    )
