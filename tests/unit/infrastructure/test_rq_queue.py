"""
Name: RQ Queue Adapter Unit Tests

Responsibilities:
  - Verify enqueue arguments (job path, run id as job id, retry, timeouts)
  - Verify enqueue failures map to QueueEnqueueError
  - Verify configuration validation
"""

from unittest.mock import MagicMock, patch

import pytest

from orabridge.infrastructure.queue import (
    QueueConfigurationError,
    QueueEnqueueError,
    RQQueueConfig,
    RQSyncJobQueue,
)
from orabridge.infrastructure.queue.job_paths import SYNC_BATCH_JOB_PATH

pytestmark = pytest.mark.unit

_RECORDS = [{"recordId": "c-1", "sourceTable": "customers", "payload": {"a": 1}}]


class TestRQSyncJobQueue:
    def test_enqueue_uses_run_id_as_job_id(self):
        with patch("orabridge.infrastructure.queue.rq_queue.Queue") as queue_cls:
            queue_cls.return_value.enqueue.return_value = MagicMock(id="run-1")
            queue = RQSyncJobQueue(
                redis=MagicMock(),
                config=RQQueueConfig(queue_name="sync", retry_max_attempts=2, job_timeout_seconds=60),
            )

            job_id = queue.enqueue_sync_batch("run-1", _RECORDS)

        assert job_id == "run-1"
        queue_cls.assert_called_once()
        assert queue_cls.call_args.kwargs["name"] == "sync"
        args, kwargs = queue_cls.return_value.enqueue.call_args
        assert args == (SYNC_BATCH_JOB_PATH,)
        assert kwargs["args"] == ("run-1", _RECORDS)
        assert kwargs["job_id"] == "run-1"
        assert kwargs["job_timeout"] == 60
        assert kwargs["retry"].max == 2

    def test_retry_disabled_with_zero_attempts(self):
        with patch("orabridge.infrastructure.queue.rq_queue.Queue") as queue_cls:
            queue = RQSyncJobQueue(
                redis=MagicMock(), config=RQQueueConfig(retry_max_attempts=0)
            )
            queue.enqueue_sync_batch("run-2", _RECORDS)

        assert queue_cls.return_value.enqueue.call_args.kwargs["retry"] is None

    def test_enqueue_failure_is_typed(self):
        with patch("orabridge.infrastructure.queue.rq_queue.Queue") as queue_cls:
            queue_cls.return_value.enqueue.side_effect = ConnectionError("redis down")
            queue = RQSyncJobQueue(redis=MagicMock(), config=RQQueueConfig())

            with pytest.raises(QueueEnqueueError) as excinfo:
                queue.enqueue_sync_batch("run-3", _RECORDS)

        assert isinstance(excinfo.value.original_error, ConnectionError)

    @pytest.mark.parametrize(
        "config",
        [
            RQQueueConfig(job_timeout_seconds=0),
            RQQueueConfig(retry_max_attempts=-1),
            RQQueueConfig(result_ttl_seconds=-5),
        ],
    )
    def test_invalid_config(self, config):
        with pytest.raises(QueueConfigurationError):
            RQSyncJobQueue(redis=MagicMock(), config=config)

    def test_job_path_is_importable(self):
        from orabridge.infrastructure.queue.import_utils import is_importable_dotted_path

        assert is_importable_dotted_path(SYNC_BATCH_JOB_PATH) is True
        assert is_importable_dotted_path("orabridge.worker.jobs.missing") is False
