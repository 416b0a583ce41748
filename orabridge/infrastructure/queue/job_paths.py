"""Queue names and importable job paths (the worker imports these)."""

from __future__ import annotations

SYNC_QUEUE_NAME: str = "sync"

# Must match the real job location; checked when the queue is built.
SYNC_BATCH_JOB_PATH: str = "orabridge.worker.jobs.sync_batch_job"
