"""
USE CASE: Enqueue Sync Batch

Validates the batch up front (same parser as the synchronous path) and hands
it to the background queue. The returned run id identifies both the queued
job and its workflow progress.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from ...crosscutting.exceptions import ValidationRejected
from ...domain.services import SyncJobQueue
from .reconcile_records import parse_incoming_records


class EnqueueSyncBatchUseCase:
    def __init__(self, queue: SyncJobQueue, *, max_batch_size: int = 500) -> None:
        self._queue = queue
        self._max_batch_size = max_batch_size

    def execute(self, raw_records: Sequence[Mapping[str, Any]], *, run_id: Optional[str] = None) -> str:
        if len(raw_records) > self._max_batch_size:
            raise ValidationRejected(
                f"batch of {len(raw_records)} records exceeds the limit of {self._max_batch_size}",
                rule="batch_too_large",
            )
        parse_incoming_records(raw_records)
        records: List[Dict[str, Any]] = [dict(r) for r in raw_records]
        return self._queue.enqueue_sync_batch(run_id or uuid4().hex, records)
