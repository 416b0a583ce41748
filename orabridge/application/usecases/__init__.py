"""Application use cases (one class per operation)."""

from ._pooled import PooledCall
from .enqueue_sync import EnqueueSyncBatchUseCase
from .reconcile_records import ReconcileRecordsUseCase, parse_incoming_records
from .run_query import RunQueryUseCase
from .stream_query import StreamQueryUseCase
from .vector_search import VectorSearchUseCase, build_vector_sql

__all__ = [
    "PooledCall",
    "RunQueryUseCase",
    "StreamQueryUseCase",
    "VectorSearchUseCase",
    "build_vector_sql",
    "ReconcileRecordsUseCase",
    "EnqueueSyncBatchUseCase",
    "parse_incoming_records",
]
