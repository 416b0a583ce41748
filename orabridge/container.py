"""
===============================================================================
CRC CARD — orabridge/container.py (Composition Root / manual DI)
===============================================================================

Responsibilities:
  - Compose validator, executor, repositories, queue and use cases.
  - Expose factories for FastAPI (Depends) and for the worker.
  - Keep heavy resources as lru_cache singletons.
  - Decide runtime implementations from Settings (Oracle vs FAKE_DB).

Collaborators:
  - crosscutting.config.get_settings
  - infrastructure.* (implementations)
  - application.* (services and use cases)

Notes:
  - No business logic here and no FastAPI imports.
  - With FAKE_DB the sync/workflow stores are in-memory: the fake driver
    cannot run the MERGE statements of the Oracle repositories.
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable

from redis import Redis

from .application.health_reporter import HealthReporter
from .application.query_executor import QueryExecutor
from .application.statement_validator import StatementValidator
from .application.sync_reconciler import SyncReconciler
from .application.usecases import (
    EnqueueSyncBatchUseCase,
    PooledCall,
    ReconcileRecordsUseCase,
    RunQueryUseCase,
    StreamQueryUseCase,
    VectorSearchUseCase,
)
from .crosscutting.config import Settings, get_settings
from .domain.repositories import SyncStore, WorkflowProgressRepository
from .domain.services import SyncJobQueue
from .infrastructure.db.fake_driver import get_fake_database
from .infrastructure.db.oracle import create_connection_factory
from .infrastructure.db.pool import get_pool
from .infrastructure.queue import QueueConfigurationError, RQQueueConfig, RQSyncJobQueue
from .infrastructure.repositories.in_memory import (
    InMemorySyncStore,
    InMemoryWorkflowProgressRepository,
)
from .infrastructure.repositories.oracle import (
    OracleSyncStore,
    OracleWorkflowProgressRepository,
)
from .infrastructure.secrets import create_secret_provider

# =============================================================================
# Database
# =============================================================================


def build_connection_factory(settings: Settings) -> Callable[[], Any]:
    """
    Connection factory for the pool.

    The password is resolved through the SecretProvider (Key Vault with
    managed identity in deployed environments), never read from code.
    """
    if settings.fake_db:
        return create_connection_factory(
            dsn="",
            user="",
            password="",
            call_timeout_ms=settings.oracle_call_timeout_ms,
            fake_db=get_fake_database(),
        )

    password = create_secret_provider(settings).get_secret(
        settings.oracle_password_secret_name
    )
    return create_connection_factory(
        dsn=settings.oracle_dsn,
        user=settings.oracle_user,
        password=password,
        call_timeout_ms=settings.oracle_call_timeout_ms,
    )


def pool_options(settings: Settings) -> dict[str, Any]:
    """Keyword options of init_pool() taken from Settings."""
    return {
        "min_size": settings.db_pool_min_size,
        "max_size": settings.db_pool_max_size,
        "increment": settings.db_pool_increment,
        "acquire_timeout": settings.db_acquire_timeout_seconds,
        "connect_deadline": settings.db_connect_deadline_seconds,
        "backoff_base": settings.db_connect_backoff_base_seconds,
        "backoff_max": settings.db_connect_backoff_max_seconds,
        "probe_on_release": settings.db_probe_on_release,
        "slow_query_seconds": settings.db_slow_query_seconds,
    }


# =============================================================================
# Application services (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_statement_validator() -> StatementValidator:
    settings = get_settings()
    return StatementValidator(
        strict_mode=settings.validator_strict_mode,
        max_chars=settings.max_query_chars,
        max_params=settings.max_params,
    )


@lru_cache(maxsize=1)
def get_query_executor() -> QueryExecutor:
    settings = get_settings()
    return QueryExecutor(
        max_rows=settings.query_max_rows,
        batch_size=settings.stream_batch_size,
        default_timeout=settings.query_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_pooled_call() -> PooledCall:
    settings = get_settings()
    return PooledCall(
        get_pool,
        retry_attempts=settings.retry_max_attempts,
        retry_base_delay=settings.retry_base_delay_seconds,
        retry_max_delay=settings.retry_max_delay_seconds,
    )


@lru_cache(maxsize=1)
def get_health_reporter() -> HealthReporter:
    settings = get_settings()
    return HealthReporter(
        get_pool,
        timeout_seconds=settings.healthcheck_timeout_seconds,
        degraded_latency_ms=settings.healthcheck_degraded_latency_ms,
    )


# =============================================================================
# Repositories (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_sync_store() -> SyncStore:
    """Sync tracking store (in-memory with FAKE_DB; Oracle otherwise)."""
    settings = get_settings()
    if settings.fake_db:
        return InMemorySyncStore()
    return OracleSyncStore(
        tracking_table=settings.sync_tracking_table,
        key_column=settings.sync_key_column,
        allowed_tables=settings.get_sync_allowed_tables(),
    )


@lru_cache(maxsize=1)
def get_workflow_progress_repository() -> WorkflowProgressRepository:
    settings = get_settings()
    if settings.fake_db:
        return InMemoryWorkflowProgressRepository()
    return OracleWorkflowProgressRepository(table=settings.workflow_progress_table)


@lru_cache(maxsize=1)
def get_sync_reconciler() -> SyncReconciler:
    settings = get_settings()
    return SyncReconciler(
        get_sync_store(),
        lock_stripes=settings.sync_lock_stripes,
        allowed_tables=settings.get_sync_allowed_tables(),
        max_batch_size=settings.sync_max_batch_size,
    )


# =============================================================================
# Queue
# =============================================================================


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    settings = get_settings()
    if not settings.redis_url:
        raise QueueConfigurationError("REDIS_URL is required for background sync jobs")
    return Redis.from_url(
        settings.redis_url,
        socket_connect_timeout=2,
        socket_timeout=5,
        health_check_interval=30,
    )


@lru_cache(maxsize=1)
def get_sync_job_queue() -> SyncJobQueue:
    settings = get_settings()
    return RQSyncJobQueue(
        redis=get_redis(),
        config=RQQueueConfig(
            queue_name=settings.sync_queue_name,
            retry_max_attempts=settings.retry_max_attempts,
            job_timeout_seconds=settings.sync_job_timeout_seconds,
        ),
    )


# =============================================================================
# Use cases (FastAPI Depends)
# =============================================================================


def get_run_query_use_case() -> RunQueryUseCase:
    return RunQueryUseCase(
        validator=get_statement_validator(),
        executor=get_query_executor(),
        pooled=get_pooled_call(),
    )


def get_stream_query_use_case() -> StreamQueryUseCase:
    return StreamQueryUseCase(
        validator=get_statement_validator(),
        executor=get_query_executor(),
        pooled=get_pooled_call(),
    )


@lru_cache(maxsize=1)
def get_vector_search_use_case() -> VectorSearchUseCase:
    settings = get_settings()
    return VectorSearchUseCase(
        executor=get_query_executor(),
        pooled=get_pooled_call(),
        table=settings.vector_table,
        id_column=settings.vector_id_column,
        content_column=settings.vector_content_column,
        embedding_column=settings.vector_embedding_column,
        metric=settings.vector_distance_metric,
        dimensions=settings.vector_dimensions,
        max_top_k=settings.max_top_k,
    )


def get_reconcile_records_use_case() -> ReconcileRecordsUseCase:
    return ReconcileRecordsUseCase(get_sync_reconciler())


def get_enqueue_sync_use_case() -> EnqueueSyncBatchUseCase:
    return EnqueueSyncBatchUseCase(
        get_sync_job_queue(),
        max_batch_size=get_settings().sync_max_batch_size,
    )
