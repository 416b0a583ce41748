"""
===============================================================================
FILE: crosscutting/metrics.py
===============================================================================

CRC CARD (Module)
-------------------------------------------------------------------------------
Name:
    Metrics (Prometheus): observability sink for the gateway

Responsibilities:
    - Define Prometheus metrics in a dedicated registry.
    - Provide small, stable functions to record events and durations.
    - Keep cardinality low (NO SQL text, NO record ids, NO callers).
    - Expose helpers to build the /metrics response.

Collaborators:
    - crosscutting.middleware: HTTP latency and counts.
    - infrastructure/db/pool: busy/idle gauges, acquire wait, exhaustion.
    - infrastructure/db/instrumentation: query duration by statement kind.
    - application: validator rejections, streamed rows, sync outcomes, health.

Design decisions:
    - Single global registry: Prometheus collectors are singletons.
    - Path normalization to avoid cardinality explosions.
===============================================================================
"""

from __future__ import annotations

import re

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_registry = CollectorRegistry()

# ------------------------
# HTTP
# ------------------------
_requests_total = Counter(
    "orabridge_requests_total",
    "Total HTTP requests",
    ["endpoint", "method", "status"],
    registry=_registry,
)

_request_latency = Histogram(
    "orabridge_request_latency_seconds",
    "HTTP request latency (seconds)",
    ["endpoint", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=_registry,
)

# ------------------------
# Pool
# ------------------------
_pool_busy = Gauge(
    "orabridge_pool_busy_connections",
    "Connections currently lent to callers",
    registry=_registry,
)

_pool_idle = Gauge(
    "orabridge_pool_idle_connections",
    "Connections currently idle in the pool",
    registry=_registry,
)

_pool_acquire_wait = Histogram(
    "orabridge_pool_acquire_wait_seconds",
    "Time spent waiting for a pooled connection (seconds)",
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0),
    registry=_registry,
)

_pool_exhausted_total = Counter(
    "orabridge_pool_exhausted_total",
    "Acquire calls that gave up waiting for a connection",
    registry=_registry,
)

_pool_discarded_total = Counter(
    "orabridge_pool_discarded_total",
    "Connections discarded by the pool",
    ["reason"],
    registry=_registry,
)

# ------------------------
# DB / queries
# ------------------------
_db_query_duration = Histogram(
    "orabridge_db_query_duration_seconds",
    "DB statement duration (seconds)",
    ["kind"],
    buckets=(0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 10.0),
    registry=_registry,
)

_query_outcomes_total = Counter(
    "orabridge_query_outcomes_total",
    "Query requests by outcome (ok or error code)",
    ["mode", "outcome"],
    registry=_registry,
)

_validator_rejections_total = Counter(
    "orabridge_validator_rejections_total",
    "Statements rejected by the validator",
    ["rule"],
    registry=_registry,
)

_rows_streamed_total = Counter(
    "orabridge_rows_streamed_total",
    "Rows delivered through streaming reads",
    registry=_registry,
)

# ------------------------
# Sync
# ------------------------
_sync_outcomes_total = Counter(
    "orabridge_sync_outcomes_total",
    "Reconciled records by outcome",
    ["outcome"],
    registry=_registry,
)

_sync_job_duration = Histogram(
    "orabridge_sync_job_duration_seconds",
    "Duration of background sync jobs (seconds)",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
    registry=_registry,
)

# ------------------------
# Health
# ------------------------
_health_status = Gauge(
    "orabridge_health_status",
    "Last health status (2=healthy, 1=degraded, 0=unhealthy)",
    registry=_registry,
)

_HEALTH_VALUES = {"healthy": 2, "degraded": 1, "unhealthy": 0}


# -----------------------------------------------------------------------------
# Public API (recording helpers)
# -----------------------------------------------------------------------------


def record_request_metrics(
    endpoint: str,
    method: str,
    status_code: int,
    latency_seconds: float,
) -> None:
    """Record HTTP metrics (endpoint normalized, status grouped 2xx/4xx/5xx)."""
    normalized = _normalize_endpoint(endpoint)
    _requests_total.labels(
        endpoint=normalized, method=method, status=_status_bucket(status_code)
    ).inc()
    _request_latency.labels(endpoint=normalized, method=method).observe(
        latency_seconds
    )


def set_pool_gauges(*, busy: int, idle: int) -> None:
    _pool_busy.set(busy)
    _pool_idle.set(idle)


def observe_pool_acquire_wait(seconds: float) -> None:
    _pool_acquire_wait.observe(seconds)


def record_pool_exhausted(count: int = 1) -> None:
    _pool_exhausted_total.inc(count)


def record_pool_discard(reason: str) -> None:
    """reason: low cardinality ("probe_failed" | "unusable" | "closed")."""
    _pool_discarded_total.labels(reason=reason).inc()


def observe_db_query_duration(kind: str, seconds: float) -> None:
    """
    Observe one statement duration.

    Rules:
      - `kind` is low cardinality (SELECT/INSERT/MERGE/...).
      - NEVER the full SQL.
    """
    _db_query_duration.labels(kind=(kind or "UNKNOWN").upper()).observe(seconds)


def record_query_outcome(mode: str, outcome: str) -> None:
    _query_outcomes_total.labels(mode=mode, outcome=outcome).inc()


def record_validator_rejection(rule: str) -> None:
    _validator_rejections_total.labels(rule=rule or "unknown").inc()


def record_rows_streamed(count: int) -> None:
    if count > 0:
        _rows_streamed_total.inc(count)


def record_sync_outcome(outcome: str, count: int = 1) -> None:
    _sync_outcomes_total.labels(outcome=outcome).inc(count)


def observe_sync_job_duration(seconds: float) -> None:
    _sync_job_duration.observe(seconds)


def set_health_status(status: str) -> None:
    _health_status.set(_HEALTH_VALUES.get(status, 0))


# -----------------------------------------------------------------------------
# Internal helpers
# -----------------------------------------------------------------------------


def _normalize_endpoint(path: str) -> str:
    """Replace UUIDs and numeric ids with `{id}`."""
    path = re.sub(
        r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
        "{id}",
        path,
        flags=re.IGNORECASE,
    )
    path = re.sub(r"/\d+", "/{id}", path)
    return path


def _status_bucket(code: int) -> str:
    if 200 <= code < 300:
        return "2xx"
    if 400 <= code < 500:
        return "4xx"
    if 500 <= code < 600:
        return "5xx"
    return "other"


# -----------------------------------------------------------------------------
# /metrics exposition
# -----------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Body and content-type for /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST
