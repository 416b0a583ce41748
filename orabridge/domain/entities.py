"""
===============================================================================
CRC CARD — domain/entities.py
===============================================================================

Module:
    Domain entities (statements, verdicts, results, sync records, health)

Responsibilities:
    - Define the core structures of the gateway (no infrastructure).
    - Provide minimal helpers that keep simple invariants in one place.
    - Give use cases and repositories clear, shared types.

Collaborators:
    - domain.repositories: persist/retrieve sync records and workflow runs.
    - application: builds and consumes these entities.
    - interfaces/api: serializes them into response DTOs.

Principles:
    - No DB / Redis / FastAPI imports.
    - Verdicts and incoming records are immutable (frozen dataclasses).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union


def _utcnow() -> datetime:
    """UTC now (internal helper)."""
    return datetime.now(timezone.utc)


Params = Union[Sequence[Any], Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatementRequest:
    """
    Raw statement plus bound parameters.

    Notes:
      - `read_only` is the intent declared by the caller.
      - `elevated` lifts the destructive-keyword guard (never strict mode).
      - `max_rows=None` means "use the configured cap".
    """

    text: str
    params: Params = ()
    caller: str = ""
    max_rows: Optional[int] = None
    read_only: bool = True
    elevated: bool = False
    stream: bool = False
    timeout_seconds: Optional[float] = None

    @property
    def has_named_params(self) -> bool:
        return isinstance(self.params, Mapping)

    def param_count(self) -> int:
        return len(self.params or ())


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of validating one StatementRequest. Produced once, never mutated."""

    passed: bool
    reason: str = ""
    rule: str = ""

    @classmethod
    def ok(cls) -> "ValidationVerdict":
        return cls(passed=True)

    @classmethod
    def reject(cls, rule: str, reason: str) -> "ValidationVerdict":
        return cls(passed=False, reason=reason, rule=rule)


@dataclass
class QueryResult:
    """Materialized rows of a bounded execution, in driver order."""

    columns: List[str] = field(default_factory=list)
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    truncated: bool = False
    elapsed_ms: float = 0.0

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class VectorMatch:
    """One ranked result of a vector similarity search."""

    id: Any
    content: Optional[str]
    distance: float


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class SyncStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SyncOutcomeKind(str, Enum):
    APPLIED = "applied"
    SKIPPED_DUPLICATE = "skipped-duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class IncomingRecord:
    """
    A change record received from the source side.

    `changed_at` is the source-side modification time used for precedence.
    """

    record_id: str
    source_table: str
    payload: Dict[str, Any]
    changed_at: Optional[datetime] = None


@dataclass
class SyncRecord:
    """
    Durable tracking entry (one per record identifier).

    Created on the first sync attempt, upserted on every later attempt.
    """

    record_id: str
    source_table: str
    content_hash: str
    status: SyncStatus = SyncStatus.PENDING
    last_synced_at: Optional[datetime] = None
    changed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    def mark_success(self, content_hash: str, *, changed_at: datetime | None) -> None:
        self.content_hash = content_hash
        self.status = SyncStatus.SUCCESS
        # R: an untimestamped change keeps the stored precedence marker
        if changed_at is not None:
            self.changed_at = changed_at
        self.error = None
        self.last_synced_at = _utcnow()

    def mark_failed(self, content_hash: str, *, error: str) -> None:
        self.content_hash = content_hash
        self.status = SyncStatus.FAILED
        self.error = error
        self.last_synced_at = _utcnow()


@dataclass(frozen=True)
class SyncOutcome:
    """Per-record result returned by the reconciler."""

    record_id: str
    outcome: SyncOutcomeKind
    content_hash: str
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "recordId": self.record_id,
            "outcome": self.outcome.value,
            "contentHash": self.content_hash,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.code is not None:
            data["code"] = self.code
        return data


# ---------------------------------------------------------------------------
# Pool / Health
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PoolStats:
    min_size: int
    max_size: int
    busy: int
    idle: int
    opening: int = 0

    @property
    def total(self) -> int:
        return self.busy + self.idle


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class DependencyHealth:
    status: HealthStatus
    latency_ms: Optional[float] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status.value}
        if self.latency_ms is not None:
            data["latencyMs"] = self.latency_ms
        if self.detail:
            data["detail"] = self.detail
        return data


@dataclass(frozen=True)
class HealthSnapshot:
    """Recomputed on every check; never persisted."""

    timestamp: datetime
    status: HealthStatus
    checks: Dict[str, DependencyHealth] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "checks": {name: dep.to_dict() for name, dep in self.checks.items()},
        }


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


class WorkflowStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WorkflowRun:
    """
    Persisted progress of a step-sequence workflow.

    `completed_steps` is append-only and ordered; `state` carries the data
    later steps need (JSON-serializable).
    """

    run_id: str
    workflow: str
    status: WorkflowStatus = WorkflowStatus.RUNNING
    completed_steps: List[str] = field(default_factory=list)
    state: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    updated_at: Optional[datetime] = None

    def is_step_done(self, step: str) -> bool:
        return step in self.completed_steps

    def complete_step(self, step: str) -> None:
        if step not in self.completed_steps:
            self.completed_steps.append(step)
        self.updated_at = _utcnow()
