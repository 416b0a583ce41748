"""
===============================================================================
CRC CARD — domain/__init__.py
===============================================================================

Module:
    Domain layer exports (public surface of the domain)

Responsibilities:
    - Centralize exports for clean imports from application/interfaces.
    - Avoid deep imports and needless coupling.

Rules:
    - Re-export domain contracts/entities only.
    - Never import infrastructure here.
===============================================================================
"""

from .entities import (
    DependencyHealth,
    HealthSnapshot,
    HealthStatus,
    IncomingRecord,
    PoolStats,
    QueryResult,
    StatementRequest,
    SyncOutcome,
    SyncOutcomeKind,
    SyncRecord,
    SyncStatus,
    ValidationVerdict,
    VectorMatch,
    WorkflowRun,
    WorkflowStatus,
)
from .repositories import SyncStore, SyncTransaction, WorkflowProgressRepository
from .services import SecretProvider, SyncJobQueue

__all__ = [
    # Entities
    "StatementRequest",
    "ValidationVerdict",
    "QueryResult",
    "VectorMatch",
    "IncomingRecord",
    "SyncRecord",
    "SyncStatus",
    "SyncOutcome",
    "SyncOutcomeKind",
    "PoolStats",
    "HealthStatus",
    "DependencyHealth",
    "HealthSnapshot",
    "WorkflowRun",
    "WorkflowStatus",
    # Ports
    "SyncStore",
    "SyncTransaction",
    "WorkflowProgressRepository",
    "SecretProvider",
    "SyncJobQueue",
]
