"""
Name: Domain Entity Tests

Responsibilities:
  - Verify wire representations (camelCase, optional keys omitted)
  - Verify tracking record transitions and workflow step bookkeeping
"""

from datetime import datetime, timezone

import pytest

from orabridge.domain.entities import (
    DependencyHealth,
    HealthSnapshot,
    HealthStatus,
    PoolStats,
    StatementRequest,
    SyncOutcome,
    SyncOutcomeKind,
    SyncRecord,
    SyncStatus,
    WorkflowRun,
)

pytestmark = pytest.mark.unit


class TestStatementRequest:
    def test_positional_params(self):
        request = StatementRequest(text="SELECT :1, :2 FROM DUAL", params=(1, 2))

        assert request.param_count() == 2
        assert request.has_named_params is False

    def test_named_params(self):
        request = StatementRequest(text="SELECT :id FROM DUAL", params={"id": 1})

        assert request.has_named_params is True

    def test_no_params(self):
        assert StatementRequest(text="SELECT 1 FROM DUAL").param_count() == 0


class TestSyncOutcome:
    def test_to_dict_omits_empty_fields(self):
        outcome = SyncOutcome("a", SyncOutcomeKind.APPLIED, "h")

        assert outcome.to_dict() == {"recordId": "a", "outcome": "applied", "contentHash": "h"}

    def test_to_dict_failure(self):
        outcome = SyncOutcome("a", SyncOutcomeKind.FAILED, "h", error="older change", code="SYNC_CONFLICT")

        assert outcome.to_dict()["code"] == "SYNC_CONFLICT"
        assert outcome.to_dict()["error"] == "older change"


class TestSyncRecord:
    def test_success_then_failure(self):
        changed = datetime(2024, 5, 1, tzinfo=timezone.utc)
        record = SyncRecord(record_id="a", source_table="customers", content_hash="h0")

        record.mark_success("h1", changed_at=changed)
        assert record.is_success
        assert record.changed_at == changed
        assert record.last_synced_at is not None

        record.mark_failed("h2", error="ORA-00001")
        assert record.status == SyncStatus.FAILED
        assert record.content_hash == "h2"
        assert record.changed_at == changed

    def test_success_without_timestamp_keeps_stored_one(self):
        changed = datetime(2024, 5, 1, tzinfo=timezone.utc)
        record = SyncRecord(record_id="a", source_table="customers", content_hash="h0")
        record.mark_success("h1", changed_at=changed)

        record.mark_success("h2", changed_at=None)

        assert record.content_hash == "h2"
        assert record.changed_at == changed


class TestHealthSnapshot:
    def test_to_dict(self):
        ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        snapshot = HealthSnapshot(
            timestamp=ts,
            status=HealthStatus.DEGRADED,
            checks={"oracle": DependencyHealth(HealthStatus.DEGRADED, latency_ms=812.5)},
        )

        assert snapshot.to_dict() == {
            "timestamp": "2024-05-01T12:00:00+00:00",
            "status": "degraded",
            "checks": {"oracle": {"status": "degraded", "latencyMs": 812.5}},
        }


class TestPoolStats:
    def test_total(self):
        assert PoolStats(min_size=1, max_size=4, busy=2, idle=1).total == 3


class TestWorkflowRun:
    def test_complete_step_is_idempotent(self):
        run = WorkflowRun(run_id="r", workflow="w")

        run.complete_step("a")
        run.complete_step("a")
        run.complete_step("b")

        assert run.completed_steps == ["a", "b"]
        assert run.is_step_done("b")
        assert run.updated_at is not None
