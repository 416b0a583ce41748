"""
Name: Oracle Repository Unit Tests

Responsibilities:
  - Verify MERGE generation for business writes (bound values only)
  - Verify OracleSyncStore commit / rollback around one pooled connection
  - Verify OracleWorkflowProgressRepository JSON round trip of progress

Notes:
  - Runs on the fake driver: statements are routed to handlers by prefix.
"""

import json
from datetime import datetime, timezone

import pytest

from orabridge.crosscutting.exceptions import DatabaseError, ValidationRejected
from orabridge.domain.entities import (
    IncomingRecord,
    SyncRecord,
    SyncStatus,
    WorkflowRun,
    WorkflowStatus,
)
from orabridge.infrastructure.db.fake_driver import FakeDriverError
from orabridge.infrastructure.repositories.oracle import (
    OracleSyncStore,
    OracleWorkflowProgressRepository,
)
from orabridge.infrastructure.repositories.oracle.sync_store import build_merge

pytestmark = pytest.mark.unit

_CHANGED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(**overrides) -> IncomingRecord:
    data = {
        "record_id": "c-1",
        "source_table": "customers",
        "payload": {"name": "Ada", "tier": 2},
        "changed_at": _CHANGED,
    }
    data.update(overrides)
    return IncomingRecord(**data)


class TestBuildMerge:
    def test_binds_every_value(self):
        sql, params = build_merge(_record(), key_column="ID", allowed_tables=frozenset())

        assert sql.startswith("MERGE INTO CUSTOMERS t")
        assert "t.NAME = :v0" in sql
        assert "t.TIER = :v1" in sql
        assert "INSERT (ID, NAME, TIER) VALUES (:k, :v0, :v1)" in sql
        assert params == {"k": "c-1", "v0": "Ada", "v1": 2}
        assert "Ada" not in sql

    def test_key_column_in_payload_is_not_updated(self):
        sql, params = build_merge(
            _record(payload={"id": "c-1", "name": "Ada"}),
            key_column="id",
            allowed_tables=frozenset(),
        )

        assert "WHEN MATCHED THEN UPDATE SET t.NAME = :v1\n" in sql
        assert "INSERT (ID, NAME) VALUES (:k, :v1)" in sql
        assert params == {"k": "c-1", "v1": "Ada"}

    def test_nested_values_are_serialized(self):
        _, params = build_merge(
            _record(payload={"tags": ["a", "b"], "meta": {"x": 1}}),
            key_column="ID",
            allowed_tables=frozenset(),
        )

        assert json.loads(params["v0"]) == {"x": 1}
        assert json.loads(params["v1"]) == ["a", "b"]

    def test_payload_without_columns_only_inserts(self):
        sql, _ = build_merge(_record(payload={}), key_column="ID", allowed_tables=frozenset())

        assert "WHEN MATCHED" not in sql
        assert "INSERT (ID) VALUES (:k)" in sql

    def test_table_outside_allow_list_rejected(self):
        with pytest.raises(ValidationRejected) as excinfo:
            build_merge(_record(), key_column="ID", allowed_tables=frozenset({"ORDERS"}))
        assert excinfo.value.rule == "table_not_allowed"

    def test_unsafe_column_rejected(self):
        with pytest.raises(ValidationRejected):
            build_merge(
                _record(payload={"name = 'x' --": 1}),
                key_column="ID",
                allowed_tables=frozenset(),
            )


class TestOracleSyncStore:
    @pytest.fixture
    def tracking_rows(self, fake_db):
        """R: Rows answered by the tracking SELECT (record_id -> row)."""
        rows: dict[str, tuple] = {}

        def select(sql, params):
            row = rows.get(params["record_id"])
            return ["RECORD_ID"], [row] if row else []

        fake_db.register_handler("SELECT record_id, source_table", select)
        return rows

    def test_transaction_commits_all_writes(self, pool, fake_db, tracking_rows):
        store = OracleSyncStore(pool)
        tracking = SyncRecord(
            record_id="c-1",
            source_table="customers",
            content_hash="h1",
            status=SyncStatus.SUCCESS,
            changed_at=_CHANGED,
        )

        with store.transaction() as tx:
            assert tx.get_for_update("c-1") is None
            tx.apply_change(_record())
            tx.upsert(tracking)

        statements = [sql for sql, _ in fake_db.executed]
        assert "FOR UPDATE" in statements[0]
        assert statements[1].startswith("MERGE INTO CUSTOMERS")
        assert "MERGE INTO SYNC_RECORDS" in statements[2]
        upsert_params = fake_db.executed[2][1]
        assert upsert_params["status"] == "success"
        assert upsert_params["content_hash"] == "h1"

        conn = pool.acquire()
        assert conn.raw.commits == 1
        pool.release(conn)

    def test_failed_write_rolls_back(self, pool, fake_db, tracking_rows):
        def fail(sql, params):
            raise FakeDriverError("ORA-00001", "unique constraint violated")

        fake_db.register_handler("MERGE INTO CUSTOMERS", fail)
        store = OracleSyncStore(pool)

        with pytest.raises(DatabaseError) as excinfo:
            with store.transaction() as tx:
                tx.apply_change(_record())

        assert excinfo.value.db_code == "ORA-00001"
        conn = pool.acquire()
        assert conn.raw.commits == 0
        assert conn.raw.rollbacks >= 1
        pool.release(conn)
        assert pool.stats().busy == 0

    def test_get_maps_tracking_row(self, pool, fake_db):
        synced = datetime(2024, 5, 2, tzinfo=timezone.utc)
        fake_db.register_handler(
            "SELECT record_id, source_table",
            lambda sql, params: (
                ["RECORD_ID"],
                [("c-1", "customers", "h1", "failed", synced, _CHANGED, "boom")],
            ),
        )

        record = OracleSyncStore(pool).get("c-1")

        assert record.status == SyncStatus.FAILED
        assert record.error == "boom"
        assert record.last_synced_at == synced

    def test_rejects_unsafe_tracking_table(self, pool):
        with pytest.raises(ValidationRejected):
            OracleSyncStore(pool, tracking_table="sync; drop")


class TestOracleWorkflowProgressRepository:
    def test_save_binds_json_and_commits(self, pool, fake_db):
        repo = OracleWorkflowProgressRepository(pool)
        run = WorkflowRun(
            run_id="r-1",
            workflow="sync_batch",
            completed_steps=["validate"],
            state={"validated": 2},
        )

        repo.save_run(run)

        sql, params = fake_db.executed[-1]
        assert "MERGE INTO WORKFLOW_PROGRESS" in sql
        assert json.loads(params["completed_steps"]) == ["validate"]
        assert json.loads(params["state"]) == {"validated": 2}
        assert params["status"] == "running"

    def test_get_run_decodes_json(self, pool, fake_db):
        fake_db.register_handler(
            "SELECT run_id",
            lambda sql, params: (
                ["RUN_ID"],
                [("r-1", "sync_batch", "failed", '["validate"]', '{"n": 1}', "reconcile: boom", None)],
            ),
        )

        run = OracleWorkflowProgressRepository(pool).get_run("r-1")

        assert run.status == WorkflowStatus.FAILED
        assert run.completed_steps == ["validate"]
        assert run.state == {"n": 1}
        assert run.error == "reconcile: boom"

    def test_get_missing_run(self, pool, fake_db):
        fake_db.register_handler("SELECT run_id", lambda sql, params: (["RUN_ID"], []))

        assert OracleWorkflowProgressRepository(pool).get_run("nope") is None
