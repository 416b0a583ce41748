"""
Name: Use Case Unit Tests

Responsibilities:
  - Verify query use cases validate, acquire, execute and always release
  - Verify vector search validation, SQL shape and bound parameters
  - Verify record parsing and the sync use cases (reconcile / enqueue)
"""

import gc
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from orabridge.application.query_executor import QueryExecutor
from orabridge.application.statement_validator import StatementValidator
from orabridge.application.sync_reconciler import SyncReconciler
from orabridge.application.usecases import (
    EnqueueSyncBatchUseCase,
    PooledCall,
    ReconcileRecordsUseCase,
    RunQueryUseCase,
    StreamQueryUseCase,
    VectorSearchUseCase,
    build_vector_sql,
    parse_incoming_records,
)
from orabridge.crosscutting.exceptions import (
    DatabaseError,
    PoolExhausted,
    ValidationRejected,
)
from orabridge.domain.entities import StatementRequest, SyncOutcomeKind
from orabridge.infrastructure.repositories.in_memory import InMemorySyncStore
from orabridge.interfaces.api.http.streaming import stream_rows

pytestmark = pytest.mark.unit


@pytest.fixture
def pooled(pool):
    return PooledCall(lambda: pool, retry_attempts=2, retry_base_delay=0.001, retry_max_delay=0.01)


@pytest.fixture
def executor():
    return QueryExecutor(max_rows=5, batch_size=2, default_timeout=5.0)


class TestRunQueryUseCase:
    def test_select_from_dual(self, pooled, executor, pool):
        use_case = RunQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)

        result = use_case.execute(StatementRequest(text="SELECT 1 FROM DUAL"))

        assert result.rows == [(1,)]
        assert pool.stats().busy == 0

    def test_rejected_statement_never_touches_the_pool(self, pooled, executor, fake_db):
        use_case = RunQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)

        with pytest.raises(ValidationRejected):
            use_case.execute(StatementRequest(text="DROP TABLE customers"))

        assert fake_db.opened == 0

    def test_connection_released_on_database_error(self, pooled, executor, pool, fake_db):
        fake_db.register_error("SELECT id FROM customers", "ORA-00942", "table or view does not exist")
        use_case = RunQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)

        with pytest.raises(DatabaseError):
            use_case.execute(StatementRequest(text="SELECT id FROM customers"))

        assert pool.stats().busy == 0

    def test_exhausted_pool_is_retried_then_reported(self, make_pool, executor):
        pool = make_pool(max_size=1, acquire_timeout=0.01)
        held = pool.acquire()
        pooled = PooledCall(lambda: pool, retry_attempts=2, retry_base_delay=0.001, retry_max_delay=0.01)
        use_case = RunQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)

        with pytest.raises(PoolExhausted):
            use_case.execute(StatementRequest(text="SELECT 1 FROM DUAL"))
        pool.release(held)


class TestStreamQueryUseCase:
    def test_connection_released_when_stream_finishes(self, pooled, executor, pool, fake_db):
        fake_db.register_result("SELECT id FROM customers", ["ID"], [(i,) for i in range(7)])
        use_case = StreamQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)

        stream = use_case.execute(StatementRequest(text="SELECT id FROM customers", stream=True))
        assert pool.stats().busy == 1
        batches = list(stream)

        assert [len(b) for b in batches] == [2, 2, 2, 1]
        assert pool.stats().busy == 0

    def test_connection_released_when_unstarted_response_is_dropped(self, pooled, executor, pool, fake_db):
        fake_db.register_result("SELECT id FROM customers", ["ID"], [(i,) for i in range(3)])
        use_case = StreamQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)
        response = stream_rows(use_case.execute(StatementRequest(text="SELECT id FROM customers")))
        assert pool.stats().busy == 1

        del response
        gc.collect()

        assert pool.stats().busy == 0

    def test_explicit_close_releases_once(self, pooled, executor, pool, fake_db):
        use_case = StreamQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)
        stream = use_case.execute(StatementRequest(text="SELECT 1 FROM DUAL"))

        stream.close()
        stream.close()
        del stream
        gc.collect()

        stats = pool.stats()
        assert stats.busy == 0
        assert stats.idle == 1

    def test_connection_released_when_execute_fails(self, pooled, executor, pool, fake_db):
        fake_db.register_error("SELECT id FROM customers", "ORA-00942", "table or view does not exist")
        use_case = StreamQueryUseCase(validator=StatementValidator(), executor=executor, pooled=pooled)

        with pytest.raises(DatabaseError):
            use_case.execute(StatementRequest(text="SELECT id FROM customers"))

        assert pool.stats().busy == 0


class TestVectorSearch:
    def test_sql_shape(self):
        sql = build_vector_sql(
            table="docs", id_column="id", content_column="body", embedding_column="emb", metric="cosine"
        )

        assert sql == (
            "SELECT ID, BODY, VECTOR_DISTANCE(EMB, TO_VECTOR(:query_vector), COSINE) AS distance "
            "FROM DOCS ORDER BY distance FETCH FIRST :top_k ROWS ONLY"
        )

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            build_vector_sql(table="docs", id_column="id", content_column="c", embedding_column="e", metric="JACCARD")

    def test_returns_ranked_matches(self, pooled, executor, fake_db):
        seen = {}

        def handler(sql, params):
            seen.update(params)
            return ["ID", "CONTENT", "DISTANCE"], [(1, "alpha", 0.1), (2, "beta", 0.25)]

        fake_db.register_handler("SELECT ID, CONTENT, VECTOR_DISTANCE", handler)
        use_case = VectorSearchUseCase(
            executor=executor, pooled=pooled, table="document_chunks", dimensions=3, max_top_k=5
        )

        matches = use_case.execute([0.1, 0.2, 0.3], 2)

        assert [(m.id, m.content, m.distance) for m in matches] == [(1, "alpha", 0.1), (2, "beta", 0.25)]
        assert json.loads(seen["query_vector"]) == [0.1, 0.2, 0.3]
        assert seen["top_k"] == 2

    @pytest.mark.parametrize(
        ("vector", "top_k", "rule"),
        [
            ([], 1, "empty_vector"),
            ([0.1, 0.2], 1, "vector_dimensions"),
            ([0.1, float("nan"), 0.3], 1, "vector_values"),
            ([0.1, 0.2, 0.3], 0, "top_k_range"),
            ([0.1, 0.2, 0.3], 6, "top_k_range"),
        ],
    )
    def test_invalid_requests(self, pooled, executor, fake_db, vector, top_k, rule):
        use_case = VectorSearchUseCase(
            executor=executor, pooled=pooled, table="document_chunks", dimensions=3, max_top_k=5
        )

        with pytest.raises(ValidationRejected) as excinfo:
            use_case.execute(vector, top_k)

        assert excinfo.value.rule == rule
        assert fake_db.opened == 0


class TestParseIncomingRecords:
    def test_camel_and_snake_case(self):
        records = parse_incoming_records(
            [
                {"recordId": "a", "sourceTable": "customers", "payload": {"x": 1}, "changedAt": "2024-05-01T12:00:00Z"},
                {"record_id": "b", "source_table": "orders", "payload": {}},
            ]
        )

        assert records[0].changed_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert records[1].record_id == "b"
        assert records[1].changed_at is None

    @pytest.mark.parametrize(
        "item",
        [
            "not-an-object",
            {"sourceTable": "t", "payload": {}},
            {"recordId": "a", "payload": {}},
            {"recordId": "a", "sourceTable": "t", "payload": []},
            {"recordId": "a", "sourceTable": "t", "payload": {}, "changedAt": "yesterday"},
            {"recordId": "a", "sourceTable": "t", "payload": {}, "changedAt": 12},
        ],
    )
    def test_malformed(self, item):
        with pytest.raises(ValidationRejected) as excinfo:
            parse_incoming_records([item])
        assert excinfo.value.rule == "malformed_record"


class TestSyncUseCases:
    def test_reconcile_records(self):
        store = InMemorySyncStore()
        use_case = ReconcileRecordsUseCase(SyncReconciler(store))

        outcomes = use_case.execute([{"recordId": "a", "sourceTable": "customers", "payload": {"x": 1}}])

        assert outcomes[0].outcome == SyncOutcomeKind.APPLIED
        assert store.get("a") is not None

    def test_enqueue_validates_then_enqueues(self):
        queue = MagicMock()
        queue.enqueue_sync_batch.return_value = "run-1"
        raw = [{"recordId": "a", "sourceTable": "customers", "payload": {"x": 1}}]

        job_id = EnqueueSyncBatchUseCase(queue).execute(raw, run_id="run-1")

        assert job_id == "run-1"
        queue.enqueue_sync_batch.assert_called_once_with("run-1", raw)

    def test_enqueue_generates_run_id(self):
        queue = MagicMock()
        EnqueueSyncBatchUseCase(queue).execute([{"recordId": "a", "sourceTable": "t", "payload": {}}])

        run_id = queue.enqueue_sync_batch.call_args.args[0]
        assert len(run_id) == 32

    def test_enqueue_rejects_bad_batches(self):
        queue = MagicMock()
        use_case = EnqueueSyncBatchUseCase(queue, max_batch_size=1)

        with pytest.raises(ValidationRejected):
            use_case.execute([{"recordId": "a"}])
        with pytest.raises(ValidationRejected) as excinfo:
            use_case.execute([{"recordId": "a", "sourceTable": "t", "payload": {}}] * 2)

        assert excinfo.value.rule == "batch_too_large"
        queue.enqueue_sync_batch.assert_not_called()
