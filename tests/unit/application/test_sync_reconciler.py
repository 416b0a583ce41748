"""
Name: Sync Reconciler Unit Tests

Responsibilities:
  - Verify idempotence (same content twice -> skipped-duplicate, one write)
  - Verify atomicity (failed business write leaves no success record)
  - Verify failure tracking (status failed + attempted hash)
  - Verify precedence by changed_at (stale / conflicting changes)
  - Verify per-identifier serialization under concurrency
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from orabridge.application.content_hash import compute_record_hash
from orabridge.application.sync_reconciler import SyncReconciler
from orabridge.crosscutting.exceptions import ValidationRejected
from orabridge.domain.entities import IncomingRecord, SyncOutcomeKind, SyncStatus
from orabridge.infrastructure.repositories.in_memory import InMemorySyncStore

pytestmark = pytest.mark.unit

_T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _rec(record_id="c-1", payload=None, changed_at=_T0, table="customers"):
    return IncomingRecord(
        record_id=record_id,
        source_table=table,
        payload={"name": "Ada"} if payload is None else payload,
        changed_at=changed_at,
    )


@pytest.fixture
def store():
    return InMemorySyncStore()


@pytest.fixture
def reconciler(store):
    return SyncReconciler(store, lock_stripes=8, max_batch_size=10)


class TestIdempotence:
    def test_first_sync_is_applied(self, reconciler, store):
        [outcome] = reconciler.reconcile([_rec()])

        assert outcome.outcome == SyncOutcomeKind.APPLIED
        assert outcome.content_hash == compute_record_hash("customers", {"name": "Ada"})
        tracked = store.get("c-1")
        assert tracked.status == SyncStatus.SUCCESS
        assert tracked.content_hash == outcome.content_hash
        assert tracked.last_synced_at is not None
        assert store.rows("customers") == {"c-1": {"name": "Ada"}}

    def test_same_content_is_skipped(self, reconciler, store):
        reconciler.reconcile([_rec()])
        commits = store.commits

        [outcome] = reconciler.reconcile([_rec()])

        assert outcome.outcome == SyncOutcomeKind.SKIPPED_DUPLICATE
        assert store.commits == commits + 1
        assert store.rows("customers") == {"c-1": {"name": "Ada"}}

    def test_changed_content_is_applied_again(self, reconciler, store):
        reconciler.reconcile([_rec()])

        [outcome] = reconciler.reconcile(
            [_rec(payload={"name": "Grace"}, changed_at=_T0 + timedelta(minutes=1))]
        )

        assert outcome.outcome == SyncOutcomeKind.APPLIED
        assert store.rows("customers")["c-1"] == {"name": "Grace"}

    def test_outcomes_follow_input_order(self, reconciler):
        outcomes = reconciler.reconcile([_rec("a"), _rec("b"), _rec("a")])

        assert [o.record_id for o in outcomes] == ["a", "b", "a"]
        assert [o.outcome for o in outcomes] == [
            SyncOutcomeKind.APPLIED,
            SyncOutcomeKind.APPLIED,
            SyncOutcomeKind.SKIPPED_DUPLICATE,
        ]


class TestFailures:
    def test_failed_business_write_records_failure(self, store):
        store.fail_apply_on.add("c-1")
        reconciler = SyncReconciler(store)

        [outcome] = reconciler.reconcile([_rec()])

        assert outcome.outcome == SyncOutcomeKind.FAILED
        assert outcome.code == "DATABASE_ERROR"
        assert "ORA-00001" in outcome.error
        tracked = store.get("c-1")
        assert tracked.status == SyncStatus.FAILED
        assert tracked.content_hash == outcome.content_hash
        assert store.rows("customers") == {}
        assert store.rollbacks == 1

    def test_failed_record_is_retried_later(self, store):
        store.fail_apply_on.add("c-1")
        reconciler = SyncReconciler(store)
        reconciler.reconcile([_rec()])
        store.fail_apply_on.clear()

        [outcome] = reconciler.reconcile([_rec()])

        assert outcome.outcome == SyncOutcomeKind.APPLIED
        assert store.get("c-1").status == SyncStatus.SUCCESS

    def test_failure_of_one_record_does_not_stop_the_batch(self, store):
        store.fail_apply_on.add("bad")
        reconciler = SyncReconciler(store)

        outcomes = reconciler.reconcile([_rec("ok-1"), _rec("bad"), _rec("ok-2")])

        assert [o.outcome for o in outcomes] == [
            SyncOutcomeKind.APPLIED,
            SyncOutcomeKind.FAILED,
            SyncOutcomeKind.APPLIED,
        ]

    def test_tracking_upsert_failure_rolls_back_business_write(self, store):
        store.fail_upsert_on.add("c-1")
        reconciler = SyncReconciler(store)

        [outcome] = reconciler.reconcile([_rec()])

        assert outcome.outcome == SyncOutcomeKind.FAILED
        assert store.rows("customers") == {}
        assert store.get("c-1") is None

    def test_table_outside_allow_list(self, store):
        reconciler = SyncReconciler(store, allowed_tables=frozenset({"orders"}))

        [outcome] = reconciler.reconcile([_rec()])

        assert outcome.outcome == SyncOutcomeKind.FAILED
        assert outcome.code == "VALIDATION_REJECTED"
        assert store.get("c-1") is None

    def test_batch_too_large(self, reconciler):
        with pytest.raises(ValidationRejected) as excinfo:
            reconciler.reconcile([_rec(str(i)) for i in range(11)])
        assert excinfo.value.rule == "batch_too_large"


class TestPrecedence:
    def test_stale_change_is_a_conflict(self, reconciler, store):
        reconciler.reconcile([_rec(payload={"name": "New"}, changed_at=_T0)])

        [outcome] = reconciler.reconcile(
            [_rec(payload={"name": "Old"}, changed_at=_T0 - timedelta(hours=1))]
        )

        assert outcome.outcome == SyncOutcomeKind.FAILED
        assert outcome.code == "SYNC_CONFLICT"
        assert store.get("c-1").status == SyncStatus.SUCCESS
        assert store.rows("customers")["c-1"] == {"name": "New"}

    def test_same_timestamp_different_content_is_a_conflict(self, reconciler, store):
        reconciler.reconcile([_rec(payload={"name": "A"})])

        [outcome] = reconciler.reconcile([_rec(payload={"name": "B"})])

        assert outcome.code == "SYNC_CONFLICT"
        assert store.rows("customers")["c-1"] == {"name": "A"}

    def test_missing_timestamps_apply_latest(self, reconciler, store):
        reconciler.reconcile([_rec(payload={"name": "A"}, changed_at=None)])

        [outcome] = reconciler.reconcile([_rec(payload={"name": "B"}, changed_at=None)])

        assert outcome.outcome == SyncOutcomeKind.APPLIED
        assert store.rows("customers")["c-1"] == {"name": "B"}

    def test_untimestamped_change_keeps_stored_timestamp(self, reconciler, store):
        reconciler.reconcile([_rec(payload={"name": "New"}, changed_at=_T0)])
        reconciler.reconcile([_rec(payload={"name": "NoTs"}, changed_at=None)])

        assert store.get("c-1").changed_at == _T0

        [outcome] = reconciler.reconcile(
            [_rec(payload={"name": "Stale"}, changed_at=_T0 - timedelta(hours=5))]
        )

        assert outcome.outcome == SyncOutcomeKind.FAILED
        assert outcome.code == "SYNC_CONFLICT"
        assert store.rows("customers")["c-1"] == {"name": "NoTs"}


class TestConcurrency:
    def test_concurrent_duplicates_write_once(self, store):
        reconciler = SyncReconciler(store, lock_stripes=4)
        outcomes = []
        lock = threading.Lock()

        def worker():
            result = reconciler.reconcile([_rec()])
            with lock:
                outcomes.extend(result)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        kinds = [o.outcome for o in outcomes]
        assert kinds.count(SyncOutcomeKind.APPLIED) == 1
        assert kinds.count(SyncOutcomeKind.SKIPPED_DUPLICATE) == 7
