"""
===============================================================================
MODULE: Sync Reconciler (idempotent change application)
===============================================================================

Algorithm (per incoming record)
-------------------------------
1) hash = sha256(source table + canonical payload)
2) lock the identifier (in-process stripe + SELECT ... FOR UPDATE)
3) tracking record found, status success, same hash  -> skipped-duplicate
4) otherwise check precedence, then in ONE transaction:
     business write + tracking upsert (hash, success)  -> applied
5) failure: roll back, then record `failed` + attempted hash in a separate
   transaction                                        -> failed

Precedence (last-writer-wins by source `changed_at`)
----------------------------------------------------
- no stored record, or either timestamp missing  -> incoming wins
- incoming older than stored                      -> SyncConflict
- same timestamp, different content               -> SyncConflict
A conflict is reported as `failed` (code SYNC_CONFLICT) and leaves the
tracking record untouched.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  SyncReconciler

Collaborators:
  - domain.repositories.SyncStore / SyncTransaction
  - application.content_hash.compute_record_hash
  - crosscutting.metrics.record_sync_outcome
===============================================================================
"""

from __future__ import annotations

import threading
from collections import Counter
from datetime import datetime, timezone
from typing import FrozenSet, List, Optional, Sequence

from ..crosscutting.exceptions import GatewayError, SyncConflict, ValidationRejected
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_sync_outcome
from ..domain.entities import (
    IncomingRecord,
    SyncOutcome,
    SyncOutcomeKind,
    SyncRecord,
)
from ..domain.repositories import SyncStore
from .content_hash import compute_record_hash


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def check_precedence(
    existing: Optional[SyncRecord], incoming: IncomingRecord, content_hash: str
) -> None:
    """Raise SyncConflict when the incoming change must not overwrite the stored one."""
    if existing is None or incoming.changed_at is None or existing.changed_at is None:
        return

    stored_at = _as_utc(existing.changed_at)
    incoming_at = _as_utc(incoming.changed_at)
    if incoming_at < stored_at:
        raise SyncConflict(
            f"Stale change for '{incoming.record_id}': "
            f"{incoming_at.isoformat()} is older than {stored_at.isoformat()}"
        )
    if incoming_at == stored_at and existing.is_success and existing.content_hash != content_hash:
        raise SyncConflict(
            f"Conflicting change for '{incoming.record_id}': same changed_at, different content"
        )


class SyncReconciler:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      SyncReconciler

    Responsibilities:
      - reconcile(): one SyncOutcome per incoming record, in input order
      - Serialize read-then-upsert per identifier
      - Keep business write + tracking upsert atomic

    Collaborators:
      - SyncStore
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        store: SyncStore,
        *,
        lock_stripes: int = 64,
        allowed_tables: FrozenSet[str] = frozenset(),
        max_batch_size: int = 500,
    ) -> None:
        if lock_stripes <= 0:
            raise ValueError("lock_stripes must be > 0")
        self._store = store
        self._locks = [threading.Lock() for _ in range(lock_stripes)]
        self._allowed_tables = frozenset(t.upper() for t in allowed_tables)
        self._max_batch_size = max_batch_size

    def reconcile(self, records: Sequence[IncomingRecord]) -> List[SyncOutcome]:
        if len(records) > self._max_batch_size:
            raise ValidationRejected(
                f"batch of {len(records)} records exceeds the limit of {self._max_batch_size}",
                rule="batch_too_large",
            )

        outcomes = [self.reconcile_one(record) for record in records]

        counts = Counter(o.outcome.value for o in outcomes)
        for outcome, count in counts.items():
            record_sync_outcome(outcome, count)
        logger.info("sync batch reconciled", extra={"records": len(records), **counts})
        return outcomes

    def reconcile_one(self, record: IncomingRecord) -> SyncOutcome:
        content_hash = compute_record_hash(record.source_table, record.payload)

        if self._allowed_tables and record.source_table.upper() not in self._allowed_tables:
            return SyncOutcome(
                record_id=record.record_id,
                outcome=SyncOutcomeKind.FAILED,
                content_hash=content_hash,
                error=f"table '{record.source_table}' is not allowed for sync",
                code=ValidationRejected.error_code,
            )

        with self._lock_for(record.record_id):
            try:
                return self._apply(record, content_hash)
            except SyncConflict as exc:
                logger.warning(
                    "sync conflict",
                    extra={"record_id": record.record_id, "error": exc.message},
                )
                return self._failed(record, content_hash, exc)
            except GatewayError as exc:
                logger.warning(
                    "sync apply failed",
                    extra={
                        "record_id": record.record_id,
                        "error_code": exc.error_code,
                        "error": exc.message,
                    },
                )
                self._record_failure(record, content_hash, exc)
                return self._failed(record, content_hash, exc)

    # ------------------------------------------------------------------

    def _lock_for(self, record_id: str) -> threading.Lock:
        return self._locks[hash(record_id) % len(self._locks)]

    def _apply(self, record: IncomingRecord, content_hash: str) -> SyncOutcome:
        with self._store.transaction() as tx:
            existing = tx.get_for_update(record.record_id)

            if (
                existing is not None
                and existing.is_success
                and existing.content_hash == content_hash
            ):
                return SyncOutcome(
                    record_id=record.record_id,
                    outcome=SyncOutcomeKind.SKIPPED_DUPLICATE,
                    content_hash=content_hash,
                )

            check_precedence(existing, record, content_hash)

            tracking = existing or SyncRecord(
                record_id=record.record_id,
                source_table=record.source_table,
                content_hash=content_hash,
            )
            tracking.source_table = record.source_table
            tx.apply_change(record)
            tracking.mark_success(content_hash, changed_at=record.changed_at)
            tx.upsert(tracking)

        return SyncOutcome(
            record_id=record.record_id,
            outcome=SyncOutcomeKind.APPLIED,
            content_hash=content_hash,
        )

    def _record_failure(
        self, record: IncomingRecord, content_hash: str, error: GatewayError
    ) -> None:
        """Persist `failed` + attempted hash (separate transaction)."""
        try:
            with self._store.transaction() as tx:
                tracking = tx.get_for_update(record.record_id) or SyncRecord(
                    record_id=record.record_id,
                    source_table=record.source_table,
                    content_hash=content_hash,
                )
                tracking.mark_failed(content_hash, error=error.message[:1000])
                tx.upsert(tracking)
        except GatewayError as exc:
            logger.error(
                "could not record sync failure",
                extra={
                    "record_id": record.record_id,
                    "error_code": exc.error_code,
                    "error": exc.message,
                },
            )

    @staticmethod
    def _failed(
        record: IncomingRecord, content_hash: str, error: GatewayError
    ) -> SyncOutcome:
        return SyncOutcome(
            record_id=record.record_id,
            outcome=SyncOutcomeKind.FAILED,
            content_hash=content_hash,
            error=error.message,
            code=error.error_code,
        )
