"""
CRC — infrastructure/repositories/in_memory/sync_store.py

Name
- InMemorySyncStore

Responsibilities
- Implement SyncStore in memory (tests / FAKE_DB local dev).
- Stage business rows and tracking records per transaction; publish them
  only on commit, so rollback semantics match Oracle.
- Allow failure injection (business write or tracking upsert) for tests.

Collaborators
- domain.entities.SyncRecord, IncomingRecord
- domain.repositories.SyncStore / SyncTransaction

Constraints / Notes
- Thread-safe access (Lock). Per-identifier serialization is the
  reconciler's job (lock striping).
- Returned records are copies: callers cannot mutate stored state.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from threading import Lock
from typing import Any, Dict, Iterable, Iterator, Optional

from ....crosscutting.exceptions import DatabaseError
from ....domain.entities import IncomingRecord, SyncRecord


class _InMemorySyncTransaction:
    """R: Staged writes of one transaction."""

    def __init__(self, store: "InMemorySyncStore") -> None:
        self._store = store
        self._records: Dict[str, SyncRecord] = {}
        self._rows: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def get_for_update(self, record_id: str) -> Optional[SyncRecord]:
        if record_id in self._records:
            return copy.deepcopy(self._records[record_id])
        return self._store.get(record_id)

    def apply_change(self, record: IncomingRecord) -> None:
        if record.record_id in self._store.fail_apply_on:
            raise DatabaseError(
                "ORA-00001: unique constraint violated (simulated)", db_code="ORA-00001"
            )
        table = record.source_table.upper()
        self._rows.setdefault(table, {})[record.record_id] = copy.deepcopy(record.payload)

    def upsert(self, record: SyncRecord) -> None:
        if record.record_id in self._store.fail_upsert_on:
            raise DatabaseError(
                "ORA-01653: unable to extend table (simulated)", db_code="ORA-01653"
            )
        self._records[record.record_id] = copy.deepcopy(record)

    def _commit(self) -> None:
        self._store._publish(self._records, self._rows)


class InMemorySyncStore:
    """R: Thread-safe in-memory SyncStore."""

    def __init__(
        self,
        *,
        fail_apply_on: Iterable[str] = (),
        fail_upsert_on: Iterable[str] = (),
    ) -> None:
        self._lock = Lock()
        self._records: Dict[str, SyncRecord] = {}
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.fail_apply_on = set(fail_apply_on)
        self.fail_upsert_on = set(fail_upsert_on)
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def transaction(self) -> Iterator[_InMemorySyncTransaction]:
        tx = _InMemorySyncTransaction(self)
        try:
            yield tx
        except BaseException:
            with self._lock:
                self.rollbacks += 1
            raise
        tx._commit()

    def get(self, record_id: str) -> Optional[SyncRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def rows(self, table: str) -> Dict[str, Dict[str, Any]]:
        """R: Business rows written to `table` (copy)."""
        with self._lock:
            return copy.deepcopy(self._tables.get(table.upper(), {}))

    def _publish(
        self,
        records: Dict[str, SyncRecord],
        rows: Dict[str, Dict[str, Dict[str, Any]]],
    ) -> None:
        with self._lock:
            self._records.update(records)
            for table, table_rows in rows.items():
                self._tables.setdefault(table, {}).update(table_rows)
            self.commits += 1
