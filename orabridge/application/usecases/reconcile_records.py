"""
===============================================================================
USE CASE: Reconcile Records
===============================================================================

Business Goal:
    Turn raw change records (HTTP body or queued job) into IncomingRecord
    entities and reconcile them idempotently.

Rules:
    - A malformed record rejects the whole batch (ValidationRejected) before
      anything is written.
    - `changedAt` accepts ISO-8601 (a trailing "Z" means UTC).

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    ReconcileRecordsUseCase

Collaborators:
    - SyncReconciler
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from ...crosscutting.exceptions import ValidationRejected
from ...domain.entities import IncomingRecord, SyncOutcome
from ..sync_reconciler import SyncReconciler


def _parse_changed_at(value: Any, index: int) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationRejected(f"record {index}: changedAt must be a string", rule="malformed_record")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationRejected(
            f"record {index}: changedAt is not ISO-8601", rule="malformed_record"
        ) from exc


def parse_incoming_records(raw: Sequence[Mapping[str, Any]]) -> List[IncomingRecord]:
    """R: Raw dicts (camelCase or snake_case keys) -> IncomingRecord list."""
    records: List[IncomingRecord] = []
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise ValidationRejected(f"record {i}: must be an object", rule="malformed_record")
        record_id = item.get("recordId", item.get("record_id"))
        source_table = item.get("sourceTable", item.get("source_table"))
        payload = item.get("payload")
        if not isinstance(record_id, str) or not record_id.strip():
            raise ValidationRejected(f"record {i}: recordId is required", rule="malformed_record")
        if not isinstance(source_table, str) or not source_table.strip():
            raise ValidationRejected(f"record {i}: sourceTable is required", rule="malformed_record")
        if not isinstance(payload, Mapping):
            raise ValidationRejected(f"record {i}: payload must be an object", rule="malformed_record")
        records.append(
            IncomingRecord(
                record_id=record_id.strip(),
                source_table=source_table.strip(),
                payload=dict(payload),
                changed_at=_parse_changed_at(item.get("changedAt", item.get("changed_at")), i),
            )
        )
    return records


class ReconcileRecordsUseCase:
    """Use Case (Command): reconcile one batch synchronously."""

    def __init__(self, reconciler: SyncReconciler) -> None:
        self._reconciler = reconciler

    def execute(self, raw_records: Sequence[Mapping[str, Any]]) -> List[SyncOutcome]:
        return self._reconciler.reconcile(parse_incoming_records(raw_records))
