"""
CRC — infrastructure/repositories/oracle/sync_store.py

Name
- OracleSyncStore

Responsibilities
- Implement SyncStore on Oracle through the gateway connection pool.
- One pooled connection per transaction: commit on success, roll back on
  error (business MERGE + tracking MERGE are atomic).
- Lock the tracking row with SELECT ... FOR UPDATE for read-then-upsert.
- Build the business MERGE for allow-listed tables from validated
  identifiers only (values are always bound).

Collaborators
- infrastructure.db.pool (ConnectionPool / get_pool)
- infrastructure.db.oracle.translate_driver_error
- domain.entities.SyncRecord, IncomingRecord

Constraints / Notes
- Never interpolate user values; identifiers go through validate_identifier.
- FOR UPDATE cannot lock a row that does not exist yet; both MERGEs are
  idempotent so a cross-process race on a brand-new id converges.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple

from ....crosscutting.exceptions import ValidationRejected
from ....crosscutting.logger import logger
from ....domain.entities import IncomingRecord, SyncRecord, SyncStatus
from ...db.oracle import DRIVER_ERRORS, translate_driver_error, validate_identifier
from ...db.pool import ConnectionPool, PooledConnection

_TRACKING_COLUMNS = (
    "record_id, source_table, content_hash, status, "
    "last_synced_at, changed_at, error_message"
)


def _bind_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return value


class OracleSyncTransaction:
    """R: SyncTransaction bound to one pooled connection."""

    def __init__(
        self,
        conn: PooledConnection,
        *,
        tracking_table: str,
        key_column: str,
        allowed_tables: FrozenSet[str],
    ) -> None:
        self._conn = conn
        self._tracking = tracking_table
        self._key = key_column
        self._allowed = allowed_tables

    def _execute(self, sql: str, params: Dict[str, Any]) -> List[tuple]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params)
            if cursor.description is None:
                return []
            return cursor.fetchall()
        except DRIVER_ERRORS as exc:
            raise translate_driver_error(exc) from exc
        finally:
            cursor.close()

    def get_for_update(self, record_id: str) -> Optional[SyncRecord]:
        rows = self._execute(
            f"SELECT {_TRACKING_COLUMNS} FROM {self._tracking} "
            "WHERE record_id = :record_id FOR UPDATE",
            {"record_id": record_id},
        )
        return row_to_sync_record(rows[0]) if rows else None

    def apply_change(self, record: IncomingRecord) -> None:
        sql, params = build_merge(
            record,
            key_column=self._key,
            allowed_tables=self._allowed,
        )
        self._execute(sql, params)

    def upsert(self, record: SyncRecord) -> None:
        self._execute(
            f"""
            MERGE INTO {self._tracking} t
            USING (SELECT :record_id AS record_id FROM dual) s
            ON (t.record_id = s.record_id)
            WHEN MATCHED THEN UPDATE SET
                t.source_table = :source_table,
                t.content_hash = :content_hash,
                t.status = :status,
                t.last_synced_at = :last_synced_at,
                t.changed_at = :changed_at,
                t.error_message = :error_message
            WHEN NOT MATCHED THEN INSERT ({_TRACKING_COLUMNS})
            VALUES (:record_id, :source_table, :content_hash, :status,
                    :last_synced_at, :changed_at, :error_message)
            """,
            {
                "record_id": record.record_id,
                "source_table": record.source_table,
                "content_hash": record.content_hash,
                "status": record.status.value,
                "last_synced_at": record.last_synced_at,
                "changed_at": record.changed_at,
                "error_message": record.error,
            },
        )


def row_to_sync_record(row: tuple) -> SyncRecord:
    (
        record_id,
        source_table,
        content_hash,
        status,
        last_synced_at,
        changed_at,
        error_message,
    ) = row
    return SyncRecord(
        record_id=record_id,
        source_table=source_table,
        content_hash=content_hash,
        status=SyncStatus(status),
        last_synced_at=last_synced_at,
        changed_at=changed_at,
        error=error_message,
    )


def build_merge(
    record: IncomingRecord,
    *,
    key_column: str,
    allowed_tables: FrozenSet[str],
) -> Tuple[str, Dict[str, Any]]:
    """
    R: MERGE statement for the business write of one record.

    The key column is bound to the record id; every other payload key becomes
    an updated/inserted column.
    """
    table = validate_identifier(record.source_table, allow_schema=True)
    if allowed_tables and table not in allowed_tables:
        raise ValidationRejected(
            f"table '{record.source_table}' is not allowed for sync", rule="table_not_allowed"
        )
    key = validate_identifier(key_column)

    columns: List[str] = []
    params: Dict[str, Any] = {"k": record.record_id}
    for i, (name, value) in enumerate(sorted(record.payload.items())):
        column = validate_identifier(str(name))
        if column == key:
            continue
        columns.append(column)
        params[f"v{i}"] = _bind_value(value)

    binds = [f":{name}" for name in params if name != "k"]
    sql = [
        f"MERGE INTO {table} t",
        f"USING (SELECT :k AS {key} FROM dual) s",
        f"ON (t.{key} = s.{key})",
    ]
    if columns:
        assignments = ", ".join(f"t.{c} = {b}" for c, b in zip(columns, binds))
        sql.append(f"WHEN MATCHED THEN UPDATE SET {assignments}")
    sql.append(
        f"WHEN NOT MATCHED THEN INSERT ({', '.join([key, *columns])}) "
        f"VALUES ({', '.join([':k', *binds])})"
    )
    return "\n".join(sql), params


class OracleSyncStore:
    """R: Oracle implementation of SyncStore."""

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        *,
        tracking_table: str = "SYNC_RECORDS",
        key_column: str = "ID",
        allowed_tables: FrozenSet[str] = frozenset(),
    ) -> None:
        # R: Pool is injectable for tests; production uses the global pool.
        self._pool = pool
        self._tracking = validate_identifier(tracking_table, allow_schema=True)
        self._key = validate_identifier(key_column)
        self._allowed = frozenset(t.upper() for t in allowed_tables)

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    @contextmanager
    def transaction(self) -> Iterator[OracleSyncTransaction]:
        with self._get_pool().connection() as conn:
            tx = OracleSyncTransaction(
                conn,
                tracking_table=self._tracking,
                key_column=self._key,
                allowed_tables=self._allowed,
            )
            try:
                yield tx
            except BaseException:
                self._rollback(conn)
                raise
            try:
                conn.commit()
            except DRIVER_ERRORS as exc:
                self._rollback(conn)
                raise translate_driver_error(exc) from exc

    def get(self, record_id: str) -> Optional[SyncRecord]:
        with self._get_pool().connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    f"SELECT {_TRACKING_COLUMNS} FROM {self._tracking} "
                    "WHERE record_id = :record_id",
                    {"record_id": record_id},
                )
                row = cursor.fetchone()
            except DRIVER_ERRORS as exc:
                raise translate_driver_error(exc) from exc
            finally:
                cursor.close()
        return row_to_sync_record(row) if row else None

    @staticmethod
    def _rollback(conn: PooledConnection) -> None:
        try:
            conn.rollback()
        except DRIVER_ERRORS as exc:
            conn.mark_unusable("rollback failed")
            logger.warning(
                "OracleSyncStore: rollback failed",
                extra={"conn_id": conn.id, "error": str(exc)},
            )
