"""
CRC — infrastructure/repositories/oracle/workflow_progress.py

Name
- OracleWorkflowProgressRepository

Responsibilities
- Persist WorkflowRun progress markers in WORKFLOW_PROGRESS.
- Upsert with MERGE so saving after each step is idempotent.

Collaborators
- infrastructure.db.pool (ConnectionPool / get_pool)
- domain.entities.WorkflowRun

Constraints / Notes
- completed_steps and state are stored as JSON text (CLOB).
"""

from __future__ import annotations

import json
from typing import Optional

from ....domain.entities import WorkflowRun, WorkflowStatus
from ...db.oracle import DRIVER_ERRORS, translate_driver_error, validate_identifier
from ...db.pool import ConnectionPool


class OracleWorkflowProgressRepository:
    """R: Oracle implementation of WorkflowProgressRepository."""

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        *,
        table: str = "WORKFLOW_PROGRESS",
    ) -> None:
        self._pool = pool
        self._table = validate_identifier(table, allow_schema=True)

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        with self._get_pool().connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    f"""
                    SELECT run_id, workflow, status, completed_steps, state,
                           error_message, updated_at
                    FROM {self._table}
                    WHERE run_id = :run_id
                    """,
                    {"run_id": run_id},
                )
                row = cursor.fetchone()
            except DRIVER_ERRORS as exc:
                raise translate_driver_error(exc) from exc
            finally:
                cursor.close()

        if not row:
            return None
        return WorkflowRun(
            run_id=row[0],
            workflow=row[1],
            status=WorkflowStatus(row[2]),
            completed_steps=json.loads(row[3] or "[]"),
            state=json.loads(row[4] or "{}"),
            error=row[5],
            updated_at=row[6],
        )

    def save_run(self, run: WorkflowRun) -> None:
        with self._get_pool().connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    f"""
                    MERGE INTO {self._table} t
                    USING (SELECT :run_id AS run_id FROM dual) s
                    ON (t.run_id = s.run_id)
                    WHEN MATCHED THEN UPDATE SET
                        t.workflow = :workflow,
                        t.status = :status,
                        t.completed_steps = :completed_steps,
                        t.state = :state,
                        t.error_message = :error_message,
                        t.updated_at = SYSTIMESTAMP
                    WHEN NOT MATCHED THEN INSERT
                        (run_id, workflow, status, completed_steps, state,
                         error_message, updated_at)
                    VALUES (:run_id, :workflow, :status, :completed_steps, :state,
                            :error_message, SYSTIMESTAMP)
                    """,
                    {
                        "run_id": run.run_id,
                        "workflow": run.workflow,
                        "status": run.status.value,
                        "completed_steps": json.dumps(run.completed_steps),
                        "state": json.dumps(run.state, sort_keys=True, default=str),
                        "error_message": run.error,
                    },
                )
                conn.commit()
            except DRIVER_ERRORS as exc:
                conn.rollback()
                raise translate_driver_error(exc) from exc
            finally:
                cursor.close()
