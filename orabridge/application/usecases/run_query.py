"""
===============================================================================
USE CASE: Run Query (bounded)
===============================================================================

Business Goal:
    Execute one caller statement and return its rows, capped at the requested
    maximum, with the connection held only for the duration of the call.

Flow:
    validate -> acquire (retry transient) -> execute -> release

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    RunQueryUseCase

Responsibilities:
    - Reject unsafe statements before touching the pool.
    - Propagate one deadline to both acquire() and execute().
    - Always release the connection (unusable ones are discarded by the pool).
    - Record the outcome metric (ok or error code).

Collaborators:
    - StatementValidator
    - QueryExecutor
    - PooledCall (pool + retry)
===============================================================================
"""

from __future__ import annotations

from ...crosscutting.exceptions import GatewayError
from ...crosscutting.logger import logger
from ...crosscutting.metrics import record_query_outcome
from ...domain.entities import QueryResult, StatementRequest
from ..query_executor import QueryExecutor
from ..statement_validator import StatementValidator
from ._pooled import PooledCall


class RunQueryUseCase:
    """Use Case (Query): validated bounded execution."""

    def __init__(
        self,
        *,
        validator: StatementValidator,
        executor: QueryExecutor,
        pooled: PooledCall,
    ) -> None:
        self._validator = validator
        self._executor = executor
        self._pooled = pooled

    def execute(self, request: StatementRequest) -> QueryResult:
        try:
            self._validator.ensure_valid(request)
            deadline = self._executor.deadline_for(request)
            conn = self._pooled.acquire(deadline)
            try:
                result = self._executor.execute(request, conn, deadline=deadline)
            finally:
                self._pooled.pool.release(conn)
        except GatewayError as exc:
            record_query_outcome("bounded", exc.error_code)
            logger.warning(
                "query failed",
                extra={"error_code": exc.error_code, "error_id": exc.error_id, "caller": request.caller},
            )
            raise

        record_query_outcome("bounded", "ok")
        logger.info(
            "query executed",
            extra={
                "rows": result.row_count,
                "truncated": result.truncated,
                "elapsed_ms": result.elapsed_ms,
            },
        )
        return result
