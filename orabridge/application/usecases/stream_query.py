"""
===============================================================================
USE CASE: Stream Query
===============================================================================

Business Goal:
    Deliver a large result set in fixed-size batches without materializing it.

Rules:
    - The statement executes before the stream is returned, so validation,
      connectivity and database errors surface as exceptions, not as a
      half-sent response.
    - The connection stays borrowed while the stream is open and is released
      exactly once when the stream completes, fails or is closed.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    StreamQueryUseCase

Collaborators:
    - StatementValidator
    - QueryExecutor / RowStream
    - PooledCall
===============================================================================
"""

from __future__ import annotations

from ...crosscutting.exceptions import GatewayError
from ...crosscutting.metrics import record_query_outcome
from ...domain.entities import StatementRequest
from ..query_executor import QueryExecutor, RowStream
from ..statement_validator import StatementValidator
from ._pooled import PooledCall


class StreamQueryUseCase:
    """Use Case (Query): validated streaming read."""

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

    def execute(self, request: StatementRequest) -> RowStream:
        try:
            self._validator.ensure_valid(request)
            deadline = self._executor.deadline_for(request)
            pool = self._pooled.pool
            conn = self._pooled.acquire(deadline)
            try:
                stream = self._executor.stream(
                    request,
                    conn,
                    deadline=deadline,
                    on_close=lambda: pool.release(conn),
                )
            except BaseException:
                pool.release(conn)
                raise
        except GatewayError as exc:
            record_query_outcome("stream", exc.error_code)
            raise

        record_query_outcome("stream", "ok")
        return stream
