"""
===============================================================================
MODULE: Query Executor / Streaming Reader
===============================================================================

Goal
----
Run one validated statement on a borrowed connection and return either:
- a bounded, fully materialized result (rows capped, driver order kept), or
- a RowStream: a finite, lazy, non-restartable sequence of fixed-size batches
  (at most one batch held in memory at a time).

Deadlines
---------
Every execution is bound to a Deadline (caller-supplied or default).
- Driver supports cancel(): a timer cancels the in-flight call at expiry.
- Otherwise: the call runs to completion, the connection is marked unusable
  (discarded on release) and the result is thrown away.
Either way the caller gets ExecutionTimeout, never a truncated success.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Components:
  - QueryExecutor
  - RowStream
  - _CancelTimer

Collaborators:
  - infrastructure/db/pool.PooledConnection
  - infrastructure/db/oracle.translate_driver_error
  - crosscutting.metrics (rows streamed)
===============================================================================
"""

from __future__ import annotations

import threading
import time
import weakref
from typing import Any, Callable, Iterator, List, Optional, Tuple

from ..crosscutting.exceptions import (
    ConnectivityError,
    ExecutionTimeout,
    GatewayError,
    StreamConsumed,
)
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_rows_streamed
from ..crosscutting.timing import Deadline, Timer
from ..domain.entities import QueryResult, StatementRequest
from ..infrastructure.db.oracle import DRIVER_ERRORS, translate_driver_error
from ..infrastructure.db.pool import PooledConnection

Row = Tuple[Any, ...]


class _CancelTimer:
    """Arms a timer that cancels the in-flight call when the budget runs out."""

    def __init__(self, conn: PooledConnection, budget: float) -> None:
        self._conn = conn
        self.fired = False
        self._timer: Optional[threading.Timer] = None
        if conn.supports_cancel:
            self._timer = threading.Timer(budget, self._fire)
            self._timer.daemon = True

    def _fire(self) -> None:
        self.fired = True
        try:
            self._conn.cancel()
        except DRIVER_ERRORS as exc:
            logger.warning(
                "cancel of in-flight call failed",
                extra={"conn_id": self._conn.id, "error": str(exc)},
            )

    def __enter__(self) -> "_CancelTimer":
        if self._timer is not None:
            self._timer.start()
        return self

    def __exit__(self, *exc) -> None:
        if self._timer is not None:
            self._timer.cancel()


def _column_names(cursor) -> List[str]:
    return [d[0] for d in (cursor.description or [])]


def _release_stream(cursor, on_close: Optional[Callable[[], None]]) -> None:
    try:
        cursor.close()
    except DRIVER_ERRORS as exc:
        logger.debug("error closing stream cursor", extra={"error": str(exc)})
    finally:
        if on_close is not None:
            on_close()


def _release_abandoned_stream(cursor, on_close: Optional[Callable[[], None]]) -> None:
    logger.warning("row stream dropped without being closed; releasing its connection")
    _release_stream(cursor, on_close)


class QueryExecutor:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      QueryExecutor

    Responsibilities:
      - execute(): bounded materialization (min(requested, cap) rows)
      - stream(): lazy batches of `batch_size`
      - Enforce deadlines (cancel or mark unusable) and translate errors

    Collaborators:
      - PooledConnection
      - RowStream
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        *,
        max_rows: int = 1000,
        batch_size: int = 100,
        default_timeout: float = 30.0,
    ) -> None:
        if max_rows <= 0 or batch_size <= 0 or default_timeout <= 0:
            raise ValueError("max_rows, batch_size and default_timeout must be > 0")
        self.max_rows = max_rows
        self.batch_size = batch_size
        self.default_timeout = default_timeout

    def deadline_for(self, request: StatementRequest) -> Deadline:
        return Deadline.after(request.timeout_seconds or self.default_timeout)

    def row_limit(self, request: StatementRequest) -> int:
        if request.max_rows is None or request.max_rows <= 0:
            return self.max_rows
        return min(request.max_rows, self.max_rows)

    # ------------------------------------------------------------------
    # Bounded
    # ------------------------------------------------------------------

    def execute(
        self,
        request: StatementRequest,
        conn: PooledConnection,
        *,
        deadline: Optional[Deadline] = None,
    ) -> QueryResult:
        deadline = deadline or self.deadline_for(request)
        limit = self.row_limit(request)
        timer = Timer().start()

        def _work() -> QueryResult:
            cursor = conn.cursor()
            try:
                cursor.arraysize = min(limit + 1, self.batch_size)
                cursor.execute(request.text, request.params or None)
                if cursor.description is None:
                    conn.commit()
                    return QueryResult()

                columns = _column_names(cursor)
                rows: List[Row] = []
                while len(rows) <= limit:
                    batch = cursor.fetchmany(min(self.batch_size, limit + 1 - len(rows)))
                    if not batch:
                        break
                    rows.extend(tuple(r) for r in batch)
                return QueryResult(
                    columns=columns,
                    rows=rows[:limit],
                    truncated=len(rows) > limit,
                )
            finally:
                cursor.close()

        result = self._run_guarded(conn, deadline, _work)
        result.elapsed_ms = timer.stop().elapsed_ms
        return result

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def stream(
        self,
        request: StatementRequest,
        conn: PooledConnection,
        *,
        deadline: Optional[Deadline] = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> "RowStream":
        """
        Execute now (errors surface before the first batch), fetch lazily.

        `on_close` runs exactly once when the stream completes, fails or is
        closed early; use it to release the connection.
        """
        deadline = deadline or self.deadline_for(request)

        def _open():
            cursor = conn.cursor()
            try:
                cursor.arraysize = self.batch_size
                cursor.execute(request.text, request.params or None)
            except BaseException:
                cursor.close()
                raise
            return cursor

        cursor = self._run_guarded(conn, deadline, _open)
        if cursor.description is None:
            self._run_guarded(conn, deadline, conn.commit)

        return RowStream(
            self,
            conn,
            cursor,
            deadline=deadline,
            row_limit=request.max_rows if request.max_rows and request.max_rows > 0 else None,
            on_close=on_close,
        )

    # ------------------------------------------------------------------
    # Deadline + error handling
    # ------------------------------------------------------------------

    def _run_guarded(self, conn: PooledConnection, deadline: Deadline, work: Callable[[], Any]):
        budget = deadline.remaining()
        if budget <= 0:
            raise ExecutionTimeout("Deadline exceeded before the database call started")

        started = time.monotonic()
        timer = _CancelTimer(conn, budget)
        try:
            with timer:
                value = work()
        except DRIVER_ERRORS as exc:
            error = translate_driver_error(exc)
            if isinstance(error, ExecutionTimeout):
                raise error from exc
            if timer.fired or time.monotonic() - started >= budget:
                conn.mark_unusable("deadline exceeded")
                raise ExecutionTimeout(
                    f"Execution exceeded its deadline ({budget:.2f}s)", original_error=exc
                ) from exc
            if isinstance(error, ConnectivityError):
                conn.mark_unusable("connectivity lost")
            raise error from exc

        if timer.fired or time.monotonic() - started >= budget:
            # R: late result; a pending cancel may still hit this session
            conn.mark_unusable("deadline exceeded")
            if hasattr(value, "close"):
                value.close()
            raise ExecutionTimeout(f"Execution exceeded its deadline ({budget:.2f}s)")
        return value


class RowStream:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      RowStream

    Responsibilities:
      - Yield row batches in driver order, one fetch at a time
      - Terminate explicitly (completed / error) and release resources once
      - Refuse a second iteration (StreamConsumed)

    Collaborators:
      - QueryExecutor (guarded fetches)
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        executor: QueryExecutor,
        conn: PooledConnection,
        cursor,
        *,
        deadline: Deadline,
        row_limit: Optional[int] = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._executor = executor
        self._conn = conn
        self._cursor = cursor
        self._deadline = deadline
        self._row_limit = row_limit
        self._on_close = on_close
        self._started = False
        self._closed = False
        self._lock = threading.Lock()
        self.columns: List[str] = _column_names(cursor)
        self.rows_delivered = 0
        self.batches_delivered = 0
        self.completed = False
        self.error: Optional[GatewayError] = None
        # R: a stream dropped before iteration still returns its connection
        self._finalizer = weakref.finalize(self, _release_abandoned_stream, cursor, on_close)

    def __iter__(self) -> Iterator[List[Row]]:
        with self._lock:
            if self._started:
                raise StreamConsumed("Stream already consumed; execute the statement again")
            self._started = True
        return self._batches()

    def _fetch(self, size: int) -> List[Row]:
        return [tuple(r) for r in self._cursor.fetchmany(size)]

    def _batches(self) -> Iterator[List[Row]]:
        try:
            if self._cursor.description is None:
                self.completed = True
                return
            while True:
                size = self._executor.batch_size
                if self._row_limit is not None:
                    size = min(size, self._row_limit - self.rows_delivered)
                    if size <= 0:
                        break
                batch = self._executor._run_guarded(
                    self._conn, self._deadline, lambda: self._fetch(size)
                )
                if not batch:
                    break
                self.rows_delivered += len(batch)
                self.batches_delivered += 1
                record_rows_streamed(len(batch))
                yield batch
            self.completed = True
        except GatewayError as exc:
            self.error = exc
            raise
        finally:
            self.close()

    def close(self) -> None:
        """Idempotent: close the cursor and run on_close once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._started = True
        self._finalizer.detach()
        _release_stream(self._cursor, self._on_close)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "RowStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
