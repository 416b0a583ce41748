"""
===============================================================================
CRC CARD — infrastructure/db/pool.py
===============================================================================

Component:
  Bounded Oracle connection pool (+ process-wide singleton)

Responsibilities:
  - Lend each connection to exactly one caller until it is released.
  - Never exceed max_size: busy + idle + in-transit <= max_size.
  - Grow on demand by `increment` connections; warm up `min_size` eagerly.
  - Bound acquire waits (PoolExhausted) and honour caller deadlines.
  - Retry unreachable databases with exponential backoff up to a deadline,
    then fail with ConnectivityError.
  - Probe connections on release; discard and replace the dead/unusable.
  - Publish busy/idle gauges, acquire wait and discard metrics.

Collaborators:
  - infrastructure/db/oracle.py (connection factory, error translation)
  - infrastructure/db/instrumentation.TimedConnection
  - infrastructure/services/retry.create_connect_retrying
  - crosscutting.metrics / crosscutting.logger

Principles:
  - Single coordination point: every mutation of idle/busy/in-transit happens
    under one threading.Condition; network IO never happens while holding it.
  - Fail-fast on misuse (double init, use without init, double release).
===============================================================================
"""

from __future__ import annotations

import itertools
import threading
import time
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterator, Optional

from ...crosscutting.exceptions import ConnectivityError, GatewayError, PoolExhausted
from ...crosscutting.logger import logger
from ...crosscutting.metrics import (
    observe_pool_acquire_wait,
    record_pool_discard,
    record_pool_exhausted,
    set_pool_gauges,
)
from ...crosscutting.timing import Deadline
from ...domain.entities import PoolStats
from ..services.retry import create_connect_retrying
from .errors import (
    ConnectionReleaseError,
    PoolAlreadyInitializedError,
    PoolClosedError,
    PoolNotInitializedError,
)
from .instrumentation import TimedConnection
from .oracle import DRIVER_ERRORS, translate_driver_error


class PooledConnection:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      PooledConnection

    Responsibilities:
      - Wrap one driver session owned by the pool
      - Track identifier, acquisition timestamp and busy/idle state
      - Carry the "unusable" flag set by the executor after a timeout

    Collaborators:
      - ConnectionPool
      - TimedConnection (instrumented access)
    ----------------------------------------------------------------------------
    """

    def __init__(self, raw: Any, *, conn_id: int, slow_query_seconds: float) -> None:
        self.id = conn_id
        self.raw = raw
        self.connection = TimedConnection(raw, slow_query_seconds=slow_query_seconds)
        self.created_at = datetime.now(timezone.utc)
        self.acquired_at: Optional[datetime] = None
        self.in_use = False
        self.unusable = False
        self.unusable_reason: Optional[str] = None

    @property
    def supports_cancel(self) -> bool:
        return callable(getattr(self.raw, "cancel", None))

    def cursor(self, *args, **kwargs):
        return self.connection.cursor(*args, **kwargs)

    def commit(self) -> None:
        self.raw.commit()

    def rollback(self) -> None:
        self.raw.rollback()

    def cancel(self) -> None:
        self.raw.cancel()

    def mark_unusable(self, reason: str) -> None:
        """The pool discards this connection on release instead of reusing it."""
        self.unusable = True
        self.unusable_reason = reason

    def __repr__(self) -> str:
        state = "busy" if self.in_use else "idle"
        return f"PooledConnection(id={self.id}, state={state})"


class ConnectionPool:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      ConnectionPool

    Responsibilities:
      - acquire(): lend an idle connection, grow, or wait (bounded)
      - release(): probe and return to idle, or discard and replace
      - warm_up(): open min_size connections at startup
      - stats()/close()

    Collaborators:
      - connect callable (oracle.create_connection_factory)
      - tenacity Retrying (connect backoff)
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        connect: Callable[[], Any],
        *,
        min_size: int = 2,
        max_size: int = 10,
        increment: int = 1,
        acquire_timeout: float = 5.0,
        connect_deadline: float = 30.0,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        probe_on_release: bool = True,
        slow_query_seconds: float = 0.25,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        if min_size < 0 or min_size > max_size:
            raise ValueError("min_size must be between 0 and max_size")
        if increment <= 0:
            raise ValueError("increment must be > 0")
        if acquire_timeout < 0:
            raise ValueError("acquire_timeout must be >= 0")

        self._connect = connect
        self.min_size = min_size
        self.max_size = max_size
        self.increment = increment
        self._acquire_timeout = acquire_timeout
        self._connect_deadline = connect_deadline
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._probe_on_release = probe_on_release
        self._slow_query_seconds = slow_query_seconds

        self._cond = threading.Condition()
        self._idle: Deque[PooledConnection] = deque()
        self._busy: Dict[int, PooledConnection] = {}
        # R: connections being opened or probed (counted against max_size)
        self._in_transit = 0
        self._closed = False
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def acquire(
        self,
        timeout: Optional[float] = None,
        *,
        deadline: Optional[Deadline] = None,
    ) -> PooledConnection:
        """
        Lend a connection.

        Raises:
          PoolExhausted: nothing became available within the wait bound.
          ConnectivityError: the database stayed unreachable until the
            connect deadline.
          PoolClosedError: the pool was closed.
        """
        wait_bound = self._acquire_timeout if timeout is None else max(0.0, timeout)
        if deadline is not None:
            wait_bound = deadline.bound(wait_bound)

        started = time.monotonic()
        give_up_at = started + wait_bound
        to_open = 0

        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError("Connection pool is closed")

                if self._idle:
                    conn = self._idle.pop()
                    self._lend(conn)
                    self._publish_gauges()
                    observe_pool_acquire_wait(time.monotonic() - started)
                    return conn

                capacity = self.max_size - self._total_locked()
                if capacity > 0:
                    to_open = min(self.increment, capacity)
                    self._in_transit += to_open
                    break

                remaining = give_up_at - time.monotonic()
                if remaining <= 0:
                    record_pool_exhausted()
                    logger.warning(
                        "connection pool exhausted",
                        extra={
                            "max_size": self.max_size,
                            "busy": len(self._busy),
                            "wait_seconds": round(wait_bound, 3),
                        },
                    )
                    raise PoolExhausted(
                        f"No connection available within {wait_bound:.2f}s "
                        f"(pool max {self.max_size})"
                    )
                self._cond.wait(remaining)

        # R: Growth path, outside the lock. First connection goes to the caller.
        budget = self._connect_deadline
        if deadline is not None:
            budget = max(0.001, deadline.bound(budget))
        try:
            conn = self._open_with_retry(budget)
        except BaseException:
            with self._cond:
                self._in_transit -= to_open
                self._cond.notify_all()
            raise

        with self._cond:
            self._in_transit -= 1
            if self._closed:
                self._in_transit -= to_open - 1
                self._cond.notify_all()
                self._close_quietly(conn, reason="closed")
                raise PoolClosedError("Connection pool is closed")
            self._lend(conn)
            self._publish_gauges()

        if to_open > 1:
            threading.Thread(
                target=self._grow_idle,
                args=(to_open - 1,),
                name="orabridge-pool-grow",
                daemon=True,
            ).start()

        observe_pool_acquire_wait(time.monotonic() - started)
        return conn

    def release(self, conn: PooledConnection) -> None:
        """
        Return a borrowed connection.

        Healthy connections go back to idle; connections marked unusable or
        failing the liveness probe are discarded and replaced.
        """
        with self._cond:
            if self._busy.get(conn.id) is not conn:
                raise ConnectionReleaseError(
                    f"Connection {conn.id} is not lent by this pool (double release?)"
                )
            del self._busy[conn.id]
            conn.in_use = False
            conn.acquired_at = None
            self._in_transit += 1
            closed = self._closed

        if closed:
            try:
                self._close_quietly(conn, reason="closed")
            finally:
                self._finish_transit()
            return

        try:
            reason = self._check_returned(conn)
        except BaseException:
            # R: a check that blows up still frees the slot it was holding
            try:
                self._close_quietly(conn, reason="check_error")
            finally:
                self._finish_transit()
            raise
        if reason is None:
            with self._cond:
                self._in_transit -= 1
                if self._closed:
                    closing = True
                else:
                    closing = False
                    self._idle.append(conn)
                self._publish_gauges()
                self._cond.notify()
            if closing:
                self._close_quietly(conn, reason="closed")
            return

        logger.warning(
            "discarding pooled connection",
            extra={"conn_id": conn.id, "reason": reason},
        )
        record_pool_discard(reason)
        try:
            self._close_quietly(conn, reason=reason)
        except BaseException:
            self._finish_transit()
            raise
        self._replace()

    @contextmanager
    def connection(
        self,
        timeout: Optional[float] = None,
        *,
        deadline: Optional[Deadline] = None,
    ) -> Iterator[PooledConnection]:
        """`with pool.connection() as conn:` acquire/release pair."""
        conn = self.acquire(timeout, deadline=deadline)
        try:
            yield conn
        finally:
            self.release(conn)

    def warm_up(self) -> int:
        """
        Eagerly open connections up to min_size.

        Returns the number of connections opened.
        Raises ConnectivityError if the database stays unreachable.
        """
        with self._cond:
            if self._closed:
                raise PoolClosedError("Connection pool is closed")
            missing = max(0, self.min_size - self._total_locked())
            self._in_transit += missing

        opened = 0
        try:
            for _ in range(missing):
                conn = self._open_with_retry(self._connect_deadline)
                with self._cond:
                    self._in_transit -= 1
                    self._idle.append(conn)
                    self._publish_gauges()
                    self._cond.notify()
                opened += 1
        finally:
            leftover = missing - opened
            if leftover:
                with self._cond:
                    self._in_transit -= leftover
                    self._cond.notify_all()

        logger.info(
            "connection pool warmed up",
            extra={"opened": opened, "min_size": self.min_size, "max_size": self.max_size},
        )
        return opened

    def stats(self) -> PoolStats:
        with self._cond:
            return PoolStats(
                min_size=self.min_size,
                max_size=self.max_size,
                busy=len(self._busy),
                idle=len(self._idle),
                opening=self._in_transit,
            )

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close idle connections now; busy ones are closed when released."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._publish_gauges()
            self._cond.notify_all()

        for conn in idle:
            self._close_quietly(conn, reason="closed")
        logger.info("connection pool closed", extra={"closed_idle": len(idle)})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _total_locked(self) -> int:
        return len(self._busy) + len(self._idle) + self._in_transit

    def _lend(self, conn: PooledConnection) -> None:
        conn.in_use = True
        conn.acquired_at = datetime.now(timezone.utc)
        self._busy[conn.id] = conn

    def _publish_gauges(self) -> None:
        set_pool_gauges(busy=len(self._busy), idle=len(self._idle))

    def _finish_transit(self) -> None:
        with self._cond:
            self._in_transit -= 1
            self._publish_gauges()
            self._cond.notify()

    def _open_once(self) -> PooledConnection:
        try:
            raw = self._connect()
        except DRIVER_ERRORS as exc:
            raise translate_driver_error(exc) from exc
        except OSError as exc:
            raise ConnectivityError("Database unreachable", original_error=exc) from exc
        return PooledConnection(
            raw, conn_id=next(self._ids), slow_query_seconds=self._slow_query_seconds
        )

    def _open_with_retry(self, budget: float) -> PooledConnection:
        retrying = create_connect_retrying(
            budget, base_delay=self._backoff_base, max_delay=self._backoff_max
        )
        try:
            return retrying(self._open_once)
        except ConnectivityError:
            logger.error(
                "database unreachable, giving up",
                extra={"deadline_seconds": round(budget, 3)},
            )
            raise

    def _grow_idle(self, count: int) -> None:
        for _ in range(count):
            try:
                conn = self._open_once()
            except GatewayError as exc:
                logger.warning("pool growth failed", extra={"error": str(exc)})
                with self._cond:
                    self._in_transit -= 1
                    self._cond.notify_all()
                continue
            except BaseException:
                with self._cond:
                    self._in_transit -= 1
                    self._cond.notify_all()
                raise
            with self._cond:
                self._in_transit -= 1
                if self._closed:
                    closing = True
                else:
                    closing = False
                    self._idle.append(conn)
                    self._publish_gauges()
                self._cond.notify()
            if closing:
                self._close_quietly(conn, reason="closed")

    def _check_returned(self, conn: PooledConnection) -> Optional[str]:
        """Discard reason, or None if the connection can be reused."""
        if conn.unusable:
            return "unusable"
        try:
            # R: clear any transaction left open by the previous borrower
            conn.raw.rollback()
            if self._probe_on_release:
                conn.raw.ping()
        except DRIVER_ERRORS as exc:
            logger.info(
                "liveness probe failed",
                extra={"conn_id": conn.id, "error": str(translate_driver_error(exc))},
            )
            return "probe_failed"
        return None

    def _replace(self) -> None:
        """Open one replacement (single attempt) in the slot of a discarded connection."""
        try:
            conn = self._open_once()
        except GatewayError as exc:
            logger.warning("replacement connection failed", extra={"error": str(exc)})
            self._finish_transit()
            return
        except BaseException:
            self._finish_transit()
            raise

        with self._cond:
            self._in_transit -= 1
            if self._closed:
                closing = True
            else:
                closing = False
                self._idle.append(conn)
            self._publish_gauges()
            self._cond.notify()
        if closing:
            self._close_quietly(conn, reason="closed")

    @staticmethod
    def _close_quietly(conn: PooledConnection, *, reason: str) -> None:
        try:
            conn.raw.close()
        except DRIVER_ERRORS as exc:
            logger.debug(
                "error closing connection",
                extra={"conn_id": conn.id, "reason": reason, "error": str(exc)},
            )


# -----------------------------------------------------------------------------
# Process-wide singleton
# -----------------------------------------------------------------------------

_pool: Optional[ConnectionPool] = None
_pool_lock = threading.Lock()


def init_pool(connect: Callable[[], Any], **options: Any) -> ConnectionPool:
    """
    Initialize the pool (once per process). Does not open connections;
    call warm_up() for that.
    """
    global _pool

    with _pool_lock:
        if _pool is not None:
            raise PoolAlreadyInitializedError("The pool is already initialized.")

        _pool = ConnectionPool(connect, **options)
        logger.info(
            "DB pool initialized",
            extra={
                "min_size": _pool.min_size,
                "max_size": _pool.max_size,
                "increment": _pool.increment,
            },
        )
        return _pool


def get_pool() -> ConnectionPool:
    if _pool is None:
        raise PoolNotInitializedError("Pool not initialized. Call init_pool() first.")
    return _pool


def close_pool() -> None:
    """Close the pool (idempotent)."""
    global _pool

    with _pool_lock:
        if _pool is not None:
            logger.info("Closing DB pool")
            try:
                _pool.close()
            finally:
                _pool = None


def reset_pool() -> None:
    """Drop the singleton (tests)."""
    global _pool

    with _pool_lock:
        if _pool is not None and not _pool.closed:
            _pool.close()
        _pool = None
