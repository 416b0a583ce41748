"""
===============================================================================
MODULE: Health Reporter
===============================================================================

Goal
----
`check() -> HealthSnapshot` that NEVER blocks longer than a fixed timeout and
never raises:
- probe: obtain one pooled connection (bounded) and run SELECT 1 FROM DUAL
- healthy   : probe succeeded under the latency threshold
- degraded  : probe slow, timed out, pool exhausted, or a previous probe is
              still stuck
- unhealthy : database unreachable or the pool is unavailable

The probe runs on a single dedicated worker thread; a hung probe is never
waited on past the timeout and later checks do not pile up behind it.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  HealthReporter

Collaborators:
  - infrastructure/db/pool.ConnectionPool (via a provider callable)
  - crosscutting.metrics.set_health_status
===============================================================================
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Callable, Optional

from ..crosscutting.exceptions import (
    ConnectivityError,
    ExecutionTimeout,
    GatewayError,
    PoolExhausted,
)
from ..crosscutting.logger import logger
from ..crosscutting.metrics import set_health_status
from ..crosscutting.timing import Deadline, Timer
from ..domain.entities import DependencyHealth, HealthSnapshot, HealthStatus
from ..infrastructure.db.errors import DatabasePoolError
from ..infrastructure.db.oracle import DRIVER_ERRORS, translate_driver_error
from ..infrastructure.db.pool import ConnectionPool

PROBE_SQL = "SELECT 1 FROM DUAL"


class HealthReporter:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      HealthReporter

    Responsibilities:
      - Run a bounded liveness probe against the pool
      - Aggregate the result into a HealthSnapshot (not persisted)

    Collaborators:
      - ConnectionPool
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        pool_provider: Callable[[], ConnectionPool],
        *,
        timeout_seconds: float = 3.0,
        degraded_latency_ms: float = 1000.0,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._pool_provider = pool_provider
        self._timeout = timeout_seconds
        self._degraded_latency_ms = degraded_latency_ms
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="orabridge-health"
        )
        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None

    def check(self) -> HealthSnapshot:
        with self._lock:
            if self._inflight is not None and not self._inflight.done():
                return self._snapshot(
                    DependencyHealth(
                        HealthStatus.DEGRADED, detail="previous probe still running"
                    )
                )
            future = self._executor.submit(self._probe)
            self._inflight = future

        try:
            latency_ms = future.result(timeout=self._timeout)
        except FutureTimeout:
            dep = DependencyHealth(HealthStatus.DEGRADED, detail="probe timed out")
        except PoolExhausted:
            dep = DependencyHealth(HealthStatus.DEGRADED, detail="pool exhausted")
        except ExecutionTimeout:
            dep = DependencyHealth(HealthStatus.DEGRADED, detail="probe timed out")
        except ConnectivityError as exc:
            dep = DependencyHealth(HealthStatus.UNHEALTHY, detail=exc.message)
        except DatabasePoolError as exc:
            dep = DependencyHealth(HealthStatus.UNHEALTHY, detail=str(exc))
        except GatewayError as exc:
            dep = DependencyHealth(HealthStatus.UNHEALTHY, detail=exc.error_code)
        except Exception:
            logger.exception("health probe crashed")
            dep = DependencyHealth(HealthStatus.UNHEALTHY, detail="probe error")
        else:
            status = (
                HealthStatus.DEGRADED
                if latency_ms > self._degraded_latency_ms
                else HealthStatus.HEALTHY
            )
            dep = DependencyHealth(status, latency_ms=latency_ms)

        return self._snapshot(dep)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------

    def _probe(self) -> float:
        pool = self._pool_provider()
        timer = Timer().start()
        # R: leave headroom so connect retries finish before check() gives up
        deadline = Deadline.after(self._timeout * 0.8)
        with pool.connection(deadline.remaining(), deadline=deadline) as conn:
            try:
                cursor = conn.cursor()
                try:
                    cursor.execute(PROBE_SQL)
                    cursor.fetchone()
                finally:
                    cursor.close()
            except DRIVER_ERRORS as exc:
                error = translate_driver_error(exc)
                if isinstance(error, ConnectivityError):
                    conn.mark_unusable("health probe lost connectivity")
                raise error from exc
        return timer.stop().elapsed_ms

    @staticmethod
    def _snapshot(dep: DependencyHealth) -> HealthSnapshot:
        set_health_status(dep.status.value)
        if dep.status != HealthStatus.HEALTHY:
            logger.warning(
                "health check not healthy",
                extra={"status": dep.status.value, "detail": dep.detail},
            )
        return HealthSnapshot(
            timestamp=datetime.now(timezone.utc),
            status=dep.status,
            checks={"oracle": dep},
        )
