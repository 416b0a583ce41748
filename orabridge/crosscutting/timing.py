"""
===============================================================================
MODULE: Timing utilities (Timer + Deadline)
===============================================================================

Goal
----
Simple, precise time measurement and deadline propagation:
- Timer (statement and health check latency)
- Deadline (absolute monotonic instant shared by acquire + execute)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Components:
  - Timer
  - Deadline

Responsibilities:
  - Measure elapsed time with perf_counter
  - Expose remaining budget for pool waits and statement execution
===============================================================================
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Timer:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      Timer

    Responsibilities:
      - Measure statement and health check latency with perf_counter
      - Support manual use and context-manager use

    Collaborators:
      - QueryExecutor.execute (QueryResult.elapsed_ms)
      - HealthReporter._probe (DependencyHealth.latency_ms)
    ----------------------------------------------------------------------------
    """

    _start_time: Optional[float] = field(default=None, repr=False)
    _end_time: Optional[float] = field(default=None, repr=False)

    def start(self) -> "Timer":
        self._start_time = time.perf_counter()
        self._end_time = None
        return self

    def stop(self) -> "Timer":
        if self._start_time is None:
            raise RuntimeError("Timer not started")
        self._end_time = time.perf_counter()
        return self

    @property
    def elapsed_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        end = self._end_time or time.perf_counter()
        return end - self._start_time

    @property
    def elapsed_ms(self) -> float:
        return round(self.elapsed_seconds * 1000, 2)

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, *args) -> None:
        self.stop()


@dataclass(frozen=True)
class Deadline:
    """Absolute point on the monotonic clock after which work must stop."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + max(0.0, seconds))

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def bound(self, timeout: float | None) -> float:
        """The smaller of `timeout` and the remaining budget."""
        remaining = self.remaining()
        if timeout is None:
            return remaining
        return min(timeout, remaining)
