"""
===============================================================================
CRC CARD — infrastructure/db/instrumentation.py
===============================================================================

Classes:
  - TimedCursor (Proxy)
  - TimedConnection (Proxy)

Responsibilities:
  - Measure cursor.execute(...) duration without touching callers.
  - Log slow statements (low cardinality: statement kind only).

Collaborators:
  - crosscutting.logger
  - crosscutting.metrics.observe_db_query_duration
===============================================================================
"""

from __future__ import annotations

import time
from typing import Any

from ...crosscutting.logger import logger
from ...crosscutting.metrics import observe_db_query_duration


def statement_kind(sql: Any) -> str:
    """
    First keyword of the statement, for logs/metrics (low cardinality).
    """
    words = str(sql or "").lstrip().lstrip("(").split(None, 1)
    if not words:
        return "UNKNOWN"
    kind = words[0].upper()
    return kind if kind.isalpha() else "UNKNOWN"


class TimedCursor:
    """
    Cursor proxy: wraps execute() to time it.

    Everything else is delegated to the driver cursor via __getattr__.
    """

    def __init__(self, inner_cursor, *, slow_query_seconds: float) -> None:
        self._cursor = inner_cursor
        self._slow = slow_query_seconds

    def execute(self, sql, *args, **kwargs):
        start = time.perf_counter()
        try:
            return self._cursor.execute(sql, *args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start
            kind = statement_kind(sql)
            observe_db_query_duration(kind, elapsed)
            if elapsed >= self._slow:
                logger.warning(
                    "slow DB statement",
                    extra={"kind": kind, "seconds": round(elapsed, 4)},
                )

    @property
    def arraysize(self) -> int:
        return self._cursor.arraysize

    @arraysize.setter
    def arraysize(self, value: int) -> None:
        self._cursor.arraysize = value

    def __iter__(self):
        return iter(self._cursor)

    def __enter__(self) -> "TimedCursor":
        return self

    def __exit__(self, *exc) -> None:
        self._cursor.close()

    def __getattr__(self, item: str):
        return getattr(self._cursor, item)


class TimedConnection:
    """
    Connection proxy: every cursor it hands out is a TimedCursor.

    Important:
      - Delegates EVERYTHING else to the driver connection (__getattr__).
    """

    def __init__(self, inner_conn, *, slow_query_seconds: float) -> None:
        self._conn = inner_conn
        self._slow = slow_query_seconds

    @property
    def raw(self):
        return self._conn

    def cursor(self, *args, **kwargs) -> TimedCursor:
        return TimedCursor(
            self._conn.cursor(*args, **kwargs), slow_query_seconds=self._slow
        )

    def __getattr__(self, item: str):
        return getattr(self._conn, item)
