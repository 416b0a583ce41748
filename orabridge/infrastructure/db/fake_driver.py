"""
===============================================================================
CRC CARD — infrastructure/db/fake_driver.py
===============================================================================

Component:
  In-process fake of the Oracle driver (FAKE_DB=1, CI, unit tests)

Responsibilities:
  - Expose the subset of the python-oracledb connection/cursor API the
    gateway uses (cursor/execute/fetchmany/description/commit/rollback/
    ping/cancel/close/call_timeout).
  - Answer `SELECT 1 FROM DUAL` and any registered statement.
  - Simulate latency, cancellation, call timeouts, unreachable listeners and
    dead sessions, raising errors that carry Oracle-style codes.

Collaborators:
  - infrastructure/db/oracle.py (connection factory + error translation)

Notes:
  - Statements are matched after whitespace collapse, upper-casing and
    stripping a trailing ';'.
  - Connections created with `supports_cancel=False` have no `cancel`
    attribute at all, like drivers without cancellation support.
===============================================================================
"""

from __future__ import annotations

import itertools
import re
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

Row = Tuple[Any, ...]
Handler = Callable[[str, Any], Tuple[Optional[List[str]], List[Row]]]


class FakeDriverError(Exception):
    """Driver error carrying an Oracle-style code (ORA-xxxxx / DPY-xxxx)."""

    def __init__(self, full_code: str, message: str):
        self.full_code = full_code
        self.message = message
        super().__init__(f"{full_code}: {message}")


def normalize_sql(sql: str) -> str:
    return re.sub(r"\s+", " ", sql.strip().rstrip(";").strip()).upper()


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._rows: Iterator[Row] = iter(())
        self.description: Optional[List[tuple]] = None
        self.rowcount = 0
        self.arraysize = 100

    def execute(self, sql: str, params: Any = None) -> "FakeCursor":
        columns, rows = self._conn._run(sql, params)
        if columns is None:
            self.description = None
            self.rowcount = len(rows) or 1
            self._rows = iter(())
        else:
            self.description = [(c, None, None, None, None, None, None) for c in columns]
            self.rowcount = 0
            self._rows = iter(list(rows))
        return self

    def fetchmany(self, size: Optional[int] = None) -> List[Row]:
        self._conn._check_open()
        n = size or self.arraysize
        batch = list(itertools.islice(self._rows, n))
        self.rowcount += len(batch)
        return batch

    def fetchone(self) -> Optional[Row]:
        batch = self.fetchmany(1)
        return batch[0] if batch else None

    def fetchall(self) -> List[Row]:
        self._conn._check_open()
        rows = list(self._rows)
        self.rowcount += len(rows)
        return rows

    def close(self) -> None:
        self._rows = iter(())

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class FakeConnection:
    """One fake session. Thread-compatible (one caller at a time, like the pool lends it)."""

    def __init__(self, db: "FakeDatabase", session_id: int) -> None:
        self._db = db
        self.session_id = session_id
        self.call_timeout = 0
        self.closed = False
        self.commits = 0
        self.rollbacks = 0
        self._cancel_event = threading.Event()

    def cursor(self) -> FakeCursor:
        self._check_open()
        return FakeCursor(self)

    def commit(self) -> None:
        self._check_open()
        self.commits += 1

    def rollback(self) -> None:
        self._check_open()
        self.rollbacks += 1

    def ping(self) -> None:
        self._check_open()
        if not self._db.healthy:
            raise FakeDriverError("DPY-4011", "the database or network closed the connection")

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._db._on_close()

    def _check_open(self) -> None:
        if self.closed:
            raise FakeDriverError("DPY-1001", "not connected to database")

    def _run(self, sql: str, params: Any) -> Tuple[Optional[List[str]], List[Row]]:
        self._check_open()
        self._cancel_event.clear()
        key = normalize_sql(sql)
        self._db._record(sql, params)

        latency = self._db.latency_for(key)
        if latency > 0:
            budget = self.call_timeout / 1000.0 if self.call_timeout else None
            wait_for = latency if budget is None else min(latency, budget)
            if self._cancel_event.wait(wait_for):
                raise FakeDriverError("ORA-01013", "user requested cancel of current operation")
            if budget is not None and latency > budget:
                raise FakeDriverError(
                    "DPY-4024", f"call timeout of {self.call_timeout} ms exceeded"
                )

        if not self._db.healthy:
            raise FakeDriverError("ORA-03113", "end-of-file on communication channel")

        return self._db.resolve(key, sql, params)


class CancellableFakeConnection(FakeConnection):
    def cancel(self) -> None:
        self._cancel_event.set()


class FakeDatabase:
    """
    In-process stand-in for an Oracle instance.

    Usage:
        db = FakeDatabase()
        db.register_result("SELECT id FROM t", ["ID"], [(1,), (2,)])
        conn = db.connect()
    """

    def __init__(self, *, latency_seconds: float = 0.0, supports_cancel: bool = True):
        self._lock = threading.Lock()
        self._session_ids = itertools.count(1)
        self._results: Dict[str, Tuple[Optional[List[str]], List[Row]]] = {
            "SELECT 1 FROM DUAL": (["1"], [(1,)]),
        }
        self._errors: Dict[str, FakeDriverError] = {}
        self._latency: Dict[str, float] = {}
        self._handlers: List[Tuple[str, Handler]] = []
        self.latency_seconds = latency_seconds
        self.supports_cancel = supports_cancel
        self.reachable = True
        self.healthy = True
        self.connect_failures = 0
        self.connect_attempts = 0
        self.opened = 0
        self.closed = 0
        self.executed: List[Tuple[str, Any]] = []

    # -- scripting ---------------------------------------------------------

    def register_result(
        self, sql: str, columns: Optional[Sequence[str]], rows: Sequence[Row]
    ) -> None:
        cols = list(columns) if columns is not None else None
        with self._lock:
            self._results[normalize_sql(sql)] = (cols, [tuple(r) for r in rows])

    def register_error(self, sql: str, full_code: str, message: str) -> None:
        with self._lock:
            self._errors[normalize_sql(sql)] = FakeDriverError(full_code, message)

    def register_handler(self, prefix: str, handler: Handler) -> None:
        """Route statements starting with `prefix` to a callable."""
        with self._lock:
            self._handlers.append((normalize_sql(prefix), handler))

    def set_latency(self, seconds: float, sql: Optional[str] = None) -> None:
        with self._lock:
            if sql is None:
                self.latency_seconds = seconds
            else:
                self._latency[normalize_sql(sql)] = seconds

    # -- driver surface ----------------------------------------------------

    def connect(self) -> FakeConnection:
        with self._lock:
            self.connect_attempts += 1
            if not self.reachable:
                raise FakeDriverError("ORA-12541", "TNS:no listener")
            if self.connect_failures > 0:
                self.connect_failures -= 1
                raise FakeDriverError("ORA-12170", "TNS:Connect timeout occurred")
            self.opened += 1
            session_id = next(self._session_ids)
        cls = CancellableFakeConnection if self.supports_cancel else FakeConnection
        return cls(self, session_id)

    @property
    def open_sessions(self) -> int:
        with self._lock:
            return self.opened - self.closed

    # -- internals ---------------------------------------------------------

    def latency_for(self, key: str) -> float:
        with self._lock:
            return self._latency.get(key, self.latency_seconds)

    def resolve(self, key: str, sql: str, params: Any):
        with self._lock:
            error = self._errors.get(key)
            result = self._results.get(key)
            handler = next((h for p, h in self._handlers if key.startswith(p)), None)
        if error is not None:
            raise error
        if result is not None:
            return result
        if handler is not None:
            return handler(sql, params)
        if key.startswith(("SELECT", "WITH")):
            raise FakeDriverError("ORA-00942", "table or view does not exist")
        # DML / DDL: accepted, no result set.
        return None, []

    def _record(self, sql: str, params: Any) -> None:
        with self._lock:
            self.executed.append((sql, params))

    def _on_close(self) -> None:
        with self._lock:
            self.closed += 1


_default_db: Optional[FakeDatabase] = None
_default_lock = threading.Lock()


def get_fake_database() -> FakeDatabase:
    """Process-wide fake instance used when FAKE_DB is enabled."""
    global _default_db
    with _default_lock:
        if _default_db is None:
            _default_db = FakeDatabase()
        return _default_db
