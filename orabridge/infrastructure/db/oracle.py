"""
===============================================================================
CRC CARD — infrastructure/db/oracle.py
===============================================================================

Component:
  Oracle driver adapter (connection factory + error translation)

Responsibilities:
  - Build the zero-arg connection factory the pool calls (python-oracledb
    thin mode, or the in-process fake when FAKE_DB=1).
  - Apply per-session settings (call_timeout guardrail).
  - Translate driver errors into the gateway taxonomy:
      connectivity codes   -> ConnectivityError
      cancel / call timeout -> ExecutionTimeout
      everything else      -> DatabaseError(db_code=...)

Collaborators:
  - oracledb
  - infrastructure/db/fake_driver.py
  - crosscutting.exceptions

Constraints:
  - Never log or embed the password.
===============================================================================
"""

from __future__ import annotations

import re
from typing import Any, Callable, Optional

import oracledb

from ...crosscutting.exceptions import (
    ConnectivityError,
    DatabaseError,
    ExecutionTimeout,
    GatewayError,
    ValidationRejected,
)
from ...crosscutting.logger import logger
from .fake_driver import FakeDatabase, FakeDriverError

# R: Codes meaning "the database/network is not reachable right now".
CONNECTIVITY_CODES: frozenset[str] = frozenset(
    {
        "ORA-03113",  # end-of-file on communication channel
        "ORA-03114",  # not connected to ORACLE
        "ORA-03135",  # connection lost contact
        "ORA-12170",  # connect timeout
        "ORA-12514",  # listener does not know of service
        "ORA-12541",  # no listener
        "ORA-12543",  # destination host unreachable
        "DPI-1080",  # connection was closed by ORA-%d
        "DPY-1001",  # not connected to database
        "DPY-4011",  # database or network closed the connection
        "DPY-6005",  # cannot connect to database
    }
)

# R: Codes meaning "the call was interrupted by a deadline".
TIMEOUT_CODES: frozenset[str] = frozenset(
    {
        "ORA-01013",  # user requested cancel of current operation
        "DPY-4024",  # call timeout exceeded
        "DPI-1067",  # call timeout exceeded (thick mode)
    }
)

DRIVER_ERRORS: tuple[type[BaseException], ...] = (oracledb.Error, FakeDriverError)

_CODE_RE = re.compile(r"\b((?:ORA|DPY|DPI)-\d{4,5})\b")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_$#]{0,127}$")


def validate_identifier(name: str, *, allow_schema: bool = False) -> str:
    """R: Upper-cased SQL identifier (optionally SCHEMA.NAME), or ValidationRejected."""
    parts = name.strip().split(".") if allow_schema else [name.strip()]
    if len(parts) > 2 or not all(_IDENTIFIER_RE.match(p) for p in parts):
        raise ValidationRejected(f"invalid identifier '{name}'", rule="invalid_identifier")
    return ".".join(p.upper() for p in parts)


def driver_error_code(exc: BaseException) -> Optional[str]:
    """R: Extract the ORA-/DPY-/DPI- code from a driver exception (best-effort)."""
    code = getattr(exc, "full_code", None)
    if isinstance(code, str) and code:
        return code

    # R: python-oracledb puts an _Error object with `full_code` in args[0].
    if exc.args:
        inner = exc.args[0]
        code = getattr(inner, "full_code", None)
        if isinstance(code, str) and code:
            return code

    match = _CODE_RE.search(str(exc))
    return match.group(1) if match else None


def _driver_message(exc: BaseException) -> str:
    if exc.args:
        inner = exc.args[0]
        message = getattr(inner, "message", None)
        if isinstance(message, str) and message:
            return message
    message = getattr(exc, "message", None)
    return message if isinstance(message, str) and message else str(exc)


def translate_driver_error(exc: BaseException) -> GatewayError:
    """R: Map a driver exception to the gateway taxonomy (idempotent for GatewayError)."""
    if isinstance(exc, GatewayError):
        return exc

    code = driver_error_code(exc)
    if code in CONNECTIVITY_CODES:
        return ConnectivityError(f"Database unreachable ({code})", original_error=exc)
    if code in TIMEOUT_CODES:
        return ExecutionTimeout(
            f"Database call interrupted by deadline ({code})", original_error=exc
        )
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ConnectivityError("Database unreachable", original_error=exc)

    message = _driver_message(exc)
    if code and not message.startswith(code):
        message = f"{code}: {message}"
    return DatabaseError(message, db_code=code, original_error=exc)


def create_connection_factory(
    *,
    dsn: str,
    user: str,
    password: str,
    call_timeout_ms: int = 0,
    fake_db: FakeDatabase | None = None,
) -> Callable[[], Any]:
    """
    R: Zero-arg callable that opens one session.

    Raises:
      ValueError: if the real driver is requested without a DSN.
    """
    if fake_db is not None:

        def _connect_fake():
            conn = fake_db.connect()
            if call_timeout_ms > 0:
                conn.call_timeout = call_timeout_ms
            return conn

        return _connect_fake

    if not dsn:
        raise ValueError("ORACLE_DSN is required when FAKE_DB is disabled")

    # R: CLOB columns come back as str, never as LOB locators
    oracledb.defaults.fetch_lobs = False

    def _connect():
        conn = oracledb.connect(user=user, password=password, dsn=dsn)
        if call_timeout_ms > 0:
            conn.call_timeout = call_timeout_ms
        return conn

    logger.info(
        "Oracle connection factory ready",
        extra={"dsn": dsn, "user": user, "call_timeout_ms": call_timeout_ms},
    )
    return _connect
