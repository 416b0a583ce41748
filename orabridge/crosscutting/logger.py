"""
===============================================================================
MODULE: Gateway log stream (one JSON object per line)
===============================================================================

Goal
----
Every line the gateway or the sync worker writes can be shipped to
Log Analytics as-is and joined on request_id. Lines never carry Oracle
credentials or the values bound to a statement, and a failing statement
exposes its ORA-/DPY- code as its own field so dashboards can group on it.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  _LogScrubber + JSONFormatter + setup_logger()

Responsibilities:
  - Merge the request context (request_id, caller, method, path)
  - Scrub secrets, bind values and credentials inside DSN strings
  - Lift the driver error code out of the `error` extra (`ora_code`)

Collaborators:
  - orabridge/context.py (ContextVars)
  - crosscutting/config.py (LOG_LEVEL / LOG_JSON)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

# R: attributes every LogRecord has; anything else arrived through `extra=`
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_DRIVER_CODE = re.compile(r"\b(?:ORA|DPY)-\d{4,5}\b")
# user/password@host:port/service
_DSN_CREDENTIALS = re.compile(r"(?P<user>[A-Za-z0-9_$#.]+)/(?P<password>[^\s/@]+)@(?=\S)")


class _LogScrubber:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      _LogScrubber

    Responsibilities:
      - Replace values under secret-looking keys
      - Summarize bind values as a count, never their content
      - Cut passwords out of Easy Connect strings
      - Bound the size and depth of what gets serialized
    ----------------------------------------------------------------------------
    """

    SECRET_KEYS = frozenset(
        {
            "password",
            "passwd",
            "oracle_password",
            "secret",
            "client_secret",
            "token",
            "access_token",
            "authorization",
            "api_key",
            "private_key",
            "credential",
            "connection_string",
        }
    )
    BIND_KEYS = frozenset({"params", "binds", "bind_values"})

    def __init__(self, max_str: int = 8_000, max_depth: int = 4):
        self._max_str = max_str
        self._max_depth = max_depth

    def scrub(self, value: Any, *, key: str | None = None, depth: int = 0) -> Any:
        lowered = key.lower() if key else ""
        if lowered in self.SECRET_KEYS:
            return "***REDACTED***"
        if lowered in self.BIND_KEYS:
            return self._bind_summary(value)
        if depth > self._max_depth:
            return "***TRUNCATED***"

        if isinstance(value, str):
            value = _DSN_CREDENTIALS.sub(r"\g<user>/***@", value)
            if len(value) > self._max_str:
                return value[: self._max_str] + "…(truncated)"
            return value
        if isinstance(value, (bytes, bytearray)):
            return f"<bytes {len(value)}B>"
        if isinstance(value, dict):
            return {
                str(k): self.scrub(v, key=str(k), depth=depth + 1)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.scrub(v, key=key, depth=depth + 1) for v in value]

        try:
            json.dumps(value)
        except (TypeError, ValueError):
            return str(value)
        return value

    @staticmethod
    def _bind_summary(value: Any) -> str:
        if value is None:
            return "<no binds>"
        try:
            count = len(value)
        except TypeError:
            return "<binds>"
        return f"<{count} bound value{'s' if count != 1 else ''}>"


class JSONFormatter(logging.Formatter):
    """LogRecord -> single-line JSON with request context and scrubbed extras."""

    def __init__(self):
        super().__init__()
        self._scrubber = _LogScrubber()

    def format(self, record: logging.LogRecord) -> str:
        from ..context import get_context_dict

        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "pid": os.getpid(),
            "thread": record.threadName,
        }
        line.update(get_context_dict())

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                line[key] = self._scrubber.scrub(value, key=key)

        error = line.get("error")
        if isinstance(error, str) and "ora_code" not in line:
            match = _DRIVER_CODE.search(error)
            if match:
                line["ora_code"] = match.group(0)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            line["exception"] = {
                "type": exc_type.__name__,
                "message": self._scrubber.scrub(str(exc)),
                "stacktrace": traceback.format_exception(exc_type, exc, tb),
            }

        return json.dumps(line, ensure_ascii=False, default=str, separators=(",", ":"))


def setup_logger(name: str = "orabridge") -> logging.Logger:
    """
    Configure the `orabridge` logger once per process.

    LOG_JSON=false switches to a plain one-line format for local runs.
    """
    from .config import get_settings

    settings = get_settings()
    log = logging.getLogger(name)
    log.setLevel(getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO))

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if settings.log_json:
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)-7s %(name)s %(message)s")
            )
        log.addHandler(handler)

    return log


logger = setup_logger()
