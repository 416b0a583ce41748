"""orabridge.infrastructure.services.retry

Name: Retry helpers with exponential backoff + jitter

What it is
----------
Cross-cutting **resilience** utility for database connectivity.
Implements:
  - Error classification: **transient** (retry) vs **permanent** (fail-fast)
  - `tenacity` decorators/controllers with **exponential backoff + jitter**
  - Structured logging of retry attempts (request id when available)

CRC (Component Card)
--------------------
Component: retry helper
Responsibilities:
  - Decide which errors are retryable
  - Provide a standard decorator (bounded attempts) for transient acquisition
    failures in use cases
  - Provide a deadline-bounded controller for opening connections
  - Log attempts with useful context
Collaborators:
  - tenacity (retry engine)
  - crosscutting.config.get_settings (attempts/delays)
  - crosscutting.exceptions (GatewayError.transient)
  - crosscutting.logger
Constraints:
  - Retry ONLY transient errors (ConnectivityError, PoolExhausted, network IO)
  - Never retry ValidationRejected / DatabaseError / ExecutionTimeout
  - Jitter to avoid thundering herd on a recovering database
"""

from __future__ import annotations

from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry,
    retry_if_exception,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential_jitter,
)

from ...crosscutting.config import get_settings
from ...crosscutting.exceptions import ConnectivityError, GatewayError
from ...crosscutting.logger import logger
from ...context import request_id_var

T = TypeVar("T")


def is_transient_error(exception: BaseException) -> bool:
    """R: Decide whether an error is transient (retry) or permanent (fail-fast).

    Rules (in order):
      1) Gateway taxonomy: use the class `transient` flag.
      2) Built-in network/timeout exceptions: True.
      3) Default: fail-fast (False) so unknown errors are never retried.
    """
    if isinstance(exception, GatewayError):
        return exception.transient

    # R: OSError covers "Connection reset", "Network unreachable", ...
    if isinstance(exception, (TimeoutError, ConnectionError, OSError)):
        return True

    return False


def is_connectivity_error(exception: BaseException) -> bool:
    """R: Only unreachable-database errors are retried while opening connections."""
    return isinstance(exception, ConnectivityError)


def _extract_request_id(retry_state: RetryCallState) -> Optional[str]:
    """R: request_id from kwargs, falling back to the request ContextVar."""
    kwargs = getattr(retry_state, "kwargs", None) or {}
    for key in ("request_id", "correlation_id"):
        value = kwargs.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return request_id_var.get() or None


def log_retry(retry_state: RetryCallState) -> None:
    """R: Log each attempt before sleeping (before_sleep hook)."""
    fn = getattr(retry_state, "fn", None)
    fn_name = getattr(fn, "__name__", "unknown")
    attempt = getattr(retry_state, "attempt_number", 0)
    wait_time = (
        retry_state.next_action.sleep
        if getattr(retry_state, "next_action", None) is not None
        else 0
    )

    exc: Optional[BaseException] = None
    if getattr(retry_state, "outcome", None) is not None:
        exc = retry_state.outcome.exception()

    logger.warning(
        "Retrying database call",
        extra={
            "function": fn_name,
            "attempt": attempt,
            "wait_seconds": round(float(wait_time), 2),
            "request_id": _extract_request_id(retry_state),
            "error": str(exc) if exc else None,
            "error_type": type(exc).__name__ if exc else None,
        },
    )


def create_retry_decorator(
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """R: `tenacity` decorator with exponential backoff + jitter (bounded attempts).

    Config:
      - stop: `stop_after_attempt(max_attempts)`
      - wait: `wait_exponential_jitter(initial=base_delay, max=max_delay)`
      - retry: only if `is_transient_error(exception)`
      - before_sleep: `log_retry`
      - reraise: True (propagates the last exception)
    """
    settings = get_settings()

    _max_attempts = (
        settings.retry_max_attempts if max_attempts is None else max_attempts
    )
    _base_delay = (
        settings.retry_base_delay_seconds if base_delay is None else float(base_delay)
    )
    _max_delay = (
        settings.retry_max_delay_seconds if max_delay is None else float(max_delay)
    )

    if _max_attempts <= 0:
        raise ValueError("max_attempts must be > 0")
    if _base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    if _max_delay <= 0:
        raise ValueError("max_delay must be > 0")

    return retry(
        stop=stop_after_attempt(_max_attempts),
        wait=wait_exponential_jitter(
            initial=_base_delay, max=_max_delay, jitter=_base_delay
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=log_retry,
        reraise=True,
    )


def create_connect_retrying(
    deadline_seconds: float,
    base_delay: float,
    max_delay: float,
) -> Retrying:
    """R: Deadline-bounded controller used by the pool to open connections.

    Stops before a sleep would cross the deadline, so the caller never waits
    longer than `deadline_seconds` plus one connection attempt.
    """
    if deadline_seconds <= 0:
        raise ValueError("deadline_seconds must be > 0")

    return Retrying(
        stop=stop_before_delay(deadline_seconds),
        wait=wait_exponential_jitter(initial=base_delay, max=max_delay, jitter=base_delay),
        retry=retry_if_exception(is_connectivity_error),
        before_sleep=log_retry,
        reraise=True,
    )
