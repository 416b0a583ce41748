"""
===============================================================================
MODULE: Typed gateway exceptions (internal error taxonomy)
===============================================================================

Goal
----
Coherent internal exceptions with:
- a stable error_code
- an error_id for log correlation
- a human message (never leaking secrets)
- a retry classification (transient vs. permanent)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  GatewayError + subclasses

Responsibilities:
  - Standardize internal errors later mapped to HTTP
  - Generate error_id for tracing
  - Mark which classes are retried internally

Collaborators:
  - api/exception_handlers.py (maps to HTTP responses)
  - infrastructure/services/retry.py (reads `transient`)
  - crosscutting/logger.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Minimal error structure for consistent responses."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class GatewayError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      GatewayError

    Responsibilities:
      - Base for every internal error of the service
      - Provide error_code + error_id + message
      - Declare whether the class is transient (retried with backoff)

    Collaborators:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "GATEWAY_ERROR"
    transient: bool = False

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class ValidationRejected(GatewayError):
    """Statement failed the validator policy (client error, never retried)."""

    error_code: str = "VALIDATION_REJECTED"

    def __init__(self, message: str, *, rule: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.rule = rule


class ConnectivityError(GatewayError):
    """Database or network unreachable."""

    error_code: str = "CONNECTIVITY_ERROR"
    transient: bool = True


class PoolExhausted(GatewayError):
    """No connection became available within the wait bound."""

    error_code: str = "POOL_EXHAUSTED"
    transient: bool = True


class ExecutionTimeout(GatewayError):
    """Deadline exceeded while acquiring or executing."""

    error_code: str = "EXECUTION_TIMEOUT"


class DatabaseError(GatewayError):
    """The database reported a failure (wraps driver code + message)."""

    error_code: str = "DATABASE_ERROR"

    def __init__(self, message: str, *, db_code: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.db_code = db_code


class SyncConflict(GatewayError):
    """Reconciliation could not safely determine precedence."""

    error_code: str = "SYNC_CONFLICT"


class StreamConsumed(GatewayError):
    """A streaming read was iterated twice (streams are not restartable)."""

    error_code: str = "STREAM_CONSUMED"


class SecretRetrievalError(GatewayError):
    """The secret store could not resolve a secret."""

    error_code: str = "SECRET_RETRIEVAL_ERROR"
