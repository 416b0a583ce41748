"""
===============================================================================
CRC CARD — orabridge/api/exception_handlers.py (Centralized exception mapping)
===============================================================================

Responsibilities:
  - Map the gateway error taxonomy 1:1 to HTTP status codes.
  - Answer the query endpoints with the `{success, error, code}` envelope and
    every other route with RFC 7807 problem+json.
  - Log errors with request_id + error_id; never leak internals in
    production for untyped exceptions.

Collaborators:
  - crosscutting.error_responses: envelope_response, AppHTTPException, ErrorCode
  - crosscutting.exceptions: GatewayError and subclasses
  - infrastructure.db.errors: DatabasePoolError (pool lifecycle)
  - infrastructure.queue.errors: QueueError
===============================================================================
"""

from __future__ import annotations

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
    envelope_response,
    service_unavailable,
)
from ..crosscutting.exceptions import (
    ConnectivityError,
    DatabaseError,
    ExecutionTimeout,
    GatewayError,
    PoolExhausted,
    SecretRetrievalError,
    StreamConsumed,
    SyncConflict,
    ValidationRejected,
)
from ..crosscutting.logger import logger
from ..infrastructure.db.errors import DatabasePoolError
from ..infrastructure.queue.errors import QueueError

# R: Most specific class first; checked with isinstance.
STATUS_BY_ERROR: tuple[tuple[type[GatewayError], int], ...] = (
    (ValidationRejected, 400),
    (SyncConflict, 409),
    (StreamConsumed, 409),
    (ConnectivityError, 503),
    (PoolExhausted, 503),
    (SecretRetrievalError, 503),
    (ExecutionTimeout, 504),
    (DatabaseError, 502),
)

# R: Endpoints whose contract is the {success, error} envelope.
ENVELOPE_PATHS: frozenset[str] = frozenset({"/api/query", "/api/vector-search"})


def status_for(exc: GatewayError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def _wants_envelope(request: Request) -> bool:
    return request.url.path in ENVELOPE_PATHS


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    status_code = status_for(exc)
    request_id = _request_id_from(request)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "gateway error",
        extra={
            "code": exc.error_code,
            "error_id": exc.error_id,
            "error": exc.message,
            "status_code": status_code,
            "request_id": request_id,
        },
    )

    if _wants_envelope(request):
        return envelope_response(status_code, error=exc.message, code=exc.error_code)

    app_exc = AppHTTPException(
        status_code=status_code,
        code=ErrorCode.from_gateway_code(exc.error_code),
        detail=exc.message,
        errors=[{"error_id": exc.error_id}],
    )
    return await app_exception_handler(request, app_exc)


async def pool_error_handler(request: Request, exc: DatabasePoolError) -> JSONResponse:
    """Pool not initialized / closed: the service cannot reach Oracle."""
    logger.error(
        "connection pool unavailable",
        extra={"error": str(exc), "request_id": _request_id_from(request)},
    )
    if _wants_envelope(request):
        return envelope_response(
            503, error="database pool unavailable", code=ErrorCode.SERVICE_UNAVAILABLE.value
        )
    return await app_exception_handler(request, service_unavailable("database pool"))


async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
    logger.error(
        "queue unavailable",
        extra={"code": exc.code, "error": str(exc), "request_id": _request_id_from(request)},
    )
    app_exc = AppHTTPException(
        status_code=503,
        code=ErrorCode.QUEUE_ERROR,
        detail="Background queue unavailable",
    )
    return await app_exception_handler(request, app_exc)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies: envelope on query endpoints, RFC 7807 elsewhere."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    if _wants_envelope(request):
        first = errors[0] if errors else {"loc": [], "msg": "invalid request"}
        field = ".".join(str(p) for p in first["loc"] if p != "body")
        message = f"{field}: {first['msg']}" if field else first["msg"]
        return envelope_response(422, error=message, code=ErrorCode.VALIDATION_ERROR.value)

    app_exc = AppHTTPException(
        status_code=422,
        code=ErrorCode.VALIDATION_ERROR,
        detail="Request validation failed",
        errors=errors,
    )
    return await app_exception_handler(request, app_exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Fallback for untyped exceptions.

    - Full log (stack trace).
    - Generic response (no internals in production).
    """
    request_id = _request_id_from(request)
    logger.error(
        "unhandled exception",
        exc_info=True,
        extra={"request_id": request_id, "error": str(exc)},
    )

    detail = "Internal error" if get_settings().is_production() else str(exc)
    if _wants_envelope(request):
        return envelope_response(500, error=detail, code=ErrorCode.INTERNAL_ERROR.value)

    app_exc = AppHTTPException(
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR,
        detail=detail,
        errors=[{"request_id": request_id}],
    )
    return await app_exception_handler(request, app_exc)


def register_exception_handlers(app) -> None:
    """
    Register handlers on the FastAPI app.

    AppHTTPException keeps RFC 7807; Exception is the last-resort fallback.
    """
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(DatabasePoolError, pool_error_handler)
    app.add_exception_handler(QueueError, queue_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers", "status_for", "STATUS_BY_ERROR"]
