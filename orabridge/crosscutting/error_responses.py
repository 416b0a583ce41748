"""
===============================================================================
MODULE: Error wire formats of the gateway
===============================================================================

Two contracts coexist on the HTTP surface:

- Query endpoints (/api/query, /api/vector-search) answer failures with the
  flat `{success: false, error, code}` envelope their clients already parse.
- Every other route answers with RFC 7807 problem+json carrying the same
  stable `code`, plus request_id / error_id for correlation.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  ErrorCode catalog + envelope and problem builders

Responsibilities:
  - Own the stable error code catalog shared by both contracts (ErrorCode)
  - Build the query envelope (QueryErrorEnvelope / envelope_response)
  - Build problem+json payloads (ErrorDetail / app_exception_handler)
  - Describe both in the OpenAPI document

Collaborators:
  - api/exception_handlers.py (picks the contract per route)
  - crosscutting/middleware.py (413 problem for oversized bodies)
  - interfaces/api/http/routers (not_found for sync lookups)
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorCode(str, Enum):
    # caller mistakes
    VALIDATION_ERROR = "VALIDATION_ERROR"
    VALIDATION_REJECTED = "VALIDATION_REJECTED"
    NOT_FOUND = "NOT_FOUND"
    SYNC_CONFLICT = "SYNC_CONFLICT"
    STREAM_CONSUMED = "STREAM_CONSUMED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    # gateway or Oracle side
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CONNECTIVITY_ERROR = "CONNECTIVITY_ERROR"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    EXECUTION_TIMEOUT = "EXECUTION_TIMEOUT"
    DATABASE_ERROR = "DATABASE_ERROR"
    SECRET_RETRIEVAL_ERROR = "SECRET_RETRIEVAL_ERROR"
    QUEUE_ERROR = "QUEUE_ERROR"

    @classmethod
    def from_gateway_code(cls, code: str) -> "ErrorCode":
        """Typed gateway errors map by value; anything unknown is internal."""
        try:
            return cls(code)
        except ValueError:
            return cls.INTERNAL_ERROR


class QueryErrorEnvelope(BaseModel):
    """Failure body of the query endpoints."""

    success: bool = False
    error: str
    code: ErrorCode


class ErrorDetail(BaseModel):
    """
    RFC 7807 body.

    `errors` carries field errors from request validation, or correlation
    entries ({"request_id": ...}, {"error_id": ...}).
    """

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    code: ErrorCode
    instance: str | None = None
    errors: list[dict[str, Any]] | None = None


PROBLEM_JSON_MEDIA_TYPE = "application/problem+json"

_PROBLEM_STATUSES = {
    "404": "Unknown sync record or run",
    "409": "Sync conflict or stream already consumed",
    "413": "Request body too large",
    "422": "Malformed request",
    "503": "Oracle, pool, Key Vault or queue unavailable",
    "default": "Error",
}

OPENAPI_ERROR_RESPONSES: dict[str, dict[str, Any]] = {
    status: {
        "description": f"{description} (RFC 7807)",
        "model": ErrorDetail,
        "content": {
            PROBLEM_JSON_MEDIA_TYPE: {"schema": {"$ref": "#/components/schemas/ErrorDetail"}}
        },
    }
    for status, description in _PROBLEM_STATUSES.items()
}

# R: query routes document the envelope for the statuses the executor can return
OPENAPI_QUERY_ERROR_RESPONSES: dict[str, dict[str, Any]] = {
    str(status): {"description": description, "model": QueryErrorEnvelope}
    for status, description in {
        400: "Statement rejected by the validator",
        422: "Malformed request",
        502: "Oracle returned an error",
        503: "Oracle unreachable or pool exhausted",
        504: "Statement exceeded its deadline",
    }.items()
}


def envelope_response(status_code: int, *, error: str, code: str) -> JSONResponse:
    body = QueryErrorEnvelope(error=error, code=ErrorCode.from_gateway_code(code))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


class AppHTTPException(HTTPException):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      AppHTTPException

    Responsibilities:
      - Raise a problem+json answer from any non-query route
      - Carry the stable ErrorCode and optional errors[] entries
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.code = code
        self.errors = errors


def not_found(resource: str, identifier: str) -> AppHTTPException:
    return AppHTTPException(
        404, ErrorCode.NOT_FOUND, f"{resource} '{identifier}' not found"
    )


def service_unavailable(service: str) -> AppHTTPException:
    return AppHTTPException(
        503, ErrorCode.SERVICE_UNAVAILABLE, f"{service} is unavailable"
    )


async def app_exception_handler(
    request: Request, exc: AppHTTPException
) -> JSONResponse:
    """Render AppHTTPException as problem+json, appending the request id."""
    request_id = getattr(getattr(request, "state", None), "request_id", None)
    errors = list(exc.errors or [])
    if request_id and {"request_id": request_id} not in errors:
        errors.append({"request_id": request_id})

    problem = ErrorDetail(
        type=f"about:blank/{exc.code.value.lower()}",
        title=exc.code.value.replace("_", " ").capitalize(),
        status=exc.status_code,
        detail=str(exc.detail),
        code=exc.code,
        instance=request.url.path,
        errors=errors or None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(mode="json", exclude_none=True),
        headers=getattr(exc, "headers", None),
        media_type=PROBLEM_JSON_MEDIA_TYPE,
    )
