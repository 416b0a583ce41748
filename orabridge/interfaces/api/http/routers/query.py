"""
===============================================================================
CRC CARD — interfaces/api/http/routers/query.py
===============================================================================

Name:
    Query Router

Responsibilities:
    - POST /api/query: bounded execution, `{success, rows}` envelope.
    - POST /api/query/stream: SSE batches of a streaming read.
    - Build StatementRequest from the DTO + request context (caller).
    - Grant elevation only to callers on the ELEVATED_CALLERS allow-list.

Collaborators:
    - application.usecases: RunQueryUseCase, StreamQueryUseCase
    - interfaces.api.http.streaming.stream_rows
    - schemas.query
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .....application.usecases import RunQueryUseCase, StreamQueryUseCase
from .....container import get_run_query_use_case, get_stream_query_use_case
from .....context import caller_var
from .....crosscutting.config import get_settings
from .....crosscutting.error_responses import OPENAPI_QUERY_ERROR_RESPONSES
from .....crosscutting.logger import logger
from .....domain.entities import StatementRequest
from ..schemas.query import QueryReq, QueryRes
from ..streaming import stream_rows

router = APIRouter(tags=["query"])


def _is_elevated(req: QueryReq, caller: str) -> bool:
    if not req.elevated:
        return False
    # R: elevation is granted per caller id, never by the request body alone
    if caller and caller in get_settings().get_elevated_callers():
        return True
    logger.warning(
        "elevation refused for caller",
        extra={"requested_by": caller or "anonymous"},
    )
    return False


def _to_statement(req: QueryReq, *, stream: bool) -> StatementRequest:
    caller = caller_var.get()
    params = req.params if req.params is not None else ()
    if isinstance(params, list):
        params = tuple(params)
    return StatementRequest(
        text=req.query,
        params=params,
        caller=caller,
        max_rows=req.max_rows,
        read_only=req.read_only,
        elevated=_is_elevated(req, caller),
        stream=stream,
        timeout_seconds=req.timeout_seconds,
    )


@router.post("/query", response_model=QueryRes, responses=OPENAPI_QUERY_ERROR_RESPONSES)
def run_query(
    req: QueryReq,
    use_case: RunQueryUseCase = Depends(get_run_query_use_case),
):
    result = use_case.execute(_to_statement(req, stream=False))
    headers = {"X-Row-Count": str(result.row_count)}
    if result.truncated:
        headers["X-Rows-Truncated"] = "true"
    return JSONResponse(
        content=jsonable_encoder({"success": True, "rows": [list(r) for r in result.rows]}),
        headers=headers,
    )


@router.post("/query/stream")
def stream_query(
    req: QueryReq,
    use_case: StreamQueryUseCase = Depends(get_stream_query_use_case),
):
    # R: errors before the first batch go through the exception handlers
    return stream_rows(use_case.execute(_to_statement(req, stream=True)))
