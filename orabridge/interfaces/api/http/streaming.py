"""
===============================================================================
MODULE: SSE (Server-Sent Events) streaming of row batches
===============================================================================

Goal
----
- Send the column names first
- One `batch` event per RowStream batch, in driver order
- Finish with `done`, or `error` when the stream fails mid-way

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  stream_rows()

Responsibilities:
  - Format SSE events
  - Drive a RowStream and always close it (connection released once)

Collaborators:
  - application.query_executor.RowStream
===============================================================================
"""

from __future__ import annotations

import json
from typing import Any, Iterator

from fastapi.responses import StreamingResponse

from ....application.query_executor import RowStream
from ....crosscutting.exceptions import GatewayError
from ....crosscutting.logger import logger


def stream_rows(stream: RowStream) -> StreamingResponse:
    """
    SSE Events:
      - columns: {"columns": [...]}
      - batch: {"index": n, "rows": [[...], ...]}
      - done: {"rows": total, "batches": count}
      - error: {"error": "...", "code": "..."}
    """
    return StreamingResponse(
        _generate_sse(stream),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


def _generate_sse(stream: RowStream) -> Iterator[str]:
    # R: sync generator; Starlette iterates it in a threadpool (blocking fetches)
    try:
        yield sse_event("columns", {"columns": stream.columns})
        for index, batch in enumerate(stream):
            yield sse_event("batch", {"index": index, "rows": [list(r) for r in batch]})
        yield sse_event(
            "done",
            {"rows": stream.rows_delivered, "batches": stream.batches_delivered},
        )
    except GatewayError as exc:
        logger.error(
            "SSE stream error",
            extra={"code": exc.error_code, "error_id": exc.error_id, "rows": stream.rows_delivered},
        )
        yield sse_event("error", {"error": exc.message, "code": exc.error_code})
    finally:
        stream.close()


def sse_event(event: str, data: dict[str, Any]) -> str:
    # SSE: every event ends with a blank line
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False, default=str)}\n\n"
