"""
===============================================================================
CRC CARD — orabridge/context.py (Request / job scoped context)
===============================================================================

Responsibilities:
  - Keep request-scoped context in ContextVars (async-safe).
  - Let logs and metrics correlate without threading ids through every call.
  - Provide minimal helpers: set_request_context(), get_context_dict(),
    clear_context().

Collaborators:
  - crosscutting.middleware: sets request_id/method/path per request.
  - crosscutting.logger: enriches log records via get_context_dict().
  - worker.jobs: sets request_id per job and clears it when done.

Constraints:
  - Only primitive str values (safe JSON serialization).
  - Empty defaults ("") instead of None.
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
caller_var: ContextVar[str] = ContextVar("caller", default="")
http_method_var: ContextVar[str] = ContextVar("http_method", default="")
http_path_var: ContextVar[str] = ContextVar("http_path", default="")

_CTX_REQUEST_ID: Final[str] = "request_id"
_CTX_CALLER: Final[str] = "caller"
_CTX_METHOD: Final[str] = "method"
_CTX_PATH: Final[str] = "path"


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = "", caller: str = ""
) -> None:
    """
    Set the minimal request context.

    Rule:
      - Empty strings mean "not available".
    """
    request_id_var.set(request_id or "")
    http_method_var.set(method or "")
    http_path_var.set(path or "")
    caller_var.set(caller or "")


def get_context_dict() -> dict[str, str]:
    """Current context as a dict, omitting empty keys."""
    ctx: dict[str, str] = {}

    if val := request_id_var.get():
        ctx[_CTX_REQUEST_ID] = val
    if val := caller_var.get():
        ctx[_CTX_CALLER] = val
    if val := http_method_var.get():
        ctx[_CTX_METHOD] = val
    if val := http_path_var.get():
        ctx[_CTX_PATH] = val

    return ctx


def clear_context() -> None:
    """
    Clear the context at the end of a request/job.

    Prevents context leaking between requests served by the same worker.
    """
    request_id_var.set("")
    caller_var.set("")
    http_method_var.set("")
    http_path_var.set("")
