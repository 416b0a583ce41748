"""
===============================================================================
CRC CARD — worker/worker_server.py (side HTTP listener of the sync worker)
===============================================================================

Responsibilities:
  - Serve the endpoints an orchestrator polls on the sync worker:
      * /healthz  process is alive
      * /readyz   Redis answers and the Oracle pool is not unhealthy (503 if not)
      * /metrics  Prometheus exposition of the worker process
  - Answer HEAD as well as GET so health checks can skip the body.
  - Never take the worker down: a port already in use only logs a warning.

Collaborators:
  - worker_health.health_payload / readiness_payload
  - crosscutting.metrics.get_metrics_response
===============================================================================
"""

from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable
from urllib.parse import urlparse

from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from .worker_health import health_payload, readiness_payload

# (status, content type, body)
_Reply = tuple[int, str, bytes]


def _json(status: int, payload: dict) -> _Reply:
    return status, "application/json", json.dumps(payload).encode("utf-8")


def _liveness() -> _Reply:
    return _json(200, health_payload())


def _readiness() -> _Reply:
    payload = readiness_payload()
    return _json(200 if payload.get("ok") else 503, payload)


def _metrics() -> _Reply:
    body, content_type = get_metrics_response()
    return 200, content_type, body


_ROUTES: dict[str, Callable[[], _Reply]] = {
    "/healthz": _liveness,
    "/readyz": _readiness,
    "/metrics": _metrics,
}


class _OpsHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        self._reply(with_body=True)

    def do_HEAD(self) -> None:
        self._reply(with_body=False)

    def _reply(self, *, with_body: bool) -> None:
        route = _ROUTES.get(urlparse(self.path).path)
        if route is None:
            status, content_type, body = _json(404, {"ok": False, "error": "unknown path"})
        else:
            status, content_type, body = route()

        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        if with_body:
            self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        # R: orchestrator polling stays at DEBUG
        logger.debug(
            "worker ops request",
            extra={
                "path": getattr(self, "path", None),
                "command": getattr(self, "command", None),
            },
        )


def start_worker_http_server(port: int) -> ThreadingHTTPServer | None:
    """Serve on a daemon thread; None when `port` cannot be bound."""
    try:
        server = ThreadingHTTPServer(("0.0.0.0", port), _OpsHandler)
    except OSError as exc:
        logger.warning(
            "worker ops listener disabled",
            extra={"port": port, "error": str(exc)},
        )
        return None

    threading.Thread(
        target=server.serve_forever, name="orabridge-worker-ops", daemon=True
    ).start()
    logger.info("worker ops listener started", extra={"port": port})
    return server
