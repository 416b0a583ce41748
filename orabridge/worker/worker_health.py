"""
===============================================================================
CRC CARD — worker/worker_health.py (worker health & readiness)
===============================================================================

Responsibilities:
  - Readiness: Redis reachable and Oracle pool healthy (HealthReporter).
  - Liveness: process alive (uptime).
  - CLI healthcheck for containers (exit code 0/1).

Notes:
  - Never raises to the caller; returns a status payload.
===============================================================================
"""

from __future__ import annotations

import json
import time
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from ..container import get_health_reporter
from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..domain.entities import HealthStatus

_START_TIME = time.time()


def _check_redis(redis_url: str) -> bool:
    if not redis_url:
        return False
    try:
        redis = Redis.from_url(redis_url, socket_connect_timeout=2, socket_timeout=2)
        return bool(redis.ping())
    except RedisError as exc:
        logger.warning("worker readiness: Redis unavailable", extra={"error": str(exc)})
        return False


def readiness_payload() -> dict[str, Any]:
    """ok when Redis answers and Oracle is not unhealthy."""
    snapshot = get_health_reporter().check()
    redis_ok = _check_redis(get_settings().redis_url)
    return {
        "ok": bool(redis_ok and snapshot.status != HealthStatus.UNHEALTHY),
        "oracle": snapshot.status.value,
        "redis": "connected" if redis_ok else "disconnected",
    }


def health_payload() -> dict[str, Any]:
    return {"ok": True, "uptime_seconds": int(time.time() - _START_TIME)}


def main() -> None:
    payload = readiness_payload()
    print(json.dumps(payload))
    raise SystemExit(0 if payload.get("ok") else 1)


if __name__ == "__main__":
    main()
