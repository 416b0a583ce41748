"""
Health router: GET /api/health.

Always answers (never an unhandled fault): 200 for healthy/degraded, 503 for
unhealthy, body `{timestamp, status, checks: {oracle: {...}}}`.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .....application.health_reporter import HealthReporter
from .....container import get_health_reporter
from .....domain.entities import HealthStatus

router = APIRouter(tags=["health"])


@router.get("/health")
def health(reporter: HealthReporter = Depends(get_health_reporter)) -> JSONResponse:
    snapshot = reporter.check()
    status_code = 503 if snapshot.status == HealthStatus.UNHEALTHY else 200
    return JSONResponse(status_code=status_code, content=snapshot.to_dict())
