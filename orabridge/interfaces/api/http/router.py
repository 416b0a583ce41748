"""
===============================================================================
CRC CARD — router.py (root router / composition)
===============================================================================

Responsibilities:
  - Define the root APIRouter included by FastAPI under /api.
  - Centralize RFC 7807 responses for OpenAPI.
  - Compose feature routers (query / vector / sync / health).

Notes:
  - build_router() keeps composition testable without import side effects.
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter

from ....crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from .routers.health import router as health_router
from .routers.query import router as query_router
from .routers.sync import router as sync_router
from .routers.vector import router as vector_router


def build_router() -> APIRouter:
    api_router = APIRouter(responses=OPENAPI_ERROR_RESPONSES)
    api_router.include_router(health_router)
    api_router.include_router(query_router)
    api_router.include_router(vector_router)
    api_router.include_router(sync_router)
    return api_router


router = build_router()

__all__ = ["router", "build_router"]
