"""
Name: ASGI entrypoint (orabridge.main)

Re-exports the FastAPI app for uvicorn: `uvicorn orabridge.main:app`.
Keep this module thin: no configuration or IO here.
"""

from orabridge.api.main import app

__all__ = ["app"]
