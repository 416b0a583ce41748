"""HTTP interface (FastAPI routers, schemas, SSE)."""
