"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Initialize the FastAPI application (title, version, lifespan)
  - Open the Oracle pool at startup (secret -> factory -> init_pool -> warm_up)
  - Configure middleware (body limit, request context, CORS)
  - Mount the gateway routes under /api and expose /metrics

Collaborators:
  - container: connection factory, health reporter
  - infrastructure.db.pool: init_pool / close_pool
  - interfaces.api.http.router: query, vector, sync, health endpoints
  - exception_handlers: taxonomy -> HTTP mapping

Notes:
  - Middleware order matters: RequestContext -> CORS -> BodyLimit -> routes
  - An unreachable database at startup is logged and tolerated: the pool
    opens lazily later and /api/health reports unhealthy meanwhile
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from ..container import build_connection_factory, get_health_reporter, pool_options
from ..crosscutting.config import get_settings
from ..crosscutting.exceptions import ConnectivityError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from ..crosscutting.middleware import BodyLimitMiddleware, RequestContextMiddleware
from ..infrastructure.db.pool import close_pool, init_pool
from ..interfaces.api.http.router import router
from .exception_handlers import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle. Opens and closes the connection pool."""
    settings = get_settings()

    pool = init_pool(build_connection_factory(settings), **pool_options(settings))
    try:
        try:
            opened = pool.warm_up()
        except ConnectivityError as exc:
            opened = 0
            logger.error(
                "warm-up failed: database unreachable",
                extra={"error": exc.message, "error_id": exc.error_id},
            )

        logger.info(
            "orabridge API starting up",
            extra={
                "app_env": settings.app_env,
                "fake_db": settings.fake_db,
                "db_pool_min": settings.db_pool_min_size,
                "db_pool_max": settings.db_pool_max_size,
                "warm_connections": opened,
                "strict_mode": settings.validator_strict_mode,
            },
        )

        yield

    finally:
        get_health_reporter().close()
        get_health_reporter.cache_clear()
        close_pool()
        logger.info("orabridge API shutting down")


def _get_allowed_origins() -> list[str]:
    return get_settings().get_allowed_origins_list()


app = FastAPI(
    title="orabridge",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "query", "description": "Validated statement execution (bounded / SSE)"},
        {"name": "vector", "description": "Similarity search via VECTOR_DISTANCE"},
        {"name": "sync", "description": "Idempotent record synchronization"},
        {"name": "health", "description": "Liveness of the database dependency"},
    ],
)

# R: Middleware order (bottom = first to execute):
# 1. RequestContextMiddleware - sets request_id
# 2. CORSMiddleware - handles preflight
# 3. BodyLimitMiddleware - rejects oversized bodies early
app.add_middleware(BodyLimitMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_allowed_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-Id", "X-Caller-Id"],
    expose_headers=["X-Request-Id", "X-Row-Count", "X-Rows-Truncated"],
)

app.add_middleware(RequestContextMiddleware)

app.include_router(router, prefix="/api")

register_exception_handlers(app)


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Prometheus text exposition."""
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)
