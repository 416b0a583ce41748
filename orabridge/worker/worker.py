"""
===============================================================================
CRC CARD — worker/worker.py (Worker process entrypoint)
===============================================================================

Responsibilities:
  - Run an RQ Worker consuming the sync queue.
  - Initialize process resources: Redis + Oracle pool.
  - Expose lightweight health/ready/metrics HTTP for orchestrators.
  - Shut resources down in order.

Collaborators:
  - crosscutting.config.get_settings
  - container.build_connection_factory / pool_options
  - infrastructure.db.pool.init_pool / close_pool
  - redis.Redis + rq.Worker
  - worker_server.start_worker_http_server
===============================================================================
"""

from __future__ import annotations

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Worker

from ..container import build_connection_factory, pool_options
from ..crosscutting.config import get_settings
from ..crosscutting.exceptions import ConnectivityError
from ..crosscutting.logger import logger
from ..infrastructure.db.pool import close_pool, init_pool
from .worker_server import start_worker_http_server


def main() -> None:
    settings = get_settings()

    redis_url = settings.redis_url.strip()
    if not redis_url:
        raise SystemExit("REDIS_URL is required to run the worker.")

    # R: Redis (fail-fast if it does not answer).
    redis_conn = Redis.from_url(
        redis_url,
        socket_connect_timeout=2,
        socket_timeout=5,
        health_check_interval=30,
    )
    try:
        redis_conn.ping()
    except RedisError as exc:
        logger.error("Redis unavailable for worker", extra={"error": str(exc)})
        raise SystemExit("Redis unavailable.")

    # R: Pool (fail-fast if the database stays unreachable).
    pool = init_pool(build_connection_factory(settings), **pool_options(settings))
    try:
        pool.warm_up()
    except ConnectivityError as exc:
        close_pool()
        logger.error("Oracle unavailable for worker", extra={"error": exc.message})
        raise SystemExit("Oracle unavailable.")

    server = None
    try:
        server = start_worker_http_server(settings.worker_http_port)

        logger.info(
            "worker starting",
            extra={
                "queue": settings.sync_queue_name,
                "http_port": settings.worker_http_port,
                "db_pool_min": settings.db_pool_min_size,
                "db_pool_max": settings.db_pool_max_size,
            },
        )

        queue = Queue(name=settings.sync_queue_name, connection=redis_conn)
        worker = Worker([queue], connection=redis_conn)
        worker.work(with_scheduler=False)

    except KeyboardInterrupt:
        logger.info("worker stopped by signal")
    finally:
        if server is not None:
            server.shutdown()
            server.server_close()
        close_pool()
        logger.info("worker shut down")


if __name__ == "__main__":
    main()
