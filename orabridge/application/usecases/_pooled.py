"""
CRC — application/usecases/_pooled.py

Name
- PooledCall (shared acquire-with-retry helper of the query use cases)

Responsibilities
- Acquire a pooled connection under the caller's deadline.
- Retry transient acquisition failures (ConnectivityError, PoolExhausted)
  with bounded backoff before surfacing them.

Collaborators
- infrastructure.db.pool.ConnectionPool
- infrastructure.services.retry.create_retry_decorator
"""

from __future__ import annotations

from typing import Callable

from ...crosscutting.timing import Deadline
from ...infrastructure.db.pool import ConnectionPool, PooledConnection
from ...infrastructure.services.retry import create_retry_decorator

PoolProvider = Callable[[], ConnectionPool]


class PooledCall:
    """R: Deadline-aware acquire with bounded retry of transient errors."""

    def __init__(
        self,
        pool_provider: PoolProvider,
        *,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.2,
        retry_max_delay: float = 2.0,
    ) -> None:
        self._pool_provider = pool_provider
        self._retry = create_retry_decorator(
            max_attempts=retry_attempts,
            base_delay=retry_base_delay,
            max_delay=retry_max_delay,
        )

    @property
    def pool(self) -> ConnectionPool:
        return self._pool_provider()

    def acquire(self, deadline: Deadline) -> PooledConnection:
        pool = self.pool

        @self._retry
        def _acquire() -> PooledConnection:
            return pool.acquire(deadline=deadline)

        return _acquire()
