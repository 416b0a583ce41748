"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure the test environment (FAKE_DB, small pools, fast retries)
  - Reset process-wide singletons between tests (pool, fake DB, container)
  - Provide fake database / pool factories

Collaborators:
  - pytest: Test framework
  - orabridge.infrastructure.db: fake driver + pool
  - orabridge.container: lru_cache singletons

Notes:
  - Environment defaults are set BEFORE the first get_settings() call;
    modules read Settings at import time (logger, HTTP schemas).
"""

import os
import sys
from pathlib import Path
from typing import Callable

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("FAKE_DB", "1")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DB_POOL_MIN_SIZE", "1")
os.environ.setdefault("DB_POOL_MAX_SIZE", "4")
os.environ.setdefault("DB_CONNECT_DEADLINE_SECONDS", "1")
os.environ.setdefault("DB_CONNECT_BACKOFF_BASE_SECONDS", "0.01")
os.environ.setdefault("DB_CONNECT_BACKOFF_MAX_SECONDS", "0.05")
os.environ.setdefault("RETRY_BASE_DELAY_SECONDS", "0.01")
os.environ.setdefault("RETRY_MAX_DELAY_SECONDS", "0.02")
os.environ.setdefault("VECTOR_DIMENSIONS", "3")
os.environ.setdefault("VECTOR_TABLE", "DOCUMENT_CHUNKS")
os.environ.setdefault("SYNC_MAX_BATCH_SIZE", "50")

from orabridge.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None
app_config.get_settings.cache_clear()

from orabridge import container  # noqa: E402
from orabridge.context import clear_context  # noqa: E402
from orabridge.infrastructure.db import fake_driver  # noqa: E402
from orabridge.infrastructure.db.fake_driver import FakeDatabase  # noqa: E402
from orabridge.infrastructure.db.pool import ConnectionPool, reset_pool  # noqa: E402

_CACHED_FACTORIES = (
    container.get_statement_validator,
    container.get_query_executor,
    container.get_pooled_call,
    container.get_sync_store,
    container.get_workflow_progress_repository,
    container.get_sync_reconciler,
    container.get_redis,
    container.get_sync_job_queue,
    container.get_vector_search_use_case,
)


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


def _reset_process_state() -> None:
    reset_pool()
    fake_driver._default_db = None
    if container.get_health_reporter.cache_info().currsize:
        container.get_health_reporter().close()
    container.get_health_reporter.cache_clear()
    for factory in _CACHED_FACTORIES:
        factory.cache_clear()
    clear_context()


@pytest.fixture(autouse=True)
def _isolated_process_state():
    """R: Every test starts without pool, fake DB or cached services."""
    _reset_process_state()
    yield
    _reset_process_state()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def fake_db() -> FakeDatabase:
    """R: Fresh in-process fake Oracle instance."""
    return FakeDatabase()


@pytest.fixture
def make_pool(fake_db: FakeDatabase) -> Callable[..., ConnectionPool]:
    """R: Factory of pools over `fake_db`; every pool is closed at teardown."""
    pools: list[ConnectionPool] = []

    def _make(**options) -> ConnectionPool:
        params = {
            "min_size": 0,
            "max_size": 2,
            "acquire_timeout": 1.0,
            "connect_deadline": 0.5,
            "backoff_base": 0.01,
            "backoff_max": 0.05,
        }
        params.update(options)
        connect = params.pop("connect", fake_db.connect)
        pool = ConnectionPool(connect, **params)
        pools.append(pool)
        return pool

    yield _make

    for pool in pools:
        pool.close()


@pytest.fixture
def pool(make_pool) -> ConnectionPool:
    return make_pool()
