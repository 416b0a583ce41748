"""
Name: Health Reporter Unit Tests

Responsibilities:
  - Verify healthy / degraded / unhealthy classification of the probe
  - Verify the check is bounded in time and never raises
"""

import time

import pytest

from orabridge.application.health_reporter import PROBE_SQL, HealthReporter
from orabridge.domain.entities import HealthStatus
from orabridge.infrastructure.db.errors import PoolNotInitializedError

pytestmark = pytest.mark.unit


@pytest.fixture
def reporters():
    created = []

    def _make(provider, **kwargs):
        reporter = HealthReporter(provider, **kwargs)
        created.append(reporter)
        return reporter

    yield _make
    for reporter in created:
        reporter.close()


class TestHealthReporter:
    def test_healthy(self, reporters, pool):
        snapshot = reporters(lambda: pool).check()

        assert snapshot.status == HealthStatus.HEALTHY
        oracle = snapshot.checks["oracle"]
        assert oracle.latency_ms is not None
        body = snapshot.to_dict()
        assert body["status"] == "healthy"
        assert "latencyMs" in body["checks"]["oracle"]
        assert pool.stats().busy == 0

    def test_slow_probe_is_degraded(self, reporters, pool, fake_db):
        fake_db.set_latency(0.05, PROBE_SQL)

        snapshot = reporters(lambda: pool, degraded_latency_ms=1).check()

        assert snapshot.status == HealthStatus.DEGRADED

    def test_probe_exceeding_timeout_is_degraded(self, reporters, pool, fake_db):
        fake_db.set_latency(2.0, PROBE_SQL)

        started = time.monotonic()
        snapshot = reporters(lambda: pool, timeout_seconds=0.2).check()

        assert time.monotonic() - started < 1.5
        assert snapshot.status == HealthStatus.DEGRADED

    def test_unreachable_database_is_unhealthy(self, reporters, make_pool, fake_db):
        pool = make_pool(connect_deadline=0.1)
        fake_db.reachable = False

        snapshot = reporters(lambda: pool, timeout_seconds=1.0).check()

        assert snapshot.status == HealthStatus.UNHEALTHY
        assert snapshot.checks["oracle"].detail

    def test_exhausted_pool_is_degraded(self, reporters, make_pool):
        pool = make_pool(max_size=1, acquire_timeout=0.05)
        held = pool.acquire()

        snapshot = reporters(lambda: pool, timeout_seconds=0.5).check()

        assert snapshot.status == HealthStatus.DEGRADED
        pool.release(held)

    def test_uninitialized_pool_is_unhealthy(self, reporters):
        def provider():
            raise PoolNotInitializedError("Pool not initialized")

        snapshot = reporters(provider).check()

        assert snapshot.status == HealthStatus.UNHEALTHY
