"""
Name: Retry Policy Unit Tests

Responsibilities:
  - Verify transient vs. permanent classification
  - Verify bounded retries with backoff (tenacity)
  - Verify the deadline-bounded connect controller
"""

import pytest

from orabridge.crosscutting.exceptions import (
    ConnectivityError,
    DatabaseError,
    ExecutionTimeout,
    PoolExhausted,
    ValidationRejected,
)
from orabridge.infrastructure.services.retry import (
    create_connect_retrying,
    create_retry_decorator,
    is_transient_error,
)

pytestmark = pytest.mark.unit


class TestIsTransientError:
    @pytest.mark.parametrize(
        "error",
        [ConnectivityError("down"), PoolExhausted("busy"), ConnectionResetError(), TimeoutError()],
    )
    def test_transient(self, error):
        assert is_transient_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [ValidationRejected("bad"), DatabaseError("ORA-00942"), ExecutionTimeout("late"), ValueError()],
    )
    def test_permanent(self, error):
        assert is_transient_error(error) is False


class TestRetryDecorator:
    def test_retries_transient_until_success(self):
        calls = {"n": 0}

        @create_retry_decorator(max_attempts=3, base_delay=0.001, max_delay=0.01)
        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise PoolExhausted("busy")
            return "ok"

        assert flaky() == "ok"
        assert calls["n"] == 3

    def test_gives_up_after_max_attempts(self):
        calls = {"n": 0}

        @create_retry_decorator(max_attempts=2, base_delay=0.001, max_delay=0.01)
        def always_down():
            calls["n"] += 1
            raise ConnectivityError("down")

        with pytest.raises(ConnectivityError):
            always_down()
        assert calls["n"] == 2

    def test_permanent_error_not_retried(self):
        calls = {"n": 0}

        @create_retry_decorator(max_attempts=5, base_delay=0.001, max_delay=0.01)
        def rejected():
            calls["n"] += 1
            raise ValidationRejected("destructive statement rejected")

        with pytest.raises(ValidationRejected):
            rejected()
        assert calls["n"] == 1

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            create_retry_decorator(max_attempts=0)


class TestConnectRetrying:
    def test_only_connectivity_errors_are_retried(self):
        calls = {"n": 0}

        def broken():
            calls["n"] += 1
            raise PoolExhausted("busy")

        with pytest.raises(PoolExhausted):
            create_connect_retrying(1.0, base_delay=0.001, max_delay=0.01)(broken)
        assert calls["n"] == 1

    def test_requires_positive_deadline(self):
        with pytest.raises(ValueError):
            create_connect_retrying(0, base_delay=0.01, max_delay=0.1)
