"""
Name: Oracle Adapter Unit Tests

Responsibilities:
  - Verify driver error translation into the gateway taxonomy
  - Verify identifier validation (no interpolation of arbitrary text)
  - Verify the connection factory (fake driver, missing DSN)
"""

from types import SimpleNamespace

import pytest

from orabridge.crosscutting.exceptions import (
    ConnectivityError,
    DatabaseError,
    ExecutionTimeout,
    ValidationRejected,
)
from orabridge.infrastructure.db.fake_driver import FakeDriverError
from orabridge.infrastructure.db.oracle import (
    create_connection_factory,
    driver_error_code,
    translate_driver_error,
    validate_identifier,
)

pytestmark = pytest.mark.unit


class TestTranslateDriverError:
    @pytest.mark.parametrize("code", ["ORA-12541", "ORA-03113", "DPY-4011", "DPY-6005"])
    def test_connectivity_codes(self, code):
        error = translate_driver_error(FakeDriverError(code, "down"))

        assert isinstance(error, ConnectivityError)
        assert error.transient is True

    @pytest.mark.parametrize("code", ["ORA-01013", "DPY-4024"])
    def test_timeout_codes(self, code):
        error = translate_driver_error(FakeDriverError(code, "interrupted"))

        assert isinstance(error, ExecutionTimeout)

    def test_other_codes_become_database_error(self):
        error = translate_driver_error(FakeDriverError("ORA-00942", "table or view does not exist"))

        assert isinstance(error, DatabaseError)
        assert error.db_code == "ORA-00942"
        assert error.message == "ORA-00942: table or view does not exist"
        assert error.transient is False

    def test_code_from_oracledb_style_args(self):
        inner = SimpleNamespace(full_code="ORA-00001", message="unique constraint violated")
        exc = Exception(inner)

        assert driver_error_code(exc) == "ORA-00001"
        error = translate_driver_error(exc)
        assert error.message == "ORA-00001: unique constraint violated"

    def test_code_from_message_text(self):
        assert driver_error_code(RuntimeError("failed with ORA-12170 somewhere")) == "ORA-12170"

    def test_gateway_error_passes_through(self):
        original = DatabaseError("boom")

        assert translate_driver_error(original) is original


class TestValidateIdentifier:
    def test_upper_cases(self):
        assert validate_identifier("customers") == "CUSTOMERS"

    def test_schema_qualified(self):
        assert validate_identifier("app.orders", allow_schema=True) == "APP.ORDERS"

    def test_schema_not_allowed_by_default(self):
        with pytest.raises(ValidationRejected):
            validate_identifier("app.orders")

    @pytest.mark.parametrize(
        "name", ["", "1abc", "a b", "t; DROP TABLE x", 'x"y', "a.b.c", "x" * 129]
    )
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(ValidationRejected) as excinfo:
            validate_identifier(name, allow_schema=True)
        assert excinfo.value.rule == "invalid_identifier"


class TestConnectionFactory:
    def test_fake_factory_sets_call_timeout(self, fake_db):
        connect = create_connection_factory(
            dsn="", user="", password="", call_timeout_ms=1500, fake_db=fake_db
        )

        conn = connect()

        assert conn.call_timeout == 1500
        assert fake_db.opened == 1

    def test_real_driver_requires_dsn(self):
        with pytest.raises(ValueError):
            create_connection_factory(dsn="", user="app", password="secret")
