"""
Name: Statement Validator Unit Tests

Responsibilities:
  - Verify the rule order (empty, size, literals, single statement,
    destructive keywords, read-only intent, target table)
  - Verify masking of literals, quoted identifiers and comments
  - Verify elevated callers and strict mode
"""

import pytest

from orabridge.application.statement_validator import (
    RULE_DESTRUCTIVE,
    RULE_EMPTY,
    RULE_MULTIPLE,
    RULE_NO_TARGET,
    RULE_NOT_READ_ONLY,
    RULE_TOO_LONG,
    RULE_TOO_MANY_PARAMS,
    RULE_UNTERMINATED,
    StatementValidator,
    UnterminatedToken,
    mask_sql,
)
from orabridge.crosscutting.exceptions import ValidationRejected
from orabridge.domain.entities import StatementRequest

pytestmark = pytest.mark.unit


def _verdict(text, validator=None, **kwargs):
    validator = validator or StatementValidator()
    return validator.validate(StatementRequest(text=text, **kwargs))


class TestAcceptedStatements:
    @pytest.mark.parametrize(
        "text",
        [
            "SELECT 1 FROM DUAL",
            "select id, name from customers where id = :id",
            "WITH t AS (SELECT id FROM orders) SELECT * FROM t",
            "SELECT * FROM app.orders o JOIN app.lines l ON l.order_id = o.id;",
            "(SELECT id FROM customers)",
        ],
    )
    def test_read_only_queries(self, text):
        assert _verdict(text).passed is True

    def test_write_allowed_when_not_read_only(self):
        verdict = _verdict("UPDATE customers SET tier = 2 WHERE id = :id", read_only=False)

        assert verdict.passed is True

    def test_keywords_inside_literals_do_not_count(self):
        assert _verdict("SELECT 'DROP TABLE x; DELETE' AS txt FROM DUAL").passed is True

    def test_keywords_inside_q_quote_do_not_count(self):
        assert _verdict("SELECT q'[it's a DROP]' FROM DUAL").passed is True

    def test_keywords_inside_comments_do_not_count(self):
        text = "SELECT id /* ALTER; TRUNCATE */ FROM customers -- DROP TABLE x"

        assert _verdict(text).passed is True

    def test_quoted_identifier_is_masked(self):
        assert _verdict('SELECT "DROP" FROM customers').passed is True


class TestRejectedStatements:
    def test_destructive_statement(self):
        verdict = _verdict("DROP TABLE customers")

        assert verdict.passed is False
        assert verdict.rule == RULE_DESTRUCTIVE
        assert "destructive statement rejected" in verdict.reason

    @pytest.mark.parametrize("keyword", ["ALTER", "TRUNCATE", "GRANT", "REVOKE", "PURGE", "RENAME"])
    def test_every_destructive_keyword(self, keyword):
        verdict = _verdict(f"{keyword} TABLE customers", read_only=False)

        assert verdict.rule == RULE_DESTRUCTIVE

    def test_empty(self):
        assert _verdict("   ").rule == RULE_EMPTY
        assert _verdict(" ; ").rule == RULE_EMPTY

    def test_too_long(self):
        validator = StatementValidator(max_chars=20)

        assert _verdict("SELECT id FROM customers", validator).rule == RULE_TOO_LONG

    def test_too_many_params(self):
        validator = StatementValidator(max_params=1)

        verdict = _verdict("SELECT id FROM t WHERE a = :1 AND b = :2", validator, params=(1, 2))

        assert verdict.rule == RULE_TOO_MANY_PARAMS

    @pytest.mark.parametrize(
        "text",
        ["SELECT 'open FROM t", 'SELECT "open FROM t', "SELECT 1 /* open FROM t", "SELECT q'[x FROM t"],
    )
    def test_unterminated_tokens(self, text):
        assert _verdict(text).rule == RULE_UNTERMINATED

    def test_multiple_statements(self):
        verdict = _verdict("SELECT 1 FROM DUAL; DELETE FROM customers", read_only=False)

        assert verdict.rule == RULE_MULTIPLE

    def test_write_under_read_only_intent(self):
        assert _verdict("DELETE FROM customers").rule == RULE_NOT_READ_ONLY

    def test_select_hiding_dml(self):
        verdict = _verdict("SELECT * FROM customers WHERE 1 = (INSERT INTO x VALUES (1))")

        assert verdict.rule == RULE_NOT_READ_ONLY

    def test_no_target_table(self):
        assert _verdict("SELECT 1").rule == RULE_NO_TARGET


class TestPrivileges:
    def test_elevated_caller_may_run_destructive(self):
        verdict = _verdict("TRUNCATE TABLE staging", read_only=False, elevated=True)

        assert verdict.passed is True

    def test_strict_mode_ignores_elevation(self):
        validator = StatementValidator(strict_mode=True)

        verdict = _verdict("TRUNCATE TABLE staging", validator, read_only=False, elevated=True)

        assert verdict.rule == RULE_DESTRUCTIVE

    def test_strict_mode_forces_read_only(self):
        validator = StatementValidator(strict_mode=True)

        verdict = _verdict("UPDATE customers SET a = 1", validator, read_only=False)

        assert verdict.rule == RULE_NOT_READ_ONLY


class TestEnsureValid:
    def test_raises_with_rule(self):
        with pytest.raises(ValidationRejected) as excinfo:
            StatementValidator().ensure_valid(StatementRequest(text="DROP TABLE customers"))

        assert excinfo.value.rule == RULE_DESTRUCTIVE
        assert excinfo.value.error_code == "VALIDATION_REJECTED"

    def test_returns_passing_verdict(self):
        verdict = StatementValidator().ensure_valid(StatementRequest(text="SELECT 1 FROM DUAL"))

        assert verdict.passed is True


class TestMaskSql:
    def test_doubled_quote_escape(self):
        assert mask_sql("SELECT 'it''s' FROM t") == "SELECT '?' FROM t"

    def test_nq_quote(self):
        assert mask_sql("SELECT nq'{DROP}' FROM t") == "SELECT n'?' FROM t"

    def test_unterminated_block_comment(self):
        with pytest.raises(UnterminatedToken):
            mask_sql("SELECT /* never closed")
