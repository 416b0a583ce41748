"""
===============================================================================
MODULE: Statement Validator (allow-list style pre-execution guard)
===============================================================================

Goal
----
Cheap rejection of obviously unsafe statements before they reach Oracle.
This is NOT a parser and NOT a substitute for database-side authorization.

Policy (checked in this order):
  1) non-empty, bounded length, bounded parameter count
  2) balanced literals/comments, a single statement
  3) no destructive keyword (DROP, ALTER, TRUNCATE, RENAME, PURGE, GRANT,
     REVOKE) unless the caller is elevated and strict mode is off
  4) read-only intent (declared, or forced by strict mode): the statement
     must start with SELECT/WITH and contain no DML keyword
  5) an identifiable target table reference

Keywords inside string literals ('...', q'[...]'), quoted identifiers
("...") and comments (--, /* */) never count: the text is masked first.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  StatementValidator

Responsibilities:
  - Produce exactly one immutable ValidationVerdict per request
  - Count rejections by rule (metrics)

Collaborators:
  - domain.entities.StatementRequest / ValidationVerdict
  - crosscutting.metrics.record_validator_rejection
===============================================================================
"""

from __future__ import annotations

import re
from typing import Optional

from ..crosscutting.exceptions import ValidationRejected
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_validator_rejection
from ..domain.entities import StatementRequest, ValidationVerdict

DESTRUCTIVE_KEYWORDS: frozenset[str] = frozenset(
    {"DROP", "ALTER", "TRUNCATE", "RENAME", "PURGE", "GRANT", "REVOKE"}
)
READ_KEYWORDS: frozenset[str] = frozenset({"SELECT", "WITH"})
WRITE_KEYWORDS: frozenset[str] = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE"})

# R: stable rule codes (metrics label + API `code` detail)
RULE_EMPTY = "empty"
RULE_TOO_LONG = "too_long"
RULE_TOO_MANY_PARAMS = "too_many_params"
RULE_UNTERMINATED = "unterminated_token"
RULE_MULTIPLE = "multiple_statements"
RULE_DESTRUCTIVE = "destructive_keyword"
RULE_NOT_READ_ONLY = "not_read_only"
RULE_NO_TARGET = "no_target_table"

_Q_QUOTE_CLOSERS = {"[": "]", "{": "}", "(": ")", "<": ">"}

_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_$#]*")
_IDENT = r'(?:"_"|[A-Za-z][A-Za-z0-9_$#]*)'
_TARGET_RE = re.compile(
    rf"\b(?:FROM|INTO|UPDATE|JOIN|TABLE|USING)\s+({_IDENT}(?:\s*\.\s*{_IDENT})?)",
    re.IGNORECASE,
)
_DELETE_SHORT_RE = re.compile(rf"^\s*DELETE\s+({_IDENT})", re.IGNORECASE)
_NOT_A_TABLE = frozenset({"SELECT", "WITH", "WHERE", "GROUP", "ORDER", "LATERAL"})


class UnterminatedToken(ValueError):
    """A literal, quoted identifier or block comment is never closed."""


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$#"


def _starts_q_quote(text: str, i: int) -> bool:
    """q'<d>...<d>' (also nq'...'), only at a token start."""
    if text[i] not in "qQ" or i + 2 >= len(text) or text[i + 1] != "'":
        return False
    if i == 0 or not _is_word_char(text[i - 1]):
        return True
    return text[i - 1] in "nN" and (i == 1 or not _is_word_char(text[i - 2]))


def mask_sql(text: str) -> str:
    """
    Replace literals with '?', quoted identifiers with "_" and comments with
    a space. Raises UnterminatedToken on unbalanced input.
    """
    out: list[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""

        if ch == "-" and nxt == "-":
            end = text.find("\n", i)
            i = n if end == -1 else end
            out.append(" ")
        elif ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            if end == -1:
                raise UnterminatedToken("unterminated block comment")
            i = end + 2
            out.append(" ")
        elif _starts_q_quote(text, i):
            opener = text[i + 2]
            closer = _Q_QUOTE_CLOSERS.get(opener, opener)
            end = text.find(closer + "'", i + 3)
            if end == -1:
                raise UnterminatedToken("unterminated q-quoted literal")
            i = end + 2
            out.append("'?'")
        elif ch == "'":
            j = i + 1
            while True:
                k = text.find("'", j)
                if k == -1:
                    raise UnterminatedToken("unterminated string literal")
                if k + 1 < n and text[k + 1] == "'":
                    j = k + 2  # '' escape
                    continue
                break
            i = k + 1
            out.append("'?'")
        elif ch == '"':
            k = text.find('"', i + 1)
            if k == -1:
                raise UnterminatedToken("unterminated quoted identifier")
            i = k + 1
            out.append('"_"')
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _first_keyword(masked: str) -> Optional[str]:
    match = _WORD_RE.search(masked.lstrip().lstrip("(").lstrip())
    return match.group(0).upper() if match else None


def _words(masked: str) -> set[str]:
    return {w.upper() for w in _WORD_RE.findall(masked)}


def _has_target_table(masked: str) -> bool:
    for match in _TARGET_RE.finditer(masked):
        name = match.group(1).split(".")[0].strip().upper()
        if name not in _NOT_A_TABLE:
            return True
    return _DELETE_SHORT_RE.search(masked) is not None


class StatementValidator:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      StatementValidator

    Responsibilities:
      - validate(): StatementRequest -> ValidationVerdict (pure)
      - ensure_valid(): raise ValidationRejected on a failing verdict

    Collaborators:
      - crosscutting.metrics
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        *,
        strict_mode: bool = False,
        max_chars: int = 20_000,
        max_params: int = 256,
    ) -> None:
        self.strict_mode = strict_mode
        self._max_chars = max_chars
        self._max_params = max_params

    def validate(self, request: StatementRequest) -> ValidationVerdict:
        verdict = self._evaluate(request)
        if not verdict.passed:
            record_validator_rejection(verdict.rule)
            logger.info(
                "statement rejected",
                extra={"rule": verdict.rule, "caller": request.caller or None},
            )
        return verdict

    def ensure_valid(self, request: StatementRequest) -> ValidationVerdict:
        verdict = self.validate(request)
        if not verdict.passed:
            raise ValidationRejected(verdict.reason, rule=verdict.rule)
        return verdict

    def _evaluate(self, request: StatementRequest) -> ValidationVerdict:
        text = request.text or ""
        if not text.strip():
            return ValidationVerdict.reject(RULE_EMPTY, "statement is empty")
        if len(text) > self._max_chars:
            return ValidationVerdict.reject(
                RULE_TOO_LONG, f"statement exceeds {self._max_chars} characters"
            )
        if request.param_count() > self._max_params:
            return ValidationVerdict.reject(
                RULE_TOO_MANY_PARAMS, f"more than {self._max_params} bound parameters"
            )

        try:
            masked = mask_sql(text)
        except UnterminatedToken as exc:
            return ValidationVerdict.reject(RULE_UNTERMINATED, str(exc))

        body = masked.strip()
        while body.endswith(";"):
            body = body[:-1].rstrip()
        if not body:
            return ValidationVerdict.reject(RULE_EMPTY, "statement is empty")
        if ";" in body:
            return ValidationVerdict.reject(
                RULE_MULTIPLE, "only a single statement is allowed"
            )

        words = _words(body)
        destructive = sorted(words & DESTRUCTIVE_KEYWORDS)
        if destructive and (self.strict_mode or not request.elevated):
            return ValidationVerdict.reject(
                RULE_DESTRUCTIVE,
                f"destructive statement rejected: {destructive[0]} requires elevated privileges",
            )

        if self.strict_mode or request.read_only:
            first = _first_keyword(body)
            if first not in READ_KEYWORDS:
                return ValidationVerdict.reject(
                    RULE_NOT_READ_ONLY,
                    "read-only request must start with SELECT or WITH",
                )
            writes = sorted(words & WRITE_KEYWORDS)
            if writes:
                return ValidationVerdict.reject(
                    RULE_NOT_READ_ONLY,
                    f"read-only request must not contain {writes[0]}",
                )

        if not _has_target_table(body):
            return ValidationVerdict.reject(
                RULE_NO_TARGET, "statement has no identifiable target table"
            )

        return ValidationVerdict.ok()
