"""
Name: Record Content Hash Unit Tests

Responsibilities:
  - Verify the hash is deterministic and independent of key order
  - Verify it is scoped by source table and sensitive to value types
  - Verify output format (hex string, 64 chars)
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from orabridge.application.content_hash import canonical_payload, compute_record_hash

pytestmark = pytest.mark.unit


class TestCanonicalPayload:
    def test_sorted_compact_json(self):
        assert canonical_payload({"b": 1, "a": [2, {"d": 1, "c": 0}]}) == '{"a":[2,{"c":0,"d":1}],"b":1}'

    def test_nfc_normalization(self):
        assert canonical_payload({"name": "e\u0301"}) == canonical_payload({"name": "\u00e9"})

    def test_non_json_values_use_str(self):
        text = canonical_payload({"amount": Decimal("1.50"), "at": datetime(2024, 1, 1, tzinfo=timezone.utc)})

        assert '"amount":"1.50"' in text
        assert "2024-01-01 00:00:00+00:00" in text


class TestComputeRecordHash:
    def test_deterministic(self):
        assert compute_record_hash("customers", {"a": 1}) == compute_record_hash("customers", {"a": 1})

    def test_key_order_does_not_matter(self):
        h1 = compute_record_hash("customers", {"a": 1, "b": 2})
        h2 = compute_record_hash("customers", {"b": 2, "a": 1})

        assert h1 == h2

    def test_table_name_case_does_not_matter(self):
        assert compute_record_hash("Customers ", {"a": 1}) == compute_record_hash("CUSTOMERS", {"a": 1})

    def test_scoped_by_table(self):
        assert compute_record_hash("customers", {"a": 1}) != compute_record_hash("orders", {"a": 1})

    def test_value_type_matters(self):
        assert compute_record_hash("customers", {"a": 1}) != compute_record_hash("customers", {"a": "1"})

    def test_output_format(self):
        digest = compute_record_hash("customers", {})

        assert re.fullmatch(r"[0-9a-f]{64}", digest)
