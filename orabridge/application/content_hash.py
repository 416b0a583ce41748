"""
===============================================================================
MODULE: Content Hash (canonical payload hashing for idempotent sync)
===============================================================================

Responsibilities:
  - Serialize a record payload canonically (sorted keys, compact separators,
    NFC-normalized strings).
  - Compute SHA-256 over source table + canonical payload.

Collaborators:
  - application/sync_reconciler.py: compares incoming vs. stored hashes

Design decisions:
  - Pure functions (no IO, no side effects).
  - Key order never changes the hash; value types do ("1" != 1).
  - Scoped by source table: the same payload in two tables hashes differently.
  - Non-JSON values (datetime, Decimal, UUID) are hashed through str().
===============================================================================
"""

from __future__ import annotations

import hashlib
import json
import unicodedata
from typing import Any, Mapping


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return unicodedata.normalize("NFC", value)
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def canonical_payload(payload: Mapping[str, Any]) -> str:
    """Deterministic JSON text for a payload."""
    return json.dumps(
        _normalize(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def compute_record_hash(source_table: str, payload: Mapping[str, Any]) -> str:
    """
    SHA-256 over "<SOURCE_TABLE>:<canonical payload>".

    Returns a 64-char hex digest.
    """
    h = hashlib.sha256()
    h.update(source_table.strip().upper().encode("utf-8"))
    h.update(b":")
    h.update(canonical_payload(payload).encode("utf-8"))
    return h.hexdigest()
