"""
===============================================================================
CRC CARD — domain/services.py
===============================================================================

Module:
    External service ports (Protocols)

Responsibilities:
    - Define the contract for secret retrieval (the core never embeds
      credentials).
    - Keep application code independent from the secret store SDK.

Collaborators:
    - infrastructure/secrets/*: concrete implementations.
    - container.py: resolves the Oracle password through this port.
    - infrastructure/queue/rq_queue.py: SyncJobQueue adapter.

Rules:
    - Interfaces ONLY.
===============================================================================
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol


class SecretProvider(Protocol):
    """Contract for resolving a named secret."""

    def get_secret(self, name: str) -> str:
        """Secret value; raises SecretRetrievalError when it cannot be resolved."""
        ...


class SyncJobQueue(Protocol):
    """Contract for deferring a reconciliation batch to a background worker."""

    def enqueue_sync_batch(self, run_id: str, records: List[Dict[str, Any]]) -> str:
        """Enqueue the batch; returns the job id."""
        ...
