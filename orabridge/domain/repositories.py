"""
CRC — domain/repositories.py

Name
- Domain Repository Interfaces (Protocols)

Responsibilities
- Define persistence contracts for sync tracking and workflow progress.
- Keep the application layer independent from Oracle / in-memory details.
- Enable straightforward unit testing (in-memory stores, mocks).

Collaborators
- domain.entities: SyncRecord, IncomingRecord, WorkflowRun
- infrastructure.repositories: oracle/*, in_memory/* implementations

Constraints
- Pure interfaces only: no SQL, no infrastructure imports.
- A SyncTransaction commits on clean exit of `SyncStore.transaction()` and
  rolls back when the block raises. Business write + tracking upsert MUST
  share one transaction.
"""

from typing import ContextManager, Optional, Protocol

from .entities import IncomingRecord, SyncRecord, WorkflowRun


class SyncTransaction(Protocol):
    """
    R: Operations available inside one sync transaction.

    Implementations must provide:
      - Locked lookup of the tracking record (read-then-upsert safety)
      - The business write for the incoming change
      - The tracking upsert
    """

    def get_for_update(self, record_id: str) -> Optional[SyncRecord]:
        """R: Fetch the tracking record and lock it until commit/rollback."""
        ...

    def apply_change(self, record: IncomingRecord) -> None:
        """R: Apply the business write (insert or update the target row)."""
        ...

    def upsert(self, record: SyncRecord) -> None:
        """R: Insert or update the tracking record."""
        ...


class SyncStore(Protocol):
    """R: Durable tracking store for reconciled records."""

    def transaction(self) -> ContextManager[SyncTransaction]:
        """R: Open a transaction; commit on success, roll back on error."""
        ...

    def get(self, record_id: str) -> Optional[SyncRecord]:
        """R: Read a tracking record without locking."""
        ...


class WorkflowProgressRepository(Protocol):
    """R: Persisted progress markers for step-sequence workflows."""

    def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        """R: Load a run (None if it never started)."""
        ...

    def save_run(self, run: WorkflowRun) -> None:
        """R: Insert or update a run (status, completed steps, state)."""
        ...
