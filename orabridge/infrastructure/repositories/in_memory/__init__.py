"""In-memory repositories (tests / local development)."""

from .sync_store import InMemorySyncStore
from .workflow_progress import InMemoryWorkflowProgressRepository

__all__ = ["InMemorySyncStore", "InMemoryWorkflowProgressRepository"]
