"""Oracle repositories (production persistence)."""

from .sync_store import OracleSyncStore
from .workflow_progress import OracleWorkflowProgressRepository

__all__ = ["OracleSyncStore", "OracleWorkflowProgressRepository"]
