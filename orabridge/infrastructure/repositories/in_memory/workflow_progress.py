"""
CRC — infrastructure/repositories/in_memory/workflow_progress.py

Name
- InMemoryWorkflowProgressRepository

Responsibilities
- Store workflow runs in memory (tests / FAKE_DB local dev).

Constraints / Notes
- Thread-safe access (Lock); stored and returned runs are copies.
"""

from __future__ import annotations

import copy
from threading import Lock
from typing import Dict, Optional

from ....domain.entities import WorkflowRun


class InMemoryWorkflowProgressRepository:
    """R: Thread-safe in-memory WorkflowProgressRepository."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._runs: Dict[str, WorkflowRun] = {}

    def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        with self._lock:
            run = self._runs.get(run_id)
            return copy.deepcopy(run) if run is not None else None

    def save_run(self, run: WorkflowRun) -> None:
        with self._lock:
            self._runs[run.run_id] = copy.deepcopy(run)
