"""
===============================================================================
MODULE: Resumable step-sequence workflows
===============================================================================

Goal
----
Model long-running multi-step work as an explicit state machine:

    RUNNING --step ok--> RUNNING ... --last step--> COMPLETED
       \--step raised--> FAILED  (re-run resumes after the last completed step)

Each completed step is persisted as a progress marker BEFORE the next step
starts, so a crash mid-sequence resumes instead of restarting.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Components:
  - WorkflowStep
  - Workflow

Collaborators:
  - domain.repositories.WorkflowProgressRepository
  - worker/jobs.py (sync workflow)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from ..crosscutting.logger import logger
from ..domain.entities import WorkflowRun, WorkflowStatus
from ..domain.repositories import WorkflowProgressRepository

StepFn = Callable[[Dict[str, Any]], Optional[Mapping[str, Any]]]


@dataclass(frozen=True)
class WorkflowStep:
    """A named step: receives the run state, returns updates to merge into it."""

    name: str
    run: StepFn


class Workflow:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      Workflow

    Responsibilities:
      - Execute steps in order, skipping those already completed
      - Persist progress after every step, and the terminal status
      - Surface the failing step (status FAILED + error) and re-raise

    Collaborators:
      - WorkflowProgressRepository
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[WorkflowStep],
        repository: WorkflowProgressRepository,
    ) -> None:
        names = [s.name for s in steps]
        if not names:
            raise ValueError("a workflow needs at least one step")
        if len(set(names)) != len(names):
            raise ValueError("workflow step names must be unique")
        self.name = name
        self._steps = list(steps)
        self._repository = repository

    @property
    def step_names(self) -> list[str]:
        return [s.name for s in self._steps]

    def run(self, run_id: str, initial_state: Optional[Mapping[str, Any]] = None) -> WorkflowRun:
        run = self._repository.get_run(run_id)
        if run is None:
            run = WorkflowRun(run_id=run_id, workflow=self.name, state=dict(initial_state or {}))
            self._repository.save_run(run)
        elif run.workflow != self.name:
            raise ValueError(f"run '{run_id}' belongs to workflow '{run.workflow}'")

        if run.status == WorkflowStatus.COMPLETED:
            logger.info("workflow already completed", extra={"run_id": run_id, "workflow": self.name})
            return run

        if run.completed_steps:
            logger.info(
                "resuming workflow",
                extra={"run_id": run_id, "workflow": self.name, "completed": list(run.completed_steps)},
            )
        run.status = WorkflowStatus.RUNNING
        run.error = None

        for step in self._steps:
            if run.is_step_done(step.name):
                continue
            try:
                updates = step.run(run.state)
            except Exception as exc:
                run.status = WorkflowStatus.FAILED
                run.error = f"{step.name}: {exc}"
                self._repository.save_run(run)
                logger.error(
                    "workflow step failed",
                    extra={"run_id": run_id, "workflow": self.name, "step": step.name, "error": str(exc)},
                )
                raise
            if updates:
                run.state.update(updates)
            run.complete_step(step.name)
            self._repository.save_run(run)

        run.status = WorkflowStatus.COMPLETED
        self._repository.save_run(run)
        logger.info("workflow completed", extra={"run_id": run_id, "workflow": self.name})
        return run
