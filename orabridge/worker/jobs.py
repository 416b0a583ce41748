"""
===============================================================================
CRC CARD — worker/jobs.py (RQ jobs: background reconciliation)
===============================================================================

Responsibilities:
  - Define the entrypoint RQ runs for queued sync batches.
  - Run the batch as a resumable workflow (validate -> reconcile ->
    summarize) so an RQ retry resumes after the last completed step.
  - Emit logs/metrics with a consistent context; always clear it.

Collaborators:
  - application.workflow.Workflow / WorkflowStep
  - application.usecases.reconcile_records.parse_incoming_records
  - container.get_sync_reconciler / get_workflow_progress_repository
  - crosscutting.metrics.observe_sync_job_duration
  - context (request_id_var, http_method_var, http_path_var, clear_context)
===============================================================================
"""

from __future__ import annotations

import time
from collections import Counter
from typing import Any, Dict, List

from rq import get_current_job

from ..application.sync_reconciler import SyncReconciler
from ..application.usecases.reconcile_records import parse_incoming_records
from ..application.workflow import Workflow, WorkflowStep
from ..container import get_sync_reconciler, get_workflow_progress_repository
from ..context import clear_context, http_method_var, http_path_var, request_id_var
from ..crosscutting.logger import logger
from ..crosscutting.metrics import observe_sync_job_duration
from ..domain.entities import WorkflowRun
from ..domain.repositories import WorkflowProgressRepository

SYNC_WORKFLOW_NAME = "sync_batch"


def build_sync_workflow(
    reconciler: SyncReconciler,
    repository: WorkflowProgressRepository,
) -> Workflow:
    """
    Steps share the run state:
      - records:  raw dicts (initial state)
      - outcomes: per-record outcome dicts (after reconcile)
      - summary:  counts by outcome (after summarize)
    """

    def validate(state: Dict[str, Any]) -> Dict[str, Any]:
        parse_incoming_records(state.get("records") or [])
        return {"validated": len(state.get("records") or [])}

    def reconcile(state: Dict[str, Any]) -> Dict[str, Any]:
        outcomes = reconciler.reconcile(parse_incoming_records(state["records"]))
        return {"outcomes": [o.to_dict() for o in outcomes]}

    def summarize(state: Dict[str, Any]) -> Dict[str, Any]:
        counts = Counter(o["outcome"] for o in state.get("outcomes", []))
        return {"summary": dict(counts), "records": []}

    return Workflow(
        SYNC_WORKFLOW_NAME,
        [
            WorkflowStep("validate", validate),
            WorkflowStep("reconcile", reconcile),
            WorkflowStep("summarize", summarize),
        ],
        repository,
    )


def sync_batch_job(run_id: str, records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    RQ job: reconcile a queued batch.

    Contract:
      - `run_id` identifies the workflow run (and the RQ job id).
      - If the job raises, RQ re-runs it (retry set at enqueue time) and the
        workflow resumes from its persisted progress.
    """
    job = get_current_job()
    job_id = getattr(job, "id", None)

    request_id_var.set(job_id or run_id)
    http_method_var.set("WORKER")
    http_path_var.set("rq.sync_batch_job")

    start = time.perf_counter()
    run: WorkflowRun | None = None
    try:
        logger.info(
            "sync job started",
            extra={"run_id": run_id, "job_id": job_id, "records": len(records)},
        )
        workflow = build_sync_workflow(
            get_sync_reconciler(), get_workflow_progress_repository()
        )
        run = workflow.run(run_id, {"records": records})
        return {"run_id": run_id, "status": run.status.value, "summary": run.state.get("summary", {})}

    except Exception as exc:
        logger.exception(
            "sync job failed",
            extra={"run_id": run_id, "job_id": job_id, "error": str(exc)},
        )
        raise

    finally:
        duration = time.perf_counter() - start
        observe_sync_job_duration(duration)
        logger.info(
            "sync job finished",
            extra={
                "run_id": run_id,
                "job_id": job_id,
                "status": run.status.value if run is not None else "FAILED",
                "duration_seconds": round(duration, 3),
            },
        )
        clear_context()


__all__ = ["sync_batch_job", "build_sync_workflow", "SYNC_WORKFLOW_NAME"]
