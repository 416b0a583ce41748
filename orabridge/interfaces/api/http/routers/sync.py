"""
===============================================================================
CRC CARD — interfaces/api/http/routers/sync.py
===============================================================================

Name:
    Sync Router

Responsibilities:
    - POST /api/sync: reconcile a batch now, per-record outcomes.
    - POST /api/sync/jobs: enqueue the batch for the background worker.
    - GET /api/sync/jobs/{run_id}: progress of a background run.
    - GET /api/sync/records/{record_id}: tracking record.

Collaborators:
    - application.usecases: ReconcileRecordsUseCase, EnqueueSyncBatchUseCase
    - domain.repositories: SyncStore, WorkflowProgressRepository
===============================================================================
"""

from __future__ import annotations

from collections import Counter

from fastapi import APIRouter, Depends

from .....application.usecases import EnqueueSyncBatchUseCase, ReconcileRecordsUseCase
from .....container import (
    get_enqueue_sync_use_case,
    get_reconcile_records_use_case,
    get_sync_store,
    get_workflow_progress_repository,
)
from .....crosscutting.error_responses import not_found
from .....domain.entities import SyncOutcomeKind
from .....domain.repositories import SyncStore, WorkflowProgressRepository
from ..schemas.sync import (
    SyncJobRes,
    SyncOutcomeOut,
    SyncReq,
    SyncRes,
    SyncRunOut,
    SyncTrackingOut,
)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("", response_model=SyncRes)
def reconcile(
    req: SyncReq,
    use_case: ReconcileRecordsUseCase = Depends(get_reconcile_records_use_case),
) -> SyncRes:
    outcomes = use_case.execute(req.raw_records())
    counts = Counter(o.outcome for o in outcomes)
    return SyncRes(
        outcomes=[SyncOutcomeOut.model_validate(o.to_dict()) for o in outcomes],
        applied=counts[SyncOutcomeKind.APPLIED],
        skipped=counts[SyncOutcomeKind.SKIPPED_DUPLICATE],
        failed=counts[SyncOutcomeKind.FAILED],
    )


@router.post("/jobs", response_model=SyncJobRes, status_code=202)
def enqueue(
    req: SyncReq,
    use_case: EnqueueSyncBatchUseCase = Depends(get_enqueue_sync_use_case),
) -> SyncJobRes:
    job_id = use_case.execute(req.raw_records())
    return SyncJobRes(job_id=job_id, run_id=job_id)


@router.get("/jobs/{run_id}", response_model=SyncRunOut)
def get_run(
    run_id: str,
    repository: WorkflowProgressRepository = Depends(get_workflow_progress_repository),
) -> SyncRunOut:
    run = repository.get_run(run_id)
    if run is None:
        raise not_found("Sync run", run_id)
    return SyncRunOut(
        run_id=run.run_id,
        workflow=run.workflow,
        status=run.status.value,
        completed_steps=list(run.completed_steps),
        error=run.error,
        summary=run.state.get("summary"),
    )


@router.get("/records/{record_id}", response_model=SyncTrackingOut)
def get_record(
    record_id: str,
    store: SyncStore = Depends(get_sync_store),
) -> SyncTrackingOut:
    record = store.get(record_id)
    if record is None:
        raise not_found("Sync record", record_id)
    return SyncTrackingOut(
        record_id=record.record_id,
        source_table=record.source_table,
        content_hash=record.content_hash,
        status=record.status.value,
        last_synced_at=record.last_synced_at,
        changed_at=record.changed_at,
        error=record.error,
    )
