"""
===============================================================================
CRC CARD — schemas/sync.py
===============================================================================

Module:
    HTTP schemas for record synchronization

Responsibilities:
    - Incoming change records (camelCase on the wire).
    - Per-record outcomes, tracking record view, background job views.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .....crosscutting.config import get_settings

_settings = get_settings()


class SyncRecordIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    record_id: str = Field(..., alias="recordId", min_length=1, max_length=256)
    source_table: str = Field(..., alias="sourceTable", min_length=1, max_length=257)
    payload: dict[str, Any]
    changed_at: datetime | None = Field(default=None, alias="changedAt")


class SyncReq(BaseModel):
    records: list[SyncRecordIn] = Field(..., min_length=1, max_length=_settings.sync_max_batch_size)

    def raw_records(self) -> list[dict[str, Any]]:
        """JSON-safe dicts (camelCase) for the use cases and the queue."""
        return [r.model_dump(mode="json", by_alias=True) for r in self.records]


class SyncOutcomeOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    record_id: str = Field(..., alias="recordId")
    outcome: str
    content_hash: str = Field(..., alias="contentHash")
    error: str | None = None
    code: str | None = None


class SyncRes(BaseModel):
    outcomes: list[SyncOutcomeOut]
    applied: int
    skipped: int
    failed: int


class SyncJobRes(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    run_id: str = Field(..., alias="runId")


class SyncTrackingOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    record_id: str = Field(..., alias="recordId")
    source_table: str = Field(..., alias="sourceTable")
    content_hash: str = Field(..., alias="contentHash")
    status: str
    last_synced_at: datetime | None = Field(default=None, alias="lastSyncedAt")
    changed_at: datetime | None = Field(default=None, alias="changedAt")
    error: str | None = None


class SyncRunOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(..., alias="runId")
    workflow: str
    status: str
    completed_steps: list[str] = Field(..., alias="completedSteps")
    error: str | None = None
    summary: dict[str, Any] | None = None
