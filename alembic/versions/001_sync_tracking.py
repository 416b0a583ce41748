"""
============================================================
CRC CARD — 001_sync_tracking (Alembic migration)
============================================================
Responsibilities:
  - Create SYNC_RECORDS: one tracking row per synchronized record
    (content hash, status, last sync time, source changed_at, error).
  - Create WORKFLOW_PROGRESS: persisted progress markers of step-sequence
    workflows (completed steps + state as JSON).

Collaborators:
  - Oracle 19c+ (IS JSON check constraints)
  - infrastructure/repositories/oracle/*

Policy:
  - status is constrained to pending/success/failed.
  - Records are never deleted by the service (retention is external).
============================================================
"""

from typing import Sequence, Union

from alembic import op

revision: str = "001_sync_tracking"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE sync_records (
            record_id       VARCHAR2(256)  NOT NULL,
            source_table    VARCHAR2(257)  NOT NULL,
            content_hash    CHAR(64)       NOT NULL,
            status          VARCHAR2(16)   DEFAULT 'pending' NOT NULL,
            last_synced_at  TIMESTAMP WITH TIME ZONE,
            changed_at      TIMESTAMP WITH TIME ZONE,
            error_message   VARCHAR2(4000),
            CONSTRAINT pk_sync_records PRIMARY KEY (record_id),
            CONSTRAINT ck_sync_records_status
                CHECK (status IN ('pending', 'success', 'failed'))
        )
        """
    )
    op.execute("CREATE INDEX ix_sync_records_status ON sync_records (status)")

    op.execute(
        """
        CREATE TABLE workflow_progress (
            run_id           VARCHAR2(64)   NOT NULL,
            workflow         VARCHAR2(128)  NOT NULL,
            status           VARCHAR2(16)   NOT NULL,
            completed_steps  CLOB           DEFAULT '[]' NOT NULL,
            state            CLOB           DEFAULT '{}' NOT NULL,
            error_message    VARCHAR2(4000),
            updated_at       TIMESTAMP WITH TIME ZONE DEFAULT SYSTIMESTAMP NOT NULL,
            CONSTRAINT pk_workflow_progress PRIMARY KEY (run_id),
            CONSTRAINT ck_workflow_progress_steps CHECK (completed_steps IS JSON),
            CONSTRAINT ck_workflow_progress_state CHECK (state IS JSON),
            CONSTRAINT ck_workflow_progress_status
                CHECK (status IN ('running', 'completed', 'failed'))
        )
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE workflow_progress PURGE")
    op.execute("DROP TABLE sync_records PURGE")
