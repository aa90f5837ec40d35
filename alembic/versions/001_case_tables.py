"""Create case tables: dsr_requests, dsr_tasks, breach_incidents, audit_logs.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Adds:
- dsr_requests table
  - id UUID PK
  - tenant_id UUID
  - request_type VARCHAR(32)  ACCESS | ERASURE | CORRECTION | PORTABILITY | NOMINATION | GRIEVANCE
  - status VARCHAR(32)
  - subject_name, subject_email, subject_identifiers JSONB
  - priority VARCHAR(16)  HIGH | MEDIUM | LOW
  - sla_deadline TIMESTAMP WITH TIME ZONE (fixed at creation)
  - version INTEGER  optimistic concurrency counter

- dsr_tasks table
  - id UUID PK (deterministic, derived from dsr_id + data_source_id)
  - dsr_id UUID FK -> dsr_requests.id CASCADE
  - data_source_id VARCHAR(255), unique per DSR

- breach_incidents table
  - reportability flags, report timestamps, inline JSONB reports list
  - version INTEGER  optimistic concurrency counter

- audit_logs table (append-only transition log)

Notes:
- No enum types; status values stored as VARCHAR for schema flexibility.
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all case tables."""

    # ------------------------------------------------------------------
    # dsr_requests
    # ------------------------------------------------------------------
    op.create_table(
        "dsr_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("request_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("subject_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("subject_email", sa.String(320), nullable=False),
        sa.Column(
            "subject_identifiers",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("priority", sa.String(16), nullable=False, server_default="MEDIUM"),
        sa.Column(
            "sla_deadline",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Computed once at creation from the priority window",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True, comment="Rejection reason"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_dsr_requests_tenant_id", "dsr_requests", ["tenant_id"])
    op.create_index("ix_dsr_tenant_status", "dsr_requests", ["tenant_id", "status"])
    op.create_index("ix_dsr_tenant_deadline", "dsr_requests", ["tenant_id", "sla_deadline"])

    # ------------------------------------------------------------------
    # dsr_tasks
    # ------------------------------------------------------------------
    op.create_table(
        "dsr_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "dsr_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("dsr_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("data_source_id", sa.String(255), nullable=False),
        sa.Column("task_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("dsr_id", "data_source_id", name="uq_dsr_task_source"),
    )
    op.create_index("ix_dsr_tasks_dsr_id", "dsr_tasks", ["dsr_id"])

    # ------------------------------------------------------------------
    # breach_incidents
    # ------------------------------------------------------------------
    op.create_table(
        "breach_incidents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(128), nullable=False, server_default=""),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="OPEN"),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "affected_systems",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "pii_categories",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("affected_data_subject_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("poc_name", sa.String(255), nullable=True),
        sa.Column("poc_role", sa.String(255), nullable=True),
        sa.Column("poc_email", sa.String(320), nullable=True),
        sa.Column("is_reportable_cert_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_reportable_dpb", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reported_to_cert_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reported_to_dpb_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "reports",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Generated regulator reports: [{regulator, generated_at, payload_json}]",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_breach_incidents_tenant_id", "breach_incidents", ["tenant_id"])
    op.create_index("ix_incident_tenant_status", "breach_incidents", ["tenant_id", "status"])
    op.create_index("ix_incident_tenant_severity", "breach_incidents", ["tenant_id", "severity"])

    # ------------------------------------------------------------------
    # audit_logs
    # ------------------------------------------------------------------
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("old_status", sa.String(32), nullable=True),
        sa.Column("new_status", sa.String(32), nullable=False),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column(
            "extra",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_timestamp", "audit_logs", ["timestamp"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_tenant_timestamp", "audit_logs", ["tenant_id", "timestamp"])
    op.create_index("ix_audit_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    """Drop all case tables."""
    op.drop_table("audit_logs")
    op.drop_table("breach_incidents")
    op.drop_table("dsr_tasks")
    op.drop_table("dsr_requests")
