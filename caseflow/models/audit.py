"""AuditLogRecord - immutable record of every case status transition.

Append-only: rows are never updated or deleted. tenant_id is always set for
cross-tenant reporting queries.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from caseflow.database import Base, JSONType


class AuditLogRecord(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Action identifier, e.g. "dsr.transition", "breach_incident.transition"
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    entity_type: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="dsr | dsr_task | breach_incident",
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    extra: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_audit_tenant_timestamp", "tenant_id", "timestamp"),
        Index("ix_audit_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLogRecord id={self.id} action={self.action!r} "
            f"{self.old_status}->{self.new_status}>"
        )
