"""SQLAlchemy ORM records for data-subject requests and their tasks.

Optimistic locking uses ``version_id_col`` with the generator disabled: the
store sets the next version explicitly, and SQLAlchemy adds
``WHERE version = <loaded version>`` to every UPDATE. A concurrent writer
therefore surfaces as ``StaleDataError`` on flush.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from caseflow.database import Base, JSONType


class DSRRecord(Base):
    """Persistent record of a data-subject request."""

    __tablename__ = "dsr_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    request_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="ACCESS | ERASURE | CORRECTION | PORTABILITY | NOMINATION | GRIEVANCE",
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    subject_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    subject_email: Mapped[str] = mapped_column(String(320), nullable=False)
    subject_identifiers: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Ordered key -> value identifiers of the data subject",
    )
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")
    sla_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Computed once at creation from the priority window",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True, comment="Rejection reason")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    __table_args__ = (
        Index("ix_dsr_tenant_status", "tenant_id", "status"),
        Index("ix_dsr_tenant_deadline", "tenant_id", "sla_deadline"),
    )

    def __repr__(self) -> str:
        return f"<DSRRecord id={self.id} type={self.request_type} status={self.status}>"


class DSRTaskRecord(Base):
    """Persistent record of one DSR task against one data source."""

    __tablename__ = "dsr_tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    dsr_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("dsr_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    data_source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    task_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("dsr_id", "data_source_id", name="uq_dsr_task_source"),)

    def __repr__(self) -> str:
        return f"<DSRTaskRecord id={self.id} source={self.data_source_id!r} status={self.status}>"
