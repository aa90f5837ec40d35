"""SQLAlchemy ORM record for breach incidents.

Generated regulator reports are stored inline as a JSON list; each entry keeps
the canonical payload text exactly as it was produced.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from caseflow.database import Base, JSONType


class BreachIncidentRecord(Base):
    """Persistent record of a personal-data breach incident."""

    __tablename__ = "breach_incidents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="OPEN")
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    occurred_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    affected_systems: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    pii_categories: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    affected_data_subject_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    poc_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    poc_role: Mapped[str | None] = mapped_column(String(255), nullable=True)
    poc_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_reportable_cert_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_reportable_dpb: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reported_to_cert_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reported_to_dpb_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reports: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Generated regulator reports: [{regulator, generated_at, payload_json}]",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    __table_args__ = (
        Index("ix_incident_tenant_status", "tenant_id", "status"),
        Index("ix_incident_tenant_severity", "tenant_id", "severity"),
    )

    def __repr__(self) -> str:
        return f"<BreachIncidentRecord id={self.id} severity={self.severity} status={self.status}>"
