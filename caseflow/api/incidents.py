"""Breach incident endpoints.

POST  /api/v1/incidents                          - Open an incident
GET   /api/v1/incidents                          - List incidents (status/severity filters)
GET   /api/v1/incidents/{incident_id}            - Incident with SLA snapshot
PATCH /api/v1/incidents/{incident_id}            - Update fields and/or status
POST  /api/v1/incidents/{incident_id}/reports/cert-in - Generate the CERT-In report
POST  /api/v1/incidents/{incident_id}/reports/dpb     - Generate the DPB report
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Query, status
from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from caseflow.api.dependencies import ContextDep, ServiceDep
from caseflow.compliance.models import IncidentSeverity, IncidentStatus
from caseflow.telemetry.logging import bind_case_context

router = APIRouter(prefix="/incidents", tags=["incidents"])


# ------------------------------------------------------------------ #
# Request models
# ------------------------------------------------------------------ #


class IncidentCreate(BaseModel):
    """Request body for opening a breach incident."""

    title: str = Field(..., min_length=1, max_length=255)
    severity: IncidentSeverity
    detected_at: AwareDatetime | None = Field(
        default=None, description="Defaults to the time the incident is recorded"
    )
    occurred_at: AwareDatetime | None = None
    description: str = ""
    type: str = Field(default="", description="Nature of the breach, free-form")
    affected_systems: list[str] = Field(default_factory=list)
    pii_categories: list[str] = Field(default_factory=list)
    affected_data_subject_count: int = Field(default=0, ge=0)
    poc_name: str | None = None
    poc_role: str | None = None
    poc_email: str | None = None


class IncidentUpdate(BaseModel):
    """Partial update. Only fields present in the body are written.

    Reportability flags are derived and cannot be set here.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    type: str | None = None
    severity: IncidentSeverity | None = None
    status: IncidentStatus | None = None
    detected_at: AwareDatetime | None = None
    occurred_at: AwareDatetime | None = None
    affected_systems: list[str] | None = None
    pii_categories: list[str] | None = None
    affected_data_subject_count: int | None = Field(default=None, ge=0)
    poc_name: str | None = None
    poc_role: str | None = None
    poc_email: str | None = None


# ------------------------------------------------------------------ #
# Endpoints
# ------------------------------------------------------------------ #


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_incident(body: IncidentCreate, ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    outcome = await service.create_incident(ctx.tenant_id, actor=ctx.actor, **body.model_dump())
    return outcome.to_dict()


@router.get("")
async def list_incidents(
    ctx: ContextDep,
    service: ServiceDep,
    status_filter: IncidentStatus | None = Query(default=None, alias="status"),
    severity: IncidentSeverity | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> dict[str, Any]:
    result = await service.list_incidents(
        ctx.tenant_id, status=status_filter, severity=severity, page=page, page_size=page_size
    )
    return {
        "items": [view.to_dict() for view in result.items],
        "total": result.total,
        "page": result.page,
        "page_size": result.page_size,
        "has_next": result.has_next,
    }


@router.get("/{incident_id}")
async def get_incident(incident_id: uuid.UUID, ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    view = await service.get_incident(incident_id, tenant_id=ctx.tenant_id)
    return view.to_dict()


@router.patch("/{incident_id}")
async def update_incident(
    incident_id: uuid.UUID, body: IncidentUpdate, ctx: ContextDep, service: ServiceDep
) -> dict[str, Any]:
    bind_case_context(incident_id, "breach_incident")
    changes = body.model_dump(exclude_unset=True)
    outcome = await service.update_incident(
        incident_id, changes, actor=ctx.actor, tenant_id=ctx.tenant_id
    )
    return outcome.to_dict()


@router.post("/{incident_id}/reports/cert-in", status_code=status.HTTP_201_CREATED)
async def generate_cert_in_report(
    incident_id: uuid.UUID, ctx: ContextDep, service: ServiceDep
) -> dict[str, Any]:
    bind_case_context(incident_id, "breach_incident")
    outcome = await service.generate_cert_in_report(
        incident_id, actor=ctx.actor, tenant_id=ctx.tenant_id
    )
    return outcome.to_dict()


@router.post("/{incident_id}/reports/dpb", status_code=status.HTTP_201_CREATED)
async def generate_dpb_report(
    incident_id: uuid.UUID, ctx: ContextDep, service: ServiceDep
) -> dict[str, Any]:
    bind_case_context(incident_id, "breach_incident")
    outcome = await service.generate_dpb_report(incident_id, actor=ctx.actor, tenant_id=ctx.tenant_id)
    return outcome.to_dict()
