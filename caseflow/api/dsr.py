"""Data-subject request endpoints.

POST /api/v1/dsr                              - Create a DSR
GET  /api/v1/dsr                              - List DSRs (status filter, paginated)
GET  /api/v1/dsr/overdue                      - Open DSRs past their SLA deadline
GET  /api/v1/dsr/{dsr_id}                     - DSR with tasks, progress and SLA
POST /api/v1/dsr/{dsr_id}/approve             - Approve (and fan out)
POST /api/v1/dsr/{dsr_id}/reject              - Reject with a reason
POST /api/v1/dsr/{dsr_id}/execute             - Fan out an APPROVED DSR
POST /api/v1/dsr/{dsr_id}/verify-identity     - Complete identity verification
POST /api/v1/dsr/tasks/{task_id}/outcome      - Record a task execution outcome
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, EmailStr, Field

from caseflow.api.dependencies import ContextDep, ServiceDep
from caseflow.compliance.models import DSRStatus, DSRType, Priority, TaskStatus
from caseflow.telemetry.logging import bind_case_context

router = APIRouter(prefix="/dsr", tags=["dsr"])


# ------------------------------------------------------------------ #
# Request models
# ------------------------------------------------------------------ #


class DSRCreate(BaseModel):
    """Request body for opening a data-subject request."""

    request_type: DSRType
    subject_email: EmailStr = Field(..., description="Contact address of the data subject")
    subject_name: str = Field(default="", max_length=255)
    subject_identifiers: dict[str, str] = Field(
        default_factory=dict,
        description="Free-form identifiers, e.g. {'phone': '+91...', 'customer_id': 'C-42'}",
    )
    priority: Priority = Priority.MEDIUM
    notes: str | None = None
    require_identity_verification: bool | None = Field(
        default=None,
        description="Override the per-type identity verification setting for this request",
    )


class DSRReject(BaseModel):
    reason: str = Field(..., description="Why the request is rejected; stored verbatim")


class TaskOutcome(BaseModel):
    """Outcome reported by the executor working on one data source."""

    status: TaskStatus
    result: dict[str, Any] | None = None
    error: str | None = None


# ------------------------------------------------------------------ #
# Endpoints
# ------------------------------------------------------------------ #


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_dsr(body: DSRCreate, ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    outcome = await service.create_dsr(
        ctx.tenant_id,
        body.request_type,
        subject_email=str(body.subject_email),
        subject_name=body.subject_name,
        subject_identifiers=body.subject_identifiers,
        priority=body.priority,
        notes=body.notes,
        require_identity_verification=body.require_identity_verification,
        actor=ctx.actor,
    )
    return outcome.to_dict()


@router.get("")
async def list_dsrs(
    ctx: ContextDep,
    service: ServiceDep,
    status_filter: DSRStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> dict[str, Any]:
    result = await service.list_dsrs(ctx.tenant_id, status=status_filter, page=page, page_size=page_size)
    return {
        "items": [view.to_dict() for view in result.items],
        "total": result.total,
        "page": result.page,
        "page_size": result.page_size,
        "has_next": result.has_next,
    }


@router.get("/overdue")
async def list_overdue_dsrs(ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    views = await service.list_overdue(ctx.tenant_id)
    return {"items": [view.to_dict() for view in views], "total": len(views)}


@router.get("/{dsr_id}")
async def get_dsr(dsr_id: uuid.UUID, ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    view = await service.get_dsr(dsr_id, tenant_id=ctx.tenant_id)
    return view.to_dict()


@router.post("/{dsr_id}/approve")
async def approve_dsr(dsr_id: uuid.UUID, ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    bind_case_context(dsr_id, "dsr")
    outcome = await service.approve(dsr_id, actor=ctx.actor, tenant_id=ctx.tenant_id)
    return outcome.to_dict()


@router.post("/{dsr_id}/reject")
async def reject_dsr(
    dsr_id: uuid.UUID, body: DSRReject, ctx: ContextDep, service: ServiceDep
) -> dict[str, Any]:
    bind_case_context(dsr_id, "dsr")
    outcome = await service.reject(dsr_id, body.reason, actor=ctx.actor, tenant_id=ctx.tenant_id)
    return outcome.to_dict()


@router.post("/{dsr_id}/execute")
async def execute_dsr(dsr_id: uuid.UUID, ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    bind_case_context(dsr_id, "dsr")
    outcome = await service.execute(dsr_id, actor=ctx.actor, tenant_id=ctx.tenant_id)
    return outcome.to_dict()


@router.post("/{dsr_id}/verify-identity")
async def verify_identity(dsr_id: uuid.UUID, ctx: ContextDep, service: ServiceDep) -> dict[str, Any]:
    bind_case_context(dsr_id, "dsr")
    outcome = await service.complete_identity_verification(
        dsr_id, actor=ctx.actor, tenant_id=ctx.tenant_id
    )
    return outcome.to_dict()


@router.post("/tasks/{task_id}/outcome")
async def record_task_outcome(
    task_id: uuid.UUID, body: TaskOutcome, ctx: ContextDep, service: ServiceDep
) -> dict[str, Any]:
    bind_case_context(task_id, "dsr_task")
    outcome = await service.record_task_outcome(
        task_id,
        body.status,
        result=body.result,
        error=body.error,
        actor=ctx.actor,
        tenant_id=ctx.tenant_id,
    )
    return outcome.to_dict()
