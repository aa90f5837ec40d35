"""Domain model for compliance cases.

Data-Subject Requests (DSR) and Breach Incidents are plain dataclasses; the
ORM records in ``caseflow.models`` are converted to and from these on every
store read/write so that policy and state-machine code never touches the
database layer.

Status values are upper-case strings because they are exchanged verbatim
with the UI layer.
"""

from __future__ import annotations

import copy
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class DSRType(StrEnum):
    """Data-subject request types."""

    ACCESS = "ACCESS"
    ERASURE = "ERASURE"
    CORRECTION = "CORRECTION"
    PORTABILITY = "PORTABILITY"
    NOMINATION = "NOMINATION"  # Case record only, no data-source execution
    GRIEVANCE = "GRIEVANCE"  # Case record only, no data-source execution


class DSRStatus(StrEnum):
    IDENTITY_VERIFICATION = "IDENTITY_VERIFICATION"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class Priority(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class TaskStatus(StrEnum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"


class IncidentSeverity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IncidentStatus(StrEnum):
    OPEN = "OPEN"
    INVESTIGATING = "INVESTIGATING"
    CONTAINED = "CONTAINED"
    RESOLVED = "RESOLVED"
    REPORTED = "REPORTED"
    CLOSED = "CLOSED"


class Regulator(StrEnum):
    CERT_IN = "CERT_IN"
    DPB = "DPB"


DSR_TERMINAL_STATUSES = frozenset({DSRStatus.COMPLETED, DSRStatus.REJECTED, DSRStatus.FAILED})
TASK_TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.VERIFIED, TaskStatus.FAILED})
TASK_SUCCESS_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.VERIFIED})
INCIDENT_NOTIFY_STATUSES = frozenset({IncidentStatus.REPORTED, IncidentStatus.CLOSED})


def ordered_unique(values: list[str] | tuple[str, ...] | None) -> list[str]:
    """Return *values* with blanks and duplicates removed, first occurrence wins."""
    seen: dict[str, None] = {}
    for value in values or ():
        value = value.strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class DataSubject:
    """Identity of the person exercising a privacy right."""

    name: str
    email: str
    identifiers: dict[str, str] = field(default_factory=dict)  # e.g. {"phone": "+91..."}


@dataclass
class DSRTask:
    """Execution unit of a DSR against exactly one data source."""

    id: uuid.UUID
    dsr_id: uuid.UUID
    tenant_id: uuid.UUID
    data_source_id: str
    task_type: DSRType
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TASK_TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status in TASK_SUCCESS_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "dsr_id": str(self.dsr_id),
            "data_source_id": self.data_source_id,
            "task_type": self.task_type.value,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": _iso(self.completed_at),
        }


@dataclass
class DataSubjectRequest:
    """A formal exercise of a data-privacy right (or an adjacent case type)."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    request_type: DSRType
    status: DSRStatus
    subject: DataSubject
    priority: Priority
    sla_deadline: datetime
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    reason: str | None = None  # Rejection reason only
    notes: str | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in DSR_TERMINAL_STATUSES

    def clone(self) -> DataSubjectRequest:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "request_type": self.request_type.value,
            "status": self.status.value,
            "subject_name": self.subject.name,
            "subject_email": self.subject.email,
            "subject_identifiers": dict(self.subject.identifiers),
            "priority": self.priority.value,
            "sla_deadline": self.sla_deadline.isoformat(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": _iso(self.completed_at),
            "reason": self.reason,
            "notes": self.notes,
            "version": self.version,
        }


@dataclass(frozen=True)
class RegulatorReport:
    """Immutable regulator notification bound to the incident as it was at generation time.

    The payload is held as canonical JSON text so later edits to the incident
    (or to a dict handed out by ``payload``) cannot leak into the report.
    """

    regulator: Regulator
    incident_id: uuid.UUID
    generated_at: datetime
    payload_json: str

    @property
    def payload(self) -> dict[str, Any]:
        return json.loads(self.payload_json)

    def to_dict(self) -> dict[str, Any]:
        return {
            "regulator": self.regulator.value,
            "incident_id": str(self.incident_id),
            "generated_at": self.generated_at.isoformat(),
            "payload": self.payload,
        }


@dataclass
class BreachIncident:
    """A personal-data breach under investigation."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    title: str
    severity: IncidentSeverity
    status: IncidentStatus
    detected_at: datetime
    created_at: datetime
    updated_at: datetime
    description: str = ""
    type: str = ""
    occurred_at: datetime | None = None
    affected_systems: list[str] = field(default_factory=list)
    pii_categories: list[str] = field(default_factory=list)
    affected_data_subject_count: int = 0
    poc_name: str | None = None
    poc_role: str | None = None
    poc_email: str | None = None
    # Cached outputs of the reportability policy; never written from user input
    is_reportable_cert_in: bool = False
    is_reportable_dpb: bool = False
    reported_to_cert_in_at: datetime | None = None
    reported_to_dpb_at: datetime | None = None
    closed_at: datetime | None = None
    reports: list[RegulatorReport] = field(default_factory=list)
    version: int = 0

    @property
    def has_report(self) -> bool:
        return bool(self.reports)

    def clone(self) -> BreachIncident:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "severity": self.severity.value,
            "status": self.status.value,
            "detected_at": self.detected_at.isoformat(),
            "occurred_at": _iso(self.occurred_at),
            "affected_systems": list(self.affected_systems),
            "pii_categories": list(self.pii_categories),
            "affected_data_subject_count": self.affected_data_subject_count,
            "poc_name": self.poc_name,
            "poc_role": self.poc_role,
            "poc_email": self.poc_email,
            "is_reportable_cert_in": self.is_reportable_cert_in,
            "is_reportable_dpb": self.is_reportable_dpb,
            "reported_to_cert_in_at": _iso(self.reported_to_cert_in_at),
            "reported_to_dpb_at": _iso(self.reported_to_dpb_at),
            "closed_at": _iso(self.closed_at),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
        }


@dataclass(frozen=True)
class SLASnapshot:
    """Regulator deadlines for an incident, derived on every read."""

    cert_in_deadline: datetime
    dpb_deadline: datetime
    overdue_cert_in: bool
    overdue_dpb: bool
    time_remaining_cert_in_seconds: int
    time_remaining_dpb_seconds: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "cert_in_deadline": self.cert_in_deadline.isoformat(),
            "dpb_deadline": self.dpb_deadline.isoformat(),
            "overdue_cert_in": self.overdue_cert_in,
            "overdue_dpb": self.overdue_dpb,
            "time_remaining_cert_in_seconds": self.time_remaining_cert_in_seconds,
            "time_remaining_dpb_seconds": self.time_remaining_dpb_seconds,
        }


@dataclass(frozen=True)
class TransitionRecord:
    """Audit tuple for one status change; persisted by the audit sink, not the engine."""

    entity_type: str  # "dsr" | "dsr_task" | "breach_incident"
    entity_id: uuid.UUID
    tenant_id: uuid.UUID
    old_status: str | None
    new_status: str
    actor: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id),
            "tenant_id": str(self.tenant_id),
            "old_status": self.old_status,
            "new_status": self.new_status,
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class DataSource:
    """A data source in DSR scope for a tenant; supplied by the scope provider."""

    id: str
    name: str = ""


@dataclass
class Page:
    """One page of a filtered listing."""

    items: list[Any]
    total: int
    page: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total
