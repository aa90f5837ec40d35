"""Case state machines for DSRs, DSR tasks and breach incidents.

Each ``apply_*`` function validates the requested change, mutates the entity
in place and returns the ``TransitionRecord`` the caller forwards to the
audit sink. Nothing here performs I/O.

DSR lifecycle:

    IDENTITY_VERIFICATION -> PENDING -> APPROVED -> IN_PROGRESS -> COMPLETED
                             PENDING -> REJECTED
                                        APPROVED -> COMPLETED   (no applicable sources)
                                                    IN_PROGRESS -> FAILED (every task failed)

Incident lifecycle (forward only, skips allowed):

    OPEN -> INVESTIGATING -> CONTAINED -> RESOLVED -> REPORTED -> CLOSED
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from caseflow.compliance.models import (
    DSR_TERMINAL_STATUSES,
    INCIDENT_NOTIFY_STATUSES,
    BreachIncident,
    DataSubjectRequest,
    DSRStatus,
    DSRTask,
    IncidentStatus,
    TaskStatus,
    TransitionRecord,
)
from caseflow.core.errors import InvalidTransition, ValidationError

# ---------------------------------------------------------------------------
# DSR
# ---------------------------------------------------------------------------

DSR_TRANSITIONS: dict[DSRStatus, frozenset[DSRStatus]] = {
    DSRStatus.IDENTITY_VERIFICATION: frozenset({DSRStatus.PENDING}),
    DSRStatus.PENDING: frozenset({DSRStatus.APPROVED, DSRStatus.REJECTED}),
    DSRStatus.APPROVED: frozenset({DSRStatus.IN_PROGRESS, DSRStatus.COMPLETED}),
    DSRStatus.IN_PROGRESS: frozenset({DSRStatus.COMPLETED, DSRStatus.FAILED}),
    DSRStatus.COMPLETED: frozenset(),
    DSRStatus.REJECTED: frozenset(),
    DSRStatus.FAILED: frozenset(),
}


def ensure_dsr_status(dsr: DataSubjectRequest, *allowed: DSRStatus) -> None:
    """Raise ``InvalidTransition`` unless *dsr* is currently in one of *allowed*."""
    if dsr.status not in allowed:
        raise InvalidTransition(
            "dsr",
            dsr.status.value,
            reason=f"requires status {' or '.join(s.value for s in allowed)}",
        )


def apply_dsr_transition(
    dsr: DataSubjectRequest,
    target: DSRStatus,
    *,
    actor: str,
    now: datetime,
) -> TransitionRecord:
    if target not in DSR_TRANSITIONS[dsr.status]:
        raise InvalidTransition("dsr", dsr.status.value, target.value)

    old = dsr.status
    dsr.status = target
    dsr.updated_at = now
    if target in DSR_TERMINAL_STATUSES:
        dsr.completed_at = now

    return TransitionRecord(
        entity_type="dsr",
        entity_id=dsr.id,
        tenant_id=dsr.tenant_id,
        old_status=old.value,
        new_status=target.value,
        actor=actor,
        timestamp=now,
    )


def rollup_status(tasks: Sequence[DSRTask]) -> DSRStatus | None:
    """Derive the parent status once every task is terminal.

    Returns ``None`` while any task is still PENDING or RUNNING. Otherwise
    COMPLETED if at least one task succeeded, FAILED if none did.
    """
    if not tasks or any(not task.is_terminal for task in tasks):
        return None
    if any(task.succeeded for task in tasks):
        return DSRStatus.COMPLETED
    return DSRStatus.FAILED


# ---------------------------------------------------------------------------
# DSR tasks
# ---------------------------------------------------------------------------

TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.RUNNING, TaskStatus.COMPLETED, TaskStatus.VERIFIED, TaskStatus.FAILED}
    ),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.VERIFIED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.VERIFIED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


def apply_task_outcome(
    task: DSRTask,
    target: TaskStatus,
    *,
    result: dict[str, Any] | None,
    error: str | None,
    actor: str,
    now: datetime,
) -> TransitionRecord:
    """Record an execution outcome reported for *task*.

    Raises:
        InvalidTransition: If the task is terminal or the move is not allowed.
        ValidationError: If result/error do not match the target status.
    """
    if target not in TASK_TRANSITIONS[task.status]:
        raise InvalidTransition("dsr_task", task.status.value, target.value)

    if target == TaskStatus.FAILED:
        if not error or not error.strip():
            raise ValidationError("error is required when a task fails", task_id=str(task.id))
        if result is not None:
            raise ValidationError("a failed task cannot carry a result", task_id=str(task.id))
    else:
        if error:
            raise ValidationError(
                "error may only be set when a task fails", task_id=str(task.id)
            )
        if target == TaskStatus.RUNNING and result is not None:
            raise ValidationError("a running task cannot carry a result", task_id=str(task.id))

    old = task.status
    task.status = target
    task.updated_at = now
    if target == TaskStatus.FAILED:
        task.error = error.strip() if error else error
    elif target != TaskStatus.RUNNING:
        task.result = result
    if task.is_terminal:
        task.completed_at = now

    return TransitionRecord(
        entity_type="dsr_task",
        entity_id=task.id,
        tenant_id=task.tenant_id,
        old_status=old.value,
        new_status=target.value,
        actor=actor,
        timestamp=now,
    )


# ---------------------------------------------------------------------------
# Breach incidents
# ---------------------------------------------------------------------------

INCIDENT_ORDER: tuple[IncidentStatus, ...] = (
    IncidentStatus.OPEN,
    IncidentStatus.INVESTIGATING,
    IncidentStatus.CONTAINED,
    IncidentStatus.RESOLVED,
    IncidentStatus.REPORTED,
    IncidentStatus.CLOSED,
)
_RANK = {status: rank for rank, status in enumerate(INCIDENT_ORDER)}
_CLOSABLE_FROM = frozenset({IncidentStatus.RESOLVED, IncidentStatus.REPORTED})


def ensure_incident_transition(incident: BreachIncident, target: IncidentStatus) -> None:
    current = incident.status
    if _RANK[target] <= _RANK[current]:
        raise InvalidTransition(
            "breach_incident", current.value, target.value, reason="backward transitions are not permitted"
        )
    if target == IncidentStatus.REPORTED and not incident.has_report:
        raise InvalidTransition(
            "breach_incident",
            current.value,
            target.value,
            reason="a CERT-In or DPB report must be generated first",
        )
    if target == IncidentStatus.CLOSED and current not in _CLOSABLE_FROM:
        raise InvalidTransition(
            "breach_incident", current.value, target.value, reason="only RESOLVED or REPORTED incidents can close"
        )


def apply_incident_transition(
    incident: BreachIncident,
    target: IncidentStatus,
    *,
    actor: str,
    now: datetime,
) -> TransitionRecord:
    ensure_incident_transition(incident, target)

    old = incident.status
    incident.status = target
    incident.updated_at = now
    if target == IncidentStatus.CLOSED:
        incident.closed_at = now

    return TransitionRecord(
        entity_type="breach_incident",
        entity_id=incident.id,
        tenant_id=incident.tenant_id,
        old_status=old.value,
        new_status=target.value,
        actor=actor,
        timestamp=now,
    )


# ---------------------------------------------------------------------------
# Notification policy
# ---------------------------------------------------------------------------

_NOTIFY_STATUSES: dict[str, frozenset[str]] = {
    "dsr": frozenset(s.value for s in DSR_TERMINAL_STATUSES),
    "breach_incident": frozenset(s.value for s in INCIDENT_NOTIFY_STATUSES),
}


def is_notifiable(transition: TransitionRecord) -> bool:
    """True for DSR terminal transitions and incident REPORTED/CLOSED."""
    return transition.new_status in _NOTIFY_STATUSES.get(transition.entity_type, frozenset())
