"""Collaborator interfaces the case engine depends on.

The engine never talks to a database directly. Every mutating operation
opens a ``UnitOfWork`` which exposes the case store and the task store and
either commits everything on clean exit or rolls everything back when the
block raises. Implementations translate driver failures into
``StoreUnavailable`` and lost optimistic races into ``ConcurrentModification``.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from types import TracebackType
from typing import Protocol

from caseflow.compliance.models import (
    BreachIncident,
    DataSource,
    DataSubjectRequest,
    DSRStatus,
    DSRTask,
    IncidentSeverity,
    IncidentStatus,
    Page,
    TransitionRecord,
)


class CaseStore(Protocol):
    async def get_dsr(self, dsr_id: uuid.UUID) -> DataSubjectRequest:
        """Load a DSR. Raises ``NotFound``."""
        ...

    async def add_dsr(self, dsr: DataSubjectRequest) -> None: ...

    async def save_dsr(self, dsr: DataSubjectRequest, expected_version: int) -> DataSubjectRequest:
        """Persist *dsr* if the stored version still equals *expected_version*.

        Returns the DSR with its version bumped. Raises ``ConcurrentModification``.
        """
        ...

    async def list_dsrs(
        self,
        tenant_id: uuid.UUID,
        *,
        status: DSRStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page: ...

    async def list_overdue_dsrs(self, tenant_id: uuid.UUID, now: datetime) -> list[DataSubjectRequest]:
        """Non-terminal DSRs whose SLA deadline is before *now*, most overdue first."""
        ...

    async def get_incident(self, incident_id: uuid.UUID) -> BreachIncident:
        """Load an incident. Raises ``NotFound``."""
        ...

    async def add_incident(self, incident: BreachIncident) -> None: ...

    async def save_incident(self, incident: BreachIncident, expected_version: int) -> BreachIncident: ...

    async def list_incidents(
        self,
        tenant_id: uuid.UUID,
        *,
        status: IncidentStatus | None = None,
        severity: IncidentSeverity | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page: ...


class TaskStore(Protocol):
    async def list_tasks(self, dsr_id: uuid.UUID) -> list[DSRTask]:
        """Tasks of one DSR ordered by ``data_source_id`` ascending."""
        ...

    async def get_task(self, task_id: uuid.UUID) -> DSRTask:
        """Load a task. Raises ``NotFound``."""
        ...

    async def insert_tasks(self, tasks: Sequence[DSRTask]) -> None:
        """Insert a batch. Raises ``ConcurrentModification`` if any id already exists."""
        ...

    async def update_task(self, task: DSRTask) -> None: ...


class UnitOfWork(Protocol):
    cases: CaseStore
    tasks: TaskStore

    async def __aenter__(self) -> UnitOfWork: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]


class ScopeProvider(Protocol):
    async def data_sources_in_scope(self, tenant_id: uuid.UUID) -> list[DataSource]: ...


class AuditSink(Protocol):
    async def record(self, transition: TransitionRecord) -> None: ...


class NotificationDispatcher(Protocol):
    async def notify_transition(
        self,
        transition: TransitionRecord,
        case: DataSubjectRequest | BreachIncident,
    ) -> bool: ...
