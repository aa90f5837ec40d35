"""In-memory store implementation.

Used by tests and by single-process deployments that do not need
durability. Writes are staged per unit of work and applied in one
synchronous step on commit, so a failed block leaves the shared state
untouched.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from types import TracebackType

from caseflow.compliance.models import (
    DSR_TERMINAL_STATUSES,
    BreachIncident,
    DataSubjectRequest,
    DSRStatus,
    DSRTask,
    IncidentSeverity,
    IncidentStatus,
    Page,
)
from caseflow.core.errors import ConcurrentModification, NotFound


def _paginate(items: list, page: int, page_size: int) -> Page:
    start = (page - 1) * page_size
    return Page(items=items[start : start + page_size], total=len(items), page=page, page_size=page_size)


class InMemoryCaseDatabase:
    """Shared state behind every ``InMemoryUnitOfWork``.

    Usage:
        db = InMemoryCaseDatabase()
        service = CaseService(uow_factory=db.unit_of_work, ...)
    """

    def __init__(self) -> None:
        self.dsrs: dict[uuid.UUID, DataSubjectRequest] = {}
        self.tasks: dict[uuid.UUID, DSRTask] = {}
        self.incidents: dict[uuid.UUID, BreachIncident] = {}

    def unit_of_work(self) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self)


class InMemoryUnitOfWork:
    def __init__(self, db: InMemoryCaseDatabase) -> None:
        self._db = db
        self.staged_dsrs: dict[uuid.UUID, tuple[DataSubjectRequest, int | None]] = {}
        self.staged_tasks: dict[uuid.UUID, tuple[DSRTask, bool]] = {}
        self.staged_incidents: dict[uuid.UUID, tuple[BreachIncident, int | None]] = {}
        self.cases = InMemoryCaseStore(self)
        self.tasks = InMemoryTaskStore(self)
        self.committed = False

    async def __aenter__(self) -> InMemoryUnitOfWork:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            await self.commit()
        else:
            self.rollback()

    async def commit(self) -> None:
        # Verify every optimistic check before touching shared state
        for dsr_id, (_, base_version) in self.staged_dsrs.items():
            current = self._db.dsrs.get(dsr_id)
            if base_version is None and current is not None:
                raise ConcurrentModification(f"dsr {dsr_id} already exists")
            if base_version is not None and (current is None or current.version != base_version):
                raise ConcurrentModification(f"dsr {dsr_id} was modified concurrently")
        for incident_id, (_, base_version) in self.staged_incidents.items():
            current_incident = self._db.incidents.get(incident_id)
            if base_version is None and current_incident is not None:
                raise ConcurrentModification(f"incident {incident_id} already exists")
            if base_version is not None and (
                current_incident is None or current_incident.version != base_version
            ):
                raise ConcurrentModification(f"incident {incident_id} was modified concurrently")
        for task_id, (_, is_new) in self.staged_tasks.items():
            if is_new and task_id in self._db.tasks:
                raise ConcurrentModification(f"task {task_id} already exists")

        for dsr_id, (dsr, _) in self.staged_dsrs.items():
            self._db.dsrs[dsr_id] = dsr.clone()
        for incident_id, (incident, _) in self.staged_incidents.items():
            self._db.incidents[incident_id] = incident.clone()
        for task_id, (task, _) in self.staged_tasks.items():
            self._db.tasks[task_id] = replace(task)
        self.committed = True
        self._clear()

    def rollback(self) -> None:
        self._clear()

    def _clear(self) -> None:
        self.staged_dsrs.clear()
        self.staged_tasks.clear()
        self.staged_incidents.clear()

    # -- read-through helpers -------------------------------------------

    def current_dsr(self, dsr_id: uuid.UUID) -> DataSubjectRequest | None:
        if dsr_id in self.staged_dsrs:
            return self.staged_dsrs[dsr_id][0]
        return self._db.dsrs.get(dsr_id)

    def all_dsrs(self) -> list[DataSubjectRequest]:
        merged = dict(self._db.dsrs)
        merged.update({k: v for k, (v, _) in self.staged_dsrs.items()})
        return list(merged.values())

    def current_incident(self, incident_id: uuid.UUID) -> BreachIncident | None:
        if incident_id in self.staged_incidents:
            return self.staged_incidents[incident_id][0]
        return self._db.incidents.get(incident_id)

    def all_incidents(self) -> list[BreachIncident]:
        merged = dict(self._db.incidents)
        merged.update({k: v for k, (v, _) in self.staged_incidents.items()})
        return list(merged.values())

    def current_task(self, task_id: uuid.UUID) -> DSRTask | None:
        if task_id in self.staged_tasks:
            return self.staged_tasks[task_id][0]
        return self._db.tasks.get(task_id)

    def all_tasks(self) -> list[DSRTask]:
        merged = dict(self._db.tasks)
        merged.update({k: v for k, (v, _) in self.staged_tasks.items()})
        return list(merged.values())


class InMemoryCaseStore:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def get_dsr(self, dsr_id: uuid.UUID) -> DataSubjectRequest:
        dsr = self._uow.current_dsr(dsr_id)
        if dsr is None:
            raise NotFound("dsr", dsr_id)
        return dsr.clone()

    async def add_dsr(self, dsr: DataSubjectRequest) -> None:
        if self._uow.current_dsr(dsr.id) is not None:
            raise ConcurrentModification(f"dsr {dsr.id} already exists")
        self._uow.staged_dsrs[dsr.id] = (dsr.clone(), None)

    async def save_dsr(self, dsr: DataSubjectRequest, expected_version: int) -> DataSubjectRequest:
        current = self._uow.current_dsr(dsr.id)
        if current is None:
            raise NotFound("dsr", dsr.id)
        if current.version != expected_version:
            raise ConcurrentModification(
                f"dsr {dsr.id} is at version {current.version}, expected {expected_version}"
            )
        saved = dsr.clone()
        saved.version = expected_version + 1
        base = self._uow.staged_dsrs.get(dsr.id, (None, expected_version))[1]
        self._uow.staged_dsrs[dsr.id] = (saved, base)
        return saved.clone()

    async def list_dsrs(
        self,
        tenant_id: uuid.UUID,
        *,
        status: DSRStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        items = [
            d.clone()
            for d in self._uow.all_dsrs()
            if d.tenant_id == tenant_id and (status is None or d.status == status)
        ]
        items.sort(key=lambda d: d.created_at, reverse=True)
        return _paginate(items, page, page_size)

    async def list_overdue_dsrs(self, tenant_id: uuid.UUID, now: datetime) -> list[DataSubjectRequest]:
        items = [
            d.clone()
            for d in self._uow.all_dsrs()
            if d.tenant_id == tenant_id
            and d.status not in DSR_TERMINAL_STATUSES
            and d.sla_deadline < now
        ]
        return sorted(items, key=lambda d: d.sla_deadline)

    async def get_incident(self, incident_id: uuid.UUID) -> BreachIncident:
        incident = self._uow.current_incident(incident_id)
        if incident is None:
            raise NotFound("breach_incident", incident_id)
        return incident.clone()

    async def add_incident(self, incident: BreachIncident) -> None:
        if self._uow.current_incident(incident.id) is not None:
            raise ConcurrentModification(f"incident {incident.id} already exists")
        self._uow.staged_incidents[incident.id] = (incident.clone(), None)

    async def save_incident(self, incident: BreachIncident, expected_version: int) -> BreachIncident:
        current = self._uow.current_incident(incident.id)
        if current is None:
            raise NotFound("breach_incident", incident.id)
        if current.version != expected_version:
            raise ConcurrentModification(
                f"incident {incident.id} is at version {current.version}, expected {expected_version}"
            )
        saved = incident.clone()
        saved.version = expected_version + 1
        base = self._uow.staged_incidents.get(incident.id, (None, expected_version))[1]
        self._uow.staged_incidents[incident.id] = (saved, base)
        return saved.clone()

    async def list_incidents(
        self,
        tenant_id: uuid.UUID,
        *,
        status: IncidentStatus | None = None,
        severity: IncidentSeverity | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        items = [
            i.clone()
            for i in self._uow.all_incidents()
            if i.tenant_id == tenant_id
            and (status is None or i.status == status)
            and (severity is None or i.severity == severity)
        ]
        items.sort(key=lambda i: i.detected_at, reverse=True)
        return _paginate(items, page, page_size)


class InMemoryTaskStore:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def list_tasks(self, dsr_id: uuid.UUID) -> list[DSRTask]:
        tasks = [replace(t) for t in self._uow.all_tasks() if t.dsr_id == dsr_id]
        return sorted(tasks, key=lambda t: t.data_source_id)

    async def get_task(self, task_id: uuid.UUID) -> DSRTask:
        task = self._uow.current_task(task_id)
        if task is None:
            raise NotFound("dsr_task", task_id)
        return replace(task)

    async def insert_tasks(self, tasks: Sequence[DSRTask]) -> None:
        for task in tasks:
            if self._uow.current_task(task.id) is not None:
                raise ConcurrentModification(f"task {task.id} already exists")
        for task in tasks:
            self._uow.staged_tasks[task.id] = (replace(task), True)

    async def update_task(self, task: DSRTask) -> None:
        if self._uow.current_task(task.id) is None:
            raise NotFound("dsr_task", task.id)
        is_new = self._uow.staged_tasks.get(task.id, (None, False))[1]
        self._uow.staged_tasks[task.id] = (replace(task), is_new)
