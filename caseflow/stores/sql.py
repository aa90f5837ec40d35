"""SQLAlchemy-backed case and task stores.

One ``SqlUnitOfWork`` wraps one ``AsyncSession``. Store methods flush but
never commit; the unit of work commits on clean exit and rolls back when the
block raises. Records are converted to domain dataclasses on every read so
that nothing above this module holds a live ORM object.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

import structlog
from sqlalchemy import Select, func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from caseflow.compliance.models import (
    DSR_TERMINAL_STATUSES,
    BreachIncident,
    DataSubject,
    DataSubjectRequest,
    DSRStatus,
    DSRTask,
    DSRType,
    IncidentSeverity,
    IncidentStatus,
    Page,
    Priority,
    Regulator,
    RegulatorReport,
    TaskStatus,
)
from caseflow.core.errors import ConcurrentModification, NotFound, StoreUnavailable
from caseflow.models.dsr import DSRRecord, DSRTaskRecord
from caseflow.models.incident import BreachIncidentRecord

log = structlog.get_logger(__name__)


@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Map driver and ORM failures onto engine error kinds."""
    try:
        yield
    except StaleDataError as exc:
        raise ConcurrentModification(f"{operation}: row was modified concurrently") from exc
    except IntegrityError as exc:
        raise ConcurrentModification(f"{operation}: conflicting row already exists") from exc
    except (OperationalError, InterfaceError) as exc:
        log.warning("store.unavailable", operation=operation, error=str(exc))
        raise StoreUnavailable(f"{operation}: database unavailable") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            log.warning("store.connection_invalidated", operation=operation, error=str(exc))
            raise StoreUnavailable(f"{operation}: database connection lost") from exc
        raise
    except OSError as exc:
        log.warning("store.unavailable", operation=operation, error=str(exc))
        raise StoreUnavailable(f"{operation}: database unreachable") from exc


def _aware(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes; every stored value is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _page_of(items: list[Any], total: int, page: int, page_size: int) -> Page:
    return Page(items=items, total=total, page=page, page_size=page_size)


# ---------------------------------------------------------------------------
# Record <-> domain conversion
# ---------------------------------------------------------------------------


def _record_to_dsr(record: DSRRecord) -> DataSubjectRequest:
    return DataSubjectRequest(
        id=record.id,
        tenant_id=record.tenant_id,
        request_type=DSRType(record.request_type),
        status=DSRStatus(record.status),
        subject=DataSubject(
            name=record.subject_name,
            email=record.subject_email,
            identifiers=dict(record.subject_identifiers or {}),
        ),
        priority=Priority(record.priority),
        sla_deadline=_aware(record.sla_deadline),
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
        completed_at=_aware(record.completed_at),
        reason=record.reason,
        notes=record.notes,
        version=record.version,
    )


def _apply_dsr_to_record(dsr: DataSubjectRequest, record: DSRRecord) -> None:
    record.status = dsr.status.value
    record.subject_name = dsr.subject.name
    record.subject_email = dsr.subject.email
    record.subject_identifiers = dict(dsr.subject.identifiers)
    record.priority = dsr.priority.value
    record.updated_at = dsr.updated_at
    record.completed_at = dsr.completed_at
    record.reason = dsr.reason
    record.notes = dsr.notes


def _record_to_task(record: DSRTaskRecord) -> DSRTask:
    return DSRTask(
        id=record.id,
        dsr_id=record.dsr_id,
        tenant_id=record.tenant_id,
        data_source_id=record.data_source_id,
        task_type=DSRType(record.task_type),
        status=TaskStatus(record.status),
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
        completed_at=_aware(record.completed_at),
        result=dict(record.result) if record.result is not None else None,
        error=record.error,
    )


def _report_to_json(report: RegulatorReport) -> dict[str, Any]:
    return {
        "regulator": report.regulator.value,
        "generated_at": report.generated_at.isoformat(),
        "payload_json": report.payload_json,
    }


def _report_from_json(incident_id: uuid.UUID, data: dict[str, Any]) -> RegulatorReport:
    return RegulatorReport(
        regulator=Regulator(data["regulator"]),
        incident_id=incident_id,
        generated_at=_aware(datetime.fromisoformat(data["generated_at"])),
        payload_json=data["payload_json"],
    )


def _record_to_incident(record: BreachIncidentRecord) -> BreachIncident:
    return BreachIncident(
        id=record.id,
        tenant_id=record.tenant_id,
        title=record.title,
        severity=IncidentSeverity(record.severity),
        status=IncidentStatus(record.status),
        detected_at=_aware(record.detected_at),
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
        description=record.description,
        type=record.type,
        occurred_at=_aware(record.occurred_at),
        affected_systems=list(record.affected_systems or []),
        pii_categories=list(record.pii_categories or []),
        affected_data_subject_count=record.affected_data_subject_count,
        poc_name=record.poc_name,
        poc_role=record.poc_role,
        poc_email=record.poc_email,
        is_reportable_cert_in=record.is_reportable_cert_in,
        is_reportable_dpb=record.is_reportable_dpb,
        reported_to_cert_in_at=_aware(record.reported_to_cert_in_at),
        reported_to_dpb_at=_aware(record.reported_to_dpb_at),
        closed_at=_aware(record.closed_at),
        reports=[_report_from_json(record.id, r) for r in record.reports or []],
        version=record.version,
    )


def _apply_incident_to_record(incident: BreachIncident, record: BreachIncidentRecord) -> None:
    record.title = incident.title
    record.description = incident.description
    record.type = incident.type
    record.severity = incident.severity.value
    record.status = incident.status.value
    record.detected_at = incident.detected_at
    record.occurred_at = incident.occurred_at
    # Fresh lists so the JSON columns register as changed
    record.affected_systems = list(incident.affected_systems)
    record.pii_categories = list(incident.pii_categories)
    record.affected_data_subject_count = incident.affected_data_subject_count
    record.poc_name = incident.poc_name
    record.poc_role = incident.poc_role
    record.poc_email = incident.poc_email
    record.is_reportable_cert_in = incident.is_reportable_cert_in
    record.is_reportable_dpb = incident.is_reportable_dpb
    record.reported_to_cert_in_at = incident.reported_to_cert_in_at
    record.reported_to_dpb_at = incident.reported_to_dpb_at
    record.closed_at = incident.closed_at
    record.reports = [_report_to_json(r) for r in incident.reports]
    record.updated_at = incident.updated_at


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class SqlCaseStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _paginate(self, stmt: Select, page: int, page_size: int) -> tuple[list[Any], int]:
        total = await self._session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
        rows = await self._session.scalars(stmt.offset((page - 1) * page_size).limit(page_size))
        return list(rows), total or 0

    async def _load_dsr(self, dsr_id: uuid.UUID) -> DSRRecord:
        with translate_db_errors("dsr.load"):
            record = await self._session.get(DSRRecord, dsr_id)
        if record is None:
            raise NotFound("dsr", dsr_id)
        return record

    async def get_dsr(self, dsr_id: uuid.UUID) -> DataSubjectRequest:
        return _record_to_dsr(await self._load_dsr(dsr_id))

    async def add_dsr(self, dsr: DataSubjectRequest) -> None:
        record = DSRRecord(
            id=dsr.id,
            tenant_id=dsr.tenant_id,
            request_type=dsr.request_type.value,
            sla_deadline=dsr.sla_deadline,
            created_at=dsr.created_at,
            version=dsr.version,
        )
        _apply_dsr_to_record(dsr, record)
        self._session.add(record)
        with translate_db_errors("dsr.insert"):
            await self._session.flush()

    async def save_dsr(self, dsr: DataSubjectRequest, expected_version: int) -> DataSubjectRequest:
        record = await self._load_dsr(dsr.id)
        if record.version != expected_version:
            raise ConcurrentModification(
                f"dsr {dsr.id} is at version {record.version}, expected {expected_version}"
            )
        _apply_dsr_to_record(dsr, record)
        record.version = expected_version + 1
        with translate_db_errors("dsr.save"):
            await self._session.flush()
        return _record_to_dsr(record)

    async def list_dsrs(
        self,
        tenant_id: uuid.UUID,
        *,
        status: DSRStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        stmt = select(DSRRecord).where(DSRRecord.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(DSRRecord.status == status.value)
        stmt = stmt.order_by(DSRRecord.created_at.desc())
        with translate_db_errors("dsr.list"):
            records, total = await self._paginate(stmt, page, page_size)
        return _page_of([_record_to_dsr(r) for r in records], total, page, page_size)

    async def list_overdue_dsrs(self, tenant_id: uuid.UUID, now: datetime) -> list[DataSubjectRequest]:
        stmt = (
            select(DSRRecord)
            .where(
                DSRRecord.tenant_id == tenant_id,
                DSRRecord.status.not_in([s.value for s in DSR_TERMINAL_STATUSES]),
                DSRRecord.sla_deadline < now,
            )
            .order_by(DSRRecord.sla_deadline.asc())
        )
        with translate_db_errors("dsr.list_overdue"):
            records = await self._session.scalars(stmt)
        return [_record_to_dsr(r) for r in records]

    async def _load_incident(self, incident_id: uuid.UUID) -> BreachIncidentRecord:
        with translate_db_errors("incident.load"):
            record = await self._session.get(BreachIncidentRecord, incident_id)
        if record is None:
            raise NotFound("breach_incident", incident_id)
        return record

    async def get_incident(self, incident_id: uuid.UUID) -> BreachIncident:
        return _record_to_incident(await self._load_incident(incident_id))

    async def add_incident(self, incident: BreachIncident) -> None:
        record = BreachIncidentRecord(
            id=incident.id,
            tenant_id=incident.tenant_id,
            created_at=incident.created_at,
            version=incident.version,
        )
        _apply_incident_to_record(incident, record)
        self._session.add(record)
        with translate_db_errors("incident.insert"):
            await self._session.flush()

    async def save_incident(self, incident: BreachIncident, expected_version: int) -> BreachIncident:
        record = await self._load_incident(incident.id)
        if record.version != expected_version:
            raise ConcurrentModification(
                f"incident {incident.id} is at version {record.version}, expected {expected_version}"
            )
        _apply_incident_to_record(incident, record)
        record.version = expected_version + 1
        with translate_db_errors("incident.save"):
            await self._session.flush()
        return _record_to_incident(record)

    async def list_incidents(
        self,
        tenant_id: uuid.UUID,
        *,
        status: IncidentStatus | None = None,
        severity: IncidentSeverity | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        stmt = select(BreachIncidentRecord).where(BreachIncidentRecord.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(BreachIncidentRecord.status == status.value)
        if severity is not None:
            stmt = stmt.where(BreachIncidentRecord.severity == severity.value)
        stmt = stmt.order_by(BreachIncidentRecord.detected_at.desc())
        with translate_db_errors("incident.list"):
            records, total = await self._paginate(stmt, page, page_size)
        return _page_of([_record_to_incident(r) for r in records], total, page, page_size)


class SqlTaskStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_tasks(self, dsr_id: uuid.UUID) -> list[DSRTask]:
        stmt = (
            select(DSRTaskRecord)
            .where(DSRTaskRecord.dsr_id == dsr_id)
            .order_by(DSRTaskRecord.data_source_id.asc())
        )
        with translate_db_errors("task.list"):
            records = await self._session.scalars(stmt)
        return [_record_to_task(r) for r in records]

    async def _load_task(self, task_id: uuid.UUID) -> DSRTaskRecord:
        with translate_db_errors("task.load"):
            record = await self._session.get(DSRTaskRecord, task_id)
        if record is None:
            raise NotFound("dsr_task", task_id)
        return record

    async def get_task(self, task_id: uuid.UUID) -> DSRTask:
        return _record_to_task(await self._load_task(task_id))

    async def insert_tasks(self, tasks: Sequence[DSRTask]) -> None:
        self._session.add_all(
            [
                DSRTaskRecord(
                    id=task.id,
                    dsr_id=task.dsr_id,
                    tenant_id=task.tenant_id,
                    data_source_id=task.data_source_id,
                    task_type=task.task_type.value,
                    status=task.status.value,
                    result=task.result,
                    error=task.error,
                    created_at=task.created_at,
                    updated_at=task.updated_at,
                    completed_at=task.completed_at,
                )
                for task in tasks
            ]
        )
        with translate_db_errors("task.insert"):
            await self._session.flush()

    async def update_task(self, task: DSRTask) -> None:
        record = await self._load_task(task.id)
        record.status = task.status.value
        record.result = dict(task.result) if task.result is not None else None
        record.error = task.error
        record.updated_at = task.updated_at
        record.completed_at = task.completed_at
        with translate_db_errors("task.update"):
            await self._session.flush()


class SqlUnitOfWork:
    """One session, one transaction.

    Usage:
        factory = get_session_factory()
        async with SqlUnitOfWork(factory) as uow:
            dsr = await uow.cases.get_dsr(dsr_id)
    """

    cases: SqlCaseStore
    tasks: SqlTaskStore

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> SqlUnitOfWork:
        self._session = self._session_factory()
        self.cases = SqlCaseStore(self._session)
        self.tasks = SqlTaskStore(self._session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        session = self._session
        if session is None:
            return
        try:
            if exc_type is None:
                try:
                    with translate_db_errors("commit"):
                        await session.commit()
                except Exception:
                    await session.rollback()
                    raise
            else:
                await session.rollback()
        finally:
            await session.close()
            self._session = None


def sql_unit_of_work_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Return a zero-argument callable producing ``SqlUnitOfWork`` instances."""

    def _factory() -> SqlUnitOfWork:
        return SqlUnitOfWork(session_factory)

    return _factory
