"""Case service: the single entry point for every DSR and incident operation.

Each mutating operation:
1. Serialises on the case id (per-process ``KeyedLock``)
2. Opens a unit of work bounded by ``asyncio.timeout``
3. Loads the case, applies the policy / state-machine change, saves with an
   optimistic version check
4. After commit, forwards every ``TransitionRecord`` to the audit sink and
   the notifiable ones to the notification dispatcher

Audit and notification failures are logged and never fail an operation whose
transaction already committed. Nothing here retries; ``ConcurrentModification``
and ``StoreUnavailable`` propagate to the caller, which owns retry policy.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

import structlog

from caseflow.compliance import fanout, reportability, state_machine
from caseflow.compliance.models import (
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
    SLASnapshot,
    TaskStatus,
    TransitionRecord,
    ordered_unique,
)
from caseflow.compliance.progress import progress
from caseflow.compliance.sla import SLAPolicy, days_remaining, is_overdue
from caseflow.config import Settings, get_settings
from caseflow.core.clock import Clock, SystemClock
from caseflow.core.errors import InvalidTransition, NotFound, StoreUnavailable, ValidationError
from caseflow.core.locks import KeyedLock
from caseflow.stores.base import AuditSink, NotificationDispatcher, ScopeProvider, UnitOfWork, UnitOfWorkFactory

log = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 100

# Incident fields a caller may write. Reportability flags, report timestamps
# and closed_at are owned by the engine.
INCIDENT_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "type",
        "severity",
        "status",
        "detected_at",
        "occurred_at",
        "affected_systems",
        "pii_categories",
        "affected_data_subject_count",
        "poc_name",
        "poc_role",
        "poc_email",
    }
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class DSRView:
    """A DSR with its tasks and the derived values the UI shows."""

    dsr: DataSubjectRequest
    tasks: list[DSRTask]
    progress: int
    days_remaining: int
    is_overdue: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.dsr.to_dict(),
            "tasks": [task.to_dict() for task in self.tasks],
            "progress": self.progress,
            "days_remaining": self.days_remaining,
            "is_overdue": self.is_overdue,
        }


@dataclass
class IncidentView:
    """An incident with its SLA snapshot computed at read time."""

    incident: BreachIncident
    sla: SLASnapshot

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.incident.to_dict(),
            "sla": self.sla.to_dict(),
            "reports": [report.to_dict() for report in self.incident.reports],
        }


@dataclass
class TransitionOutcome:
    """Result of a mutating operation: the case after commit plus its audit tuples."""

    view: DSRView | IncidentView
    transitions: list[TransitionRecord] = field(default_factory=list)
    report: RegulatorReport | None = None

    def to_dict(self) -> dict[str, Any]:
        key = "dsr" if isinstance(self.view, DSRView) else "incident"
        data: dict[str, Any] = {
            key: self.view.to_dict(),
            "transitions": [t.to_dict() for t in self.transitions],
        }
        if self.report is not None:
            data["report"] = self.report.to_dict()
        return data


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------


def _enum(enum_cls: type, value: Any, name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"unknown {name} {value!r}; expected one of {allowed}", field=name) from None


def _required_text(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} must not be empty", field=name)
    return value


def _aware(value: datetime | None, name: str) -> datetime | None:
    if value is not None and value.tzinfo is None:
        raise ValidationError(f"{name} must be timezone-aware", field=name)
    return value


def _string_set(values: Any, name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str) or not all(isinstance(v, str) for v in values):
        raise ValidationError(f"{name} must be a list of strings", field=name)
    return ordered_unique(list(values))


def _subject_count(value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(
            "affected_data_subject_count must be a non-negative integer",
            field="affected_data_subject_count",
        )
    return value


def _identifiers(values: Mapping[str, Any] | None) -> dict[str, str]:
    identifiers: dict[str, str] = {}
    for key, value in (values or {}).items():
        clean = str(key).strip()
        if not clean:
            raise ValidationError("subject identifier keys must not be empty", field="subject_identifiers")
        if clean in identifiers:
            raise ValidationError(f"duplicate subject identifier {clean!r}", field="subject_identifiers")
        identifiers[clean] = str(value)
    return identifiers


def _check_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValidationError("page must be >= 1", field="page")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}", field="page_size")


def _check_tenant(entity: DataSubjectRequest | BreachIncident | DSRTask, tenant_id: uuid.UUID | None, name: str) -> None:
    # Cross-tenant reads look exactly like unknown ids
    if tenant_id is not None and entity.tenant_id != tenant_id:
        raise NotFound(name, entity.id)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class CaseService:
    """Façade over the case stores, policies and state machines.

    Usage:
        db = InMemoryCaseDatabase()
        service = CaseService(
            uow_factory=db.unit_of_work,
            scope=StaticScopeProvider({tenant_id: ["crm", "billing"]}),
            audit=LoggingAuditSink(),
            notifier=CaseNotificationService.from_settings(),
        )
        view = await service.create_dsr(tenant_id, "ACCESS", subject_email="a@b.c", actor="officer-1")
    """

    def __init__(
        self,
        *,
        uow_factory: UnitOfWorkFactory,
        scope: ScopeProvider,
        audit: AuditSink,
        notifier: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._scope = scope
        self._audit = audit
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()
        self._sla = SLAPolicy.from_settings(self._settings)
        self._locks = locks or KeyedLock()
        self._verification_types = {
            _enum(DSRType, t, "identity_verification_types") for t in self._settings.identity_verification_types
        }

    @property
    def sla_policy(self) -> SLAPolicy:
        return self._sla

    async def aclose(self) -> None:
        """Wait for background notification deliveries to finish."""
        drain = getattr(self._notifier, "drain", None)
        if drain is not None:
            await drain()

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    async def _in_uow(
        self,
        operation: str,
        work: Callable[[UnitOfWork], Awaitable[T]],
        *,
        timeout: float | None = None,
    ) -> T:
        """Run *work* in one unit of work under a bounded timeout."""
        limit = timeout if timeout is not None else self._settings.store_timeout_seconds
        try:
            async with asyncio.timeout(limit):
                async with self._uow_factory() as uow:
                    return await work(uow)
        except TimeoutError as exc:
            log.warning("case.store_timeout", operation=operation, timeout_seconds=limit)
            raise StoreUnavailable(f"{operation} timed out after {limit}s", operation=operation) from exc

    async def _locked(
        self,
        key: uuid.UUID,
        operation: str,
        work: Callable[[UnitOfWork], Awaitable[T]],
        *,
        timeout: float | None = None,
    ) -> T:
        async with self._locks.hold(key):
            with structlog.contextvars.bound_contextvars(case_id=str(key)):
                return await self._in_uow(operation, work, timeout=timeout)

    async def _publish(
        self,
        transitions: list[TransitionRecord],
        case: DataSubjectRequest | BreachIncident,
    ) -> None:
        for transition in transitions:
            try:
                await self._audit.record(transition)
            except Exception as exc:
                log.error(
                    "audit.record_failed",
                    error=str(exc),
                    entity_type=transition.entity_type,
                    entity_id=str(transition.entity_id),
                )
        if self._notifier is None:
            return
        for transition in transitions:
            if not state_machine.is_notifiable(transition):
                continue
            try:
                await self._notifier.notify_transition(transition, case)
            except Exception as exc:
                log.error(
                    "notification.dispatch_failed",
                    error=str(exc),
                    entity_type=transition.entity_type,
                    entity_id=str(transition.entity_id),
                    new_status=transition.new_status,
                )

    def _dsr_view(self, dsr: DataSubjectRequest, tasks: list[DSRTask], now: datetime) -> DSRView:
        return DSRView(
            dsr=dsr,
            tasks=tasks,
            progress=progress(dsr, tasks),
            days_remaining=days_remaining(dsr.sla_deadline, now),
            is_overdue=is_overdue(dsr.sla_deadline, now),
        )

    def _incident_view(self, incident: BreachIncident, now: datetime) -> IncidentView:
        return IncidentView(incident=incident, sla=self._sla.incident_snapshot(incident, now))

    async def _fan_out(
        self,
        uow: UnitOfWork,
        dsr: DataSubjectRequest,
        *,
        actor: str,
        now: datetime,
    ) -> tuple[list[TransitionRecord], list[DSRTask]]:
        """Create the DSR's tasks and move it out of APPROVED."""
        existing = await uow.tasks.list_tasks(dsr.id)
        if existing:
            raise InvalidTransition("dsr", dsr.status.value, reason="tasks were already created")

        sources = await self._scope.data_sources_in_scope(dsr.tenant_id)
        tasks = fanout.resolve(dsr, sources, now)
        if tasks:
            await uow.tasks.insert_tasks(tasks)
            record = state_machine.apply_dsr_transition(dsr, DSRStatus.IN_PROGRESS, actor=actor, now=now)
        else:
            record = state_machine.apply_dsr_transition(dsr, DSRStatus.COMPLETED, actor=actor, now=now)

        log.info(
            "dsr.fanned_out",
            dsr_id=str(dsr.id),
            request_type=dsr.request_type,
            task_count=len(tasks),
            status=dsr.status,
        )
        return [record], tasks

    # ------------------------------------------------------------------
    # DSR operations
    # ------------------------------------------------------------------

    async def create_dsr(
        self,
        tenant_id: uuid.UUID,
        request_type: DSRType | str,
        *,
        subject_email: str,
        subject_name: str = "",
        subject_identifiers: Mapping[str, Any] | None = None,
        priority: Priority | str = Priority.MEDIUM,
        notes: str | None = None,
        require_identity_verification: bool | None = None,
        actor: str,
    ) -> TransitionOutcome:
        """Open a new DSR in PENDING (or IDENTITY_VERIFICATION).

        The SLA deadline is fixed here from the priority window and never
        recomputed.

        Raises:
            ValidationError: Empty subject contact, unknown type or priority.
        """
        dsr_type = _enum(DSRType, request_type, "request_type")
        dsr_priority = _enum(Priority, priority, "priority")
        email = _required_text(subject_email, "subject_email").strip()
        identifiers = _identifiers(subject_identifiers)

        needs_verification = (
            require_identity_verification
            if require_identity_verification is not None
            else dsr_type in self._verification_types
        )
        status = DSRStatus.IDENTITY_VERIFICATION if needs_verification else DSRStatus.PENDING

        now = self._clock.now()
        dsr = DataSubjectRequest(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            request_type=dsr_type,
            status=status,
            subject=DataSubject(name=(subject_name or "").strip(), email=email, identifiers=identifiers),
            priority=dsr_priority,
            sla_deadline=self._sla.dsr_deadline(dsr_priority, now),
            created_at=now,
            updated_at=now,
            notes=notes,
        )
        record = TransitionRecord(
            entity_type="dsr",
            entity_id=dsr.id,
            tenant_id=tenant_id,
            old_status=None,
            new_status=status.value,
            actor=actor,
            timestamp=now,
        )

        async def work(uow: UnitOfWork) -> None:
            await uow.cases.add_dsr(dsr)

        await self._locked(dsr.id, "dsr.create", work)
        log.info(
            "dsr.created",
            dsr_id=str(dsr.id),
            request_type=dsr_type,
            priority=dsr_priority,
            status=status,
            sla_deadline=dsr.sla_deadline.isoformat(),
        )
        await self._publish([record], dsr)
        return TransitionOutcome(view=self._dsr_view(dsr, [], now), transitions=[record])

    async def complete_identity_verification(
        self, dsr_id: uuid.UUID, *, actor: str, tenant_id: uuid.UUID | None = None
    ) -> TransitionOutcome:
        """IDENTITY_VERIFICATION -> PENDING once the subject's identity is proven."""
        now = self._clock.now()

        async def work(uow: UnitOfWork) -> tuple[DataSubjectRequest, list[TransitionRecord]]:
            dsr = await uow.cases.get_dsr(dsr_id)
            _check_tenant(dsr, tenant_id, "dsr")
            version = dsr.version
            record = state_machine.apply_dsr_transition(dsr, DSRStatus.PENDING, actor=actor, now=now)
            return await uow.cases.save_dsr(dsr, version), [record]

        dsr, records = await self._locked(dsr_id, "dsr.verify_identity", work)
        log.info("dsr.identity_verified", dsr_id=str(dsr_id))
        await self._publish(records, dsr)
        return TransitionOutcome(view=self._dsr_view(dsr, [], now), transitions=records)

    async def approve(
        self, dsr_id: uuid.UUID, *, actor: str, tenant_id: uuid.UUID | None = None
    ) -> TransitionOutcome:
        """PENDING -> APPROVED, then fan-out unless ``dsr_auto_fanout`` is off.

        Raises:
            InvalidTransition: If the DSR is not PENDING (including a second approve).
        """
        now = self._clock.now()
        auto_fanout = self._settings.dsr_auto_fanout

        async def work(uow: UnitOfWork) -> tuple[DataSubjectRequest, list[DSRTask], list[TransitionRecord]]:
            dsr = await uow.cases.get_dsr(dsr_id)
            _check_tenant(dsr, tenant_id, "dsr")
            version = dsr.version
            state_machine.ensure_dsr_status(dsr, DSRStatus.PENDING)
            records = [state_machine.apply_dsr_transition(dsr, DSRStatus.APPROVED, actor=actor, now=now)]
            tasks: list[DSRTask] = []
            if auto_fanout:
                fanout_records, tasks = await self._fan_out(uow, dsr, actor=actor, now=now)
                records.extend(fanout_records)
            return await uow.cases.save_dsr(dsr, version), tasks, records

        dsr, tasks, records = await self._locked(dsr_id, "dsr.approve", work)
        log.info("dsr.approved", dsr_id=str(dsr_id), status=dsr.status, task_count=len(tasks))
        await self._publish(records, dsr)
        return TransitionOutcome(view=self._dsr_view(dsr, tasks, now), transitions=records)

    async def execute(
        self, dsr_id: uuid.UUID, *, actor: str, tenant_id: uuid.UUID | None = None
    ) -> TransitionOutcome:
        """Fan out an APPROVED DSR (the tail of approve when auto fan-out is off)."""
        now = self._clock.now()

        async def work(uow: UnitOfWork) -> tuple[DataSubjectRequest, list[DSRTask], list[TransitionRecord]]:
            dsr = await uow.cases.get_dsr(dsr_id)
            _check_tenant(dsr, tenant_id, "dsr")
            version = dsr.version
            state_machine.ensure_dsr_status(dsr, DSRStatus.APPROVED)
            records, tasks = await self._fan_out(uow, dsr, actor=actor, now=now)
            return await uow.cases.save_dsr(dsr, version), tasks, records

        dsr, tasks, records = await self._locked(dsr_id, "dsr.execute", work)
        log.info("dsr.executed", dsr_id=str(dsr_id), status=dsr.status, task_count=len(tasks))
        await self._publish(records, dsr)
        return TransitionOutcome(view=self._dsr_view(dsr, tasks, now), transitions=records)

    async def reject(
        self, dsr_id: uuid.UUID, reason: str, *, actor: str, tenant_id: uuid.UUID | None = None
    ) -> TransitionOutcome:
        """PENDING -> REJECTED. The reason is stored verbatim.

        Raises:
            ValidationError: If *reason* is empty or whitespace.
            InvalidTransition: If the DSR is not PENDING.
        """
        _required_text(reason, "reason")
        now = self._clock.now()

        async def work(uow: UnitOfWork) -> tuple[DataSubjectRequest, list[TransitionRecord]]:
            dsr = await uow.cases.get_dsr(dsr_id)
            _check_tenant(dsr, tenant_id, "dsr")
            version = dsr.version
            record = state_machine.apply_dsr_transition(dsr, DSRStatus.REJECTED, actor=actor, now=now)
            dsr.reason = reason
            return await uow.cases.save_dsr(dsr, version), [record]

        dsr, records = await self._locked(dsr_id, "dsr.reject", work)
        log.info("dsr.rejected", dsr_id=str(dsr_id))
        await self._publish(records, dsr)
        return TransitionOutcome(view=self._dsr_view(dsr, [], now), transitions=records)

    async def record_task_outcome(
        self,
        task_id: uuid.UUID,
        status: TaskStatus | str,
        *,
        result: dict[str, Any] | None = None,
        error: str | None = None,
        actor: str,
        tenant_id: uuid.UUID | None = None,
    ) -> TransitionOutcome:
        """Apply an execution outcome to one task and roll the parent up.

        The parent DSR's version is bumped on every outcome so two writers on
        different processes cannot both conclude the DSR is still running.

        Raises:
            InvalidTransition: Parent not IN_PROGRESS, or task already terminal.
            ValidationError: Unknown status or mismatched result/error.
        """
        target = _enum(TaskStatus, status, "status")
        if target == TaskStatus.PENDING:
            raise ValidationError("PENDING is not a reportable task outcome", field="status")

        async def find_parent(uow: UnitOfWork) -> uuid.UUID:
            task = await uow.tasks.get_task(task_id)
            _check_tenant(task, tenant_id, "dsr_task")
            return task.dsr_id

        dsr_id = await self._in_uow("task.lookup", find_parent)
        now = self._clock.now()

        async def work(uow: UnitOfWork) -> tuple[DataSubjectRequest, list[DSRTask], list[TransitionRecord]]:
            task = await uow.tasks.get_task(task_id)
            dsr = await uow.cases.get_dsr(dsr_id)
            version = dsr.version
            state_machine.ensure_dsr_status(dsr, DSRStatus.IN_PROGRESS)

            records = [
                state_machine.apply_task_outcome(
                    task, target, result=result, error=error, actor=actor, now=now
                )
            ]
            await uow.tasks.update_task(task)

            tasks = await uow.tasks.list_tasks(dsr_id)
            final = state_machine.rollup_status(tasks)
            if final is not None:
                records.append(state_machine.apply_dsr_transition(dsr, final, actor=actor, now=now))
            else:
                dsr.updated_at = now
            return await uow.cases.save_dsr(dsr, version), tasks, records

        dsr, tasks, records = await self._locked(dsr_id, "task.record_outcome", work)
        log.info(
            "dsr.task_outcome_recorded",
            dsr_id=str(dsr_id),
            task_id=str(task_id),
            task_status=target,
            dsr_status=dsr.status,
        )
        await self._publish(records, dsr)
        return TransitionOutcome(view=self._dsr_view(dsr, tasks, now), transitions=records)

    async def get_dsr(self, dsr_id: uuid.UUID, *, tenant_id: uuid.UUID | None = None) -> DSRView:
        async def work(uow: UnitOfWork) -> tuple[DataSubjectRequest, list[DSRTask]]:
            dsr = await uow.cases.get_dsr(dsr_id)
            _check_tenant(dsr, tenant_id, "dsr")
            return dsr, await uow.tasks.list_tasks(dsr_id)

        dsr, tasks = await self._in_uow("dsr.get", work)
        return self._dsr_view(dsr, tasks, self._clock.now())

    async def list_dsrs(
        self,
        tenant_id: uuid.UUID,
        *,
        status: DSRStatus | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """One page of the tenant's DSRs, newest first, as ``DSRView`` items."""
        _check_page(page, page_size)
        status_filter = _enum(DSRStatus, status, "status") if status is not None else None

        async def work(uow: UnitOfWork) -> tuple[Page, list[list[DSRTask]]]:
            result = await uow.cases.list_dsrs(tenant_id, status=status_filter, page=page, page_size=page_size)
            return result, [await uow.tasks.list_tasks(dsr.id) for dsr in result.items]

        result, task_lists = await self._in_uow("dsr.list", work)
        now = self._clock.now()
        result.items = [self._dsr_view(dsr, tasks, now) for dsr, tasks in zip(result.items, task_lists, strict=True)]
        return result

    async def list_overdue(self, tenant_id: uuid.UUID) -> list[DSRView]:
        """Open DSRs past their SLA deadline, most overdue first."""
        now = self._clock.now()

        async def work(uow: UnitOfWork) -> list[tuple[DataSubjectRequest, list[DSRTask]]]:
            overdue = await uow.cases.list_overdue_dsrs(tenant_id, now)
            return [(dsr, await uow.tasks.list_tasks(dsr.id)) for dsr in overdue]

        rows = await self._in_uow("dsr.list_overdue", work)
        return [self._dsr_view(dsr, tasks, now) for dsr, tasks in rows]

    # ------------------------------------------------------------------
    # Incident operations
    # ------------------------------------------------------------------

    async def create_incident(
        self,
        tenant_id: uuid.UUID,
        *,
        title: str,
        severity: IncidentSeverity | str,
        detected_at: datetime | None = None,
        occurred_at: datetime | None = None,
        description: str = "",
        type: str = "",
        affected_systems: list[str] | None = None,
        pii_categories: list[str] | None = None,
        affected_data_subject_count: int = 0,
        poc_name: str | None = None,
        poc_role: str | None = None,
        poc_email: str | None = None,
        actor: str,
    ) -> TransitionOutcome:
        """Open a new incident in OPEN with reportability computed from its fields."""
        affected_data_subject_count = _subject_count(affected_data_subject_count)
        now = self._clock.now()
        incident = BreachIncident(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            title=_required_text(title, "title").strip(),
            severity=_enum(IncidentSeverity, severity, "severity"),
            status=IncidentStatus.OPEN,
            detected_at=_aware(detected_at, "detected_at") or now,
            created_at=now,
            updated_at=now,
            description=description or "",
            type=type or "",
            occurred_at=_aware(occurred_at, "occurred_at"),
            affected_systems=_string_set(affected_systems, "affected_systems"),
            pii_categories=_string_set(pii_categories, "pii_categories"),
            affected_data_subject_count=affected_data_subject_count,
            poc_name=poc_name,
            poc_role=poc_role,
            poc_email=poc_email,
        )
        reportability.apply_reportability(incident)
        record = TransitionRecord(
            entity_type="breach_incident",
            entity_id=incident.id,
            tenant_id=tenant_id,
            old_status=None,
            new_status=IncidentStatus.OPEN.value,
            actor=actor,
            timestamp=now,
        )

        async def work(uow: UnitOfWork) -> None:
            await uow.cases.add_incident(incident)

        await self._locked(incident.id, "incident.create", work)
        log.info(
            "incident.created",
            incident_id=str(incident.id),
            severity=incident.severity,
            is_reportable_cert_in=incident.is_reportable_cert_in,
            is_reportable_dpb=incident.is_reportable_dpb,
        )
        await self._publish([record], incident)
        return TransitionOutcome(view=self._incident_view(incident, now), transitions=[record])

    async def update_incident(
        self,
        incident_id: uuid.UUID,
        changes: Mapping[str, Any],
        *,
        actor: str,
        tenant_id: uuid.UUID | None = None,
    ) -> TransitionOutcome:
        """Write caller-owned fields and optionally move the status forward.

        Field writes are applied before the status change so that the
        transition checks see the updated incident. Reportability flags are
        recomputed on every update. A status equal to the current one is a
        no-op.

        Raises:
            ValidationError: Unknown or engine-owned field, bad value.
            InvalidTransition: Backward move, REPORTED without a report,
                CLOSED from a state other than RESOLVED/REPORTED, or any
                write to a CLOSED incident.
        """
        unknown = set(changes) - INCIDENT_UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"fields cannot be updated: {', '.join(sorted(unknown))}", fields=sorted(unknown)
            )
        now = self._clock.now()

        async def work(uow: UnitOfWork) -> tuple[BreachIncident, list[TransitionRecord]]:
            incident = await uow.cases.get_incident(incident_id)
            _check_tenant(incident, tenant_id, "breach_incident")
            if incident.status == IncidentStatus.CLOSED:
                raise InvalidTransition("breach_incident", incident.status.value, reason="incident is closed")
            version = incident.version
            target = _apply_incident_changes(incident, changes)
            incident.updated_at = now
            reportability.apply_reportability(incident)

            records: list[TransitionRecord] = []
            if target is not None and target != incident.status:
                records.append(
                    state_machine.apply_incident_transition(incident, target, actor=actor, now=now)
                )
            return await uow.cases.save_incident(incident, version), records

        incident, records = await self._locked(incident_id, "incident.update", work)
        log.info(
            "incident.updated",
            incident_id=str(incident_id),
            fields=sorted(changes),
            status=incident.status,
        )
        await self._publish(records, incident)
        return TransitionOutcome(view=self._incident_view(incident, now), transitions=records)

    async def get_incident(
        self, incident_id: uuid.UUID, *, tenant_id: uuid.UUID | None = None
    ) -> IncidentView:
        async def work(uow: UnitOfWork) -> BreachIncident:
            incident = await uow.cases.get_incident(incident_id)
            _check_tenant(incident, tenant_id, "breach_incident")
            return incident

        incident = await self._in_uow("incident.get", work)
        return self._incident_view(incident, self._clock.now())

    async def list_incidents(
        self,
        tenant_id: uuid.UUID,
        *,
        status: IncidentStatus | str | None = None,
        severity: IncidentSeverity | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """One page of the tenant's incidents, most recently detected first."""
        _check_page(page, page_size)
        status_filter = _enum(IncidentStatus, status, "status") if status is not None else None
        severity_filter = _enum(IncidentSeverity, severity, "severity") if severity is not None else None

        async def work(uow: UnitOfWork) -> Page:
            return await uow.cases.list_incidents(
                tenant_id, status=status_filter, severity=severity_filter, page=page, page_size=page_size
            )

        result = await self._in_uow("incident.list", work)
        now = self._clock.now()
        result.items = [self._incident_view(incident, now) for incident in result.items]
        return result

    async def generate_cert_in_report(
        self, incident_id: uuid.UUID, *, actor: str, tenant_id: uuid.UUID | None = None
    ) -> TransitionOutcome:
        """Build and attach the CERT-In report. Raises ``NotReportable``."""
        return await self._generate_report(Regulator.CERT_IN, incident_id, actor=actor, tenant_id=tenant_id)

    async def generate_dpb_report(
        self, incident_id: uuid.UUID, *, actor: str, tenant_id: uuid.UUID | None = None
    ) -> TransitionOutcome:
        """Build and attach the Data Protection Board report. Raises ``NotReportable``."""
        return await self._generate_report(Regulator.DPB, incident_id, actor=actor, tenant_id=tenant_id)

    async def _generate_report(
        self,
        regulator: Regulator,
        incident_id: uuid.UUID,
        *,
        actor: str,
        tenant_id: uuid.UUID | None,
    ) -> TransitionOutcome:
        now = self._clock.now()
        build = (
            reportability.generate_cert_in_report
            if regulator == Regulator.CERT_IN
            else reportability.generate_dpb_report
        )

        async def work(uow: UnitOfWork) -> tuple[BreachIncident, RegulatorReport]:
            incident = await uow.cases.get_incident(incident_id)
            _check_tenant(incident, tenant_id, "breach_incident")
            if incident.status == IncidentStatus.CLOSED:
                raise InvalidTransition("breach_incident", incident.status.value, reason="incident is closed")
            version = incident.version
            report = build(incident, now)
            incident.reports = [*incident.reports, report]
            if regulator == Regulator.CERT_IN and incident.reported_to_cert_in_at is None:
                incident.reported_to_cert_in_at = now
            if regulator == Regulator.DPB and incident.reported_to_dpb_at is None:
                incident.reported_to_dpb_at = now
            incident.updated_at = now
            return await uow.cases.save_incident(incident, version), report

        incident, report = await self._locked(
            incident_id,
            f"incident.report.{regulator.value.lower()}",
            work,
            timeout=self._settings.report_timeout_seconds,
        )
        log.info(
            "incident.report_generated",
            incident_id=str(incident_id),
            regulator=regulator,
            actor=actor,
            report_count=len(incident.reports),
        )
        return TransitionOutcome(view=self._incident_view(incident, now), report=report)


def _apply_incident_changes(incident: BreachIncident, changes: Mapping[str, Any]) -> IncidentStatus | None:
    """Write validated field values onto *incident*; return the requested status, if any."""
    target: IncidentStatus | None = None
    for name, value in changes.items():
        if name == "status":
            target = _enum(IncidentStatus, value, "status")
        elif name == "severity":
            incident.severity = _enum(IncidentSeverity, value, "severity")
        elif name == "title":
            incident.title = _required_text(value, "title").strip()
        elif name in ("description", "type"):
            setattr(incident, name, value or "")
        elif name == "detected_at":
            if value is None:
                raise ValidationError("detected_at cannot be cleared", field="detected_at")
            incident.detected_at = _aware(value, "detected_at")
        elif name == "occurred_at":
            incident.occurred_at = _aware(value, "occurred_at")
        elif name in ("affected_systems", "pii_categories"):
            setattr(incident, name, _string_set(value, name))
        elif name == "affected_data_subject_count":
            incident.affected_data_subject_count = _subject_count(value)
        else:
            setattr(incident, name, value)
    return target
