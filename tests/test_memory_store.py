"""Tests for the in-memory unit of work and stores."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from caseflow.compliance.models import (
    DataSubject,
    DataSubjectRequest,
    DSRStatus,
    DSRTask,
    DSRType,
    Priority,
    TaskStatus,
)
from caseflow.core.errors import ConcurrentModification, NotFound
from caseflow.stores.memory import InMemoryCaseDatabase

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def make_dsr(tenant_id: uuid.UUID, **overrides) -> DataSubjectRequest:
    fields = {
        "id": uuid.uuid4(),
        "tenant_id": tenant_id,
        "request_type": DSRType.ACCESS,
        "status": DSRStatus.PENDING,
        "subject": DataSubject(name="", email="s@example.com"),
        "priority": Priority.MEDIUM,
        "sla_deadline": T0 + timedelta(days=7),
        "created_at": T0,
        "updated_at": T0,
    }
    fields.update(overrides)
    return DataSubjectRequest(**fields)


def make_task(dsr: DataSubjectRequest, source: str) -> DSRTask:
    return DSRTask(
        id=uuid.uuid4(),
        dsr_id=dsr.id,
        tenant_id=dsr.tenant_id,
        data_source_id=source,
        task_type=dsr.request_type,
        status=TaskStatus.PENDING,
        created_at=T0,
        updated_at=T0,
    )


class TestInMemoryUnitOfWork:
    async def test_commit_applies_staged_writes(self, memory_db: InMemoryCaseDatabase, tenant_a):
        dsr = make_dsr(tenant_a)
        async with memory_db.unit_of_work() as uow:
            await uow.cases.add_dsr(dsr)
            assert memory_db.dsrs == {}
            assert (await uow.cases.get_dsr(dsr.id)).id == dsr.id

        assert memory_db.dsrs[dsr.id].version == 0

    async def test_exception_discards_staged_writes(self, memory_db, tenant_a):
        dsr = make_dsr(tenant_a)
        with pytest.raises(RuntimeError):
            async with memory_db.unit_of_work() as uow:
                await uow.cases.add_dsr(dsr)
                await uow.tasks.insert_tasks([make_task(dsr, "crm")])
                raise RuntimeError("boom")

        assert memory_db.dsrs == {}
        assert memory_db.tasks == {}

    async def test_save_bumps_version(self, memory_db, tenant_a):
        dsr = make_dsr(tenant_a)
        async with memory_db.unit_of_work() as uow:
            await uow.cases.add_dsr(dsr)

        async with memory_db.unit_of_work() as uow:
            loaded = await uow.cases.get_dsr(dsr.id)
            loaded.status = DSRStatus.APPROVED
            saved = await uow.cases.save_dsr(loaded, loaded.version)

        assert saved.version == 1
        assert memory_db.dsrs[dsr.id].status == DSRStatus.APPROVED
        assert memory_db.dsrs[dsr.id].version == 1

    async def test_stale_version_detected_at_save(self, memory_db, tenant_a):
        dsr = make_dsr(tenant_a)
        async with memory_db.unit_of_work() as uow:
            await uow.cases.add_dsr(dsr)

        with pytest.raises(ConcurrentModification):
            async with memory_db.unit_of_work() as uow:
                loaded = await uow.cases.get_dsr(dsr.id)
                await uow.cases.save_dsr(loaded, expected_version=5)

    async def test_interleaved_writers_conflict_at_commit(self, memory_db, tenant_a):
        """Two units of work that loaded the same version cannot both commit."""
        dsr = make_dsr(tenant_a)
        async with memory_db.unit_of_work() as uow:
            await uow.cases.add_dsr(dsr)

        first = memory_db.unit_of_work()
        second = memory_db.unit_of_work()
        a = await first.cases.get_dsr(dsr.id)
        b = await second.cases.get_dsr(dsr.id)
        await first.cases.save_dsr(a, a.version)
        await second.cases.save_dsr(b, b.version)

        await first.commit()
        with pytest.raises(ConcurrentModification):
            await second.commit()
        assert memory_db.dsrs[dsr.id].version == 1

    async def test_reads_are_isolated_copies(self, memory_db, tenant_a):
        dsr = make_dsr(tenant_a)
        async with memory_db.unit_of_work() as uow:
            await uow.cases.add_dsr(dsr)

        async with memory_db.unit_of_work() as uow:
            loaded = await uow.cases.get_dsr(dsr.id)
            loaded.subject.identifiers["leak"] = "x"

        assert memory_db.dsrs[dsr.id].subject.identifiers == {}

    async def test_duplicate_task_rejected(self, memory_db, tenant_a):
        dsr = make_dsr(tenant_a)
        task = make_task(dsr, "crm")
        async with memory_db.unit_of_work() as uow:
            await uow.cases.add_dsr(dsr)
            await uow.tasks.insert_tasks([task])

        with pytest.raises(ConcurrentModification):
            async with memory_db.unit_of_work() as uow:
                await uow.tasks.insert_tasks([task])

    async def test_unknown_ids(self, memory_db):
        async with memory_db.unit_of_work() as uow:
            with pytest.raises(NotFound):
                await uow.cases.get_dsr(uuid.uuid4())
            with pytest.raises(NotFound):
                await uow.cases.get_incident(uuid.uuid4())
            with pytest.raises(NotFound):
                await uow.tasks.get_task(uuid.uuid4())


class TestInMemoryQueries:
    async def test_tasks_listed_by_source(self, memory_db, tenant_a):
        dsr = make_dsr(tenant_a)
        async with memory_db.unit_of_work() as uow:
            await uow.cases.add_dsr(dsr)
            await uow.tasks.insert_tasks([make_task(dsr, "warehouse"), make_task(dsr, "billing")])

        async with memory_db.unit_of_work() as uow:
            tasks = await uow.tasks.list_tasks(dsr.id)
        assert [t.data_source_id for t in tasks] == ["billing", "warehouse"]

    async def test_overdue_excludes_terminal_and_future(self, memory_db, tenant_a, tenant_b):
        late = make_dsr(tenant_a, sla_deadline=T0 - timedelta(days=2))
        later = make_dsr(tenant_a, sla_deadline=T0 - timedelta(days=1))
        done = make_dsr(tenant_a, sla_deadline=T0 - timedelta(days=3), status=DSRStatus.COMPLETED)
        future = make_dsr(tenant_a, sla_deadline=T0 + timedelta(days=1))
        foreign = make_dsr(tenant_b, sla_deadline=T0 - timedelta(days=5))
        async with memory_db.unit_of_work() as uow:
            for dsr in (later, done, future, foreign, late):
                await uow.cases.add_dsr(dsr)

        async with memory_db.unit_of_work() as uow:
            overdue = await uow.cases.list_overdue_dsrs(tenant_a, T0)
        assert [d.id for d in overdue] == [late.id, later.id]
