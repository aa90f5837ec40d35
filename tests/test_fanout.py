"""Tests for the task fan-out resolver."""

import uuid
from datetime import UTC, datetime

import pytest

from caseflow.compliance.fanout import resolve, task_id_for
from caseflow.compliance.models import (
    DataSource,
    DataSubject,
    DataSubjectRequest,
    DSRStatus,
    DSRType,
    Priority,
    TaskStatus,
)
from caseflow.stores.scope import StaticScopeProvider

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def make_dsr(request_type: DSRType = DSRType.ACCESS) -> DataSubjectRequest:
    return DataSubjectRequest(
        id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        request_type=request_type,
        status=DSRStatus.APPROVED,
        subject=DataSubject(name="Ravi", email="ravi@example.com"),
        priority=Priority.MEDIUM,
        sla_deadline=T0,
        created_at=T0,
        updated_at=T0,
    )


class TestResolve:
    @pytest.mark.parametrize(
        "request_type",
        [DSRType.ACCESS, DSRType.ERASURE, DSRType.CORRECTION, DSRType.PORTABILITY],
    )
    def test_one_pending_task_per_source(self, request_type):
        dsr = make_dsr(request_type)
        tasks = resolve(dsr, [DataSource(id="crm"), DataSource(id="billing")], T0)

        assert [t.data_source_id for t in tasks] == ["billing", "crm"]
        for task in tasks:
            assert task.dsr_id == dsr.id
            assert task.tenant_id == dsr.tenant_id
            assert task.task_type == request_type
            assert task.status == TaskStatus.PENDING
            assert task.id == task_id_for(dsr.id, task.data_source_id)

    @pytest.mark.parametrize("request_type", [DSRType.NOMINATION, DSRType.GRIEVANCE])
    def test_record_only_types_resolve_to_nothing(self, request_type):
        assert resolve(make_dsr(request_type), ["crm", "billing"], T0) == []

    def test_deterministic_membership_and_order(self):
        """Same DSR and scope produce the same ordered list, whatever the input order."""
        dsr = make_dsr()
        first = resolve(dsr, ["warehouse", "crm", "billing"], T0)
        second = resolve(dsr, ["billing", "warehouse", "crm"], T0)

        assert [(t.id, t.data_source_id) for t in first] == [(t.id, t.data_source_id) for t in second]

    def test_duplicate_sources_collapse(self):
        tasks = resolve(make_dsr(), ["crm", DataSource(id="crm"), "billing"], T0)
        assert [t.data_source_id for t in tasks] == ["billing", "crm"]

    def test_empty_scope(self):
        assert resolve(make_dsr(), [], T0) == []

    def test_blank_and_padded_ids_are_normalised(self):
        tasks = resolve(make_dsr(), ["crm", " crm", "", "  ", DataSource(id="billing ")], T0)
        assert [t.data_source_id for t in tasks] == ["billing", "crm"]


class TestStaticScope:
    async def test_scope_ids_are_normalised(self):
        tenant_id = uuid.uuid4()
        scope = StaticScopeProvider({tenant_id: ["crm", " crm", ""]})

        sources = await scope.data_sources_in_scope(tenant_id)

        assert [s.id for s in sources] == ["crm"]
        assert [t.data_source_id for t in resolve(make_dsr(), sources, T0)] == ["crm"]

    async def test_set_scope_normalises(self):
        tenant_id = uuid.uuid4()
        scope = StaticScopeProvider()
        scope.set_scope(tenant_id, ["warehouse", "", "warehouse "])

        assert [s.id for s in await scope.data_sources_in_scope(tenant_id)] == ["warehouse"]
