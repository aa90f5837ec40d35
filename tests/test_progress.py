"""Tests for the progress aggregator."""

import uuid
from datetime import UTC, datetime

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
from caseflow.compliance.progress import (
    APPROVED_PROGRESS,
    EMPTY_FANOUT_PLACEHOLDER_PROGRESS,
    progress,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def make_dsr(status: DSRStatus) -> DataSubjectRequest:
    return DataSubjectRequest(
        id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        request_type=DSRType.ACCESS,
        status=status,
        subject=DataSubject(name="", email="s@example.com"),
        priority=Priority.LOW,
        sla_deadline=T0,
        created_at=T0,
        updated_at=T0,
    )


def make_tasks(dsr: DataSubjectRequest, *statuses: TaskStatus) -> list[DSRTask]:
    return [
        DSRTask(
            id=uuid.uuid4(),
            dsr_id=dsr.id,
            tenant_id=dsr.tenant_id,
            data_source_id=f"source-{i}",
            task_type=dsr.request_type,
            status=status,
            created_at=T0,
            updated_at=T0,
        )
        for i, status in enumerate(statuses)
    ]


class TestProgress:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (DSRStatus.IDENTITY_VERIFICATION, 0),
            (DSRStatus.PENDING, 0),
            (DSRStatus.APPROVED, APPROVED_PROGRESS),
            (DSRStatus.COMPLETED, 100),
            (DSRStatus.REJECTED, 0),
            (DSRStatus.FAILED, 0),
        ],
    )
    def test_fixed_values_outside_in_progress(self, status, expected):
        assert progress(make_dsr(status), []) == expected

    def test_share_of_succeeded_tasks(self):
        dsr = make_dsr(DSRStatus.IN_PROGRESS)
        tasks = make_tasks(
            dsr, TaskStatus.COMPLETED, TaskStatus.VERIFIED, TaskStatus.FAILED, TaskStatus.PENDING
        )
        assert progress(dsr, tasks) == 50

    def test_rounds_to_nearest_integer(self):
        dsr = make_dsr(DSRStatus.IN_PROGRESS)
        tasks = make_tasks(dsr, TaskStatus.COMPLETED, TaskStatus.RUNNING, TaskStatus.PENDING)
        assert progress(dsr, tasks) == 33

    @pytest.mark.parametrize(("done", "expected"), [(1, 13), (5, 63), (3, 38)])
    def test_half_rounds_up(self, done, expected):
        dsr = make_dsr(DSRStatus.IN_PROGRESS)
        statuses = [TaskStatus.COMPLETED] * done + [TaskStatus.PENDING] * (8 - done)
        assert progress(dsr, make_tasks(dsr, *statuses)) == expected

    def test_placeholder_when_no_tasks_yet(self):
        """Placeholder policy value, not a derived measurement."""
        assert progress(make_dsr(DSRStatus.IN_PROGRESS), []) == EMPTY_FANOUT_PLACEHOLDER_PROGRESS

    def test_non_decreasing_as_tasks_advance(self):
        dsr = make_dsr(DSRStatus.IN_PROGRESS)
        tasks = make_tasks(dsr, TaskStatus.PENDING, TaskStatus.PENDING, TaskStatus.PENDING)
        steps = [
            (0, TaskStatus.RUNNING),
            (1, TaskStatus.RUNNING),
            (0, TaskStatus.COMPLETED),
            (2, TaskStatus.FAILED),
            (1, TaskStatus.VERIFIED),
        ]

        seen = [progress(dsr, tasks)]
        for index, status in steps:
            tasks[index].status = status
            seen.append(progress(dsr, tasks))

        assert seen == sorted(seen)
        assert seen[-1] == 67
