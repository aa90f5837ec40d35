"""Tests for the SLA deadline policy."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from caseflow.compliance.models import (
    BreachIncident,
    IncidentSeverity,
    IncidentStatus,
    Priority,
)
from caseflow.compliance.sla import SLAPolicy, days_remaining, is_overdue
from caseflow.config import Environment, Settings

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class TestDsrDeadline:
    """Per-priority DSR windows."""

    @pytest.mark.parametrize(
        ("priority", "days"),
        [(Priority.HIGH, 3), (Priority.MEDIUM, 7), (Priority.LOW, 15)],
    )
    def test_deadline_matches_window_exactly(self, priority, days):
        policy = SLAPolicy()
        for created_at in (T0, T0 + timedelta(minutes=17), datetime(2024, 2, 28, 23, 59, tzinfo=UTC)):
            deadline = policy.dsr_deadline(priority, created_at)
            assert deadline > created_at
            assert deadline - created_at == timedelta(days=days)

    def test_windows_come_from_settings(self):
        settings = Settings(
            _env_file=None,
            environment=Environment.TEST,
            dsr_sla_high_days=1,
            dsr_sla_medium_days=10,
            dsr_sla_low_days=30,
            cert_in_window_hours=12,
            dpb_window_hours=48,
        )
        policy = SLAPolicy.from_settings(settings)

        assert policy.dsr_deadline(Priority.HIGH, T0) == T0 + timedelta(days=1)
        assert policy.dsr_deadline(Priority.MEDIUM, T0) == T0 + timedelta(days=10)
        assert policy.dsr_deadline(Priority.LOW, T0) == T0 + timedelta(days=30)
        assert policy.cert_in_deadline(T0) == T0 + timedelta(hours=12)
        assert policy.dpb_deadline(T0) == T0 + timedelta(hours=48)


class TestDaysRemaining:
    def test_counts_partial_days_up(self):
        deadline = T0 + timedelta(days=3)
        assert days_remaining(deadline, T0) == 3
        assert days_remaining(deadline, T0 + timedelta(hours=1)) == 3
        assert days_remaining(deadline, T0 + timedelta(days=2, hours=23)) == 1

    def test_zero_at_the_deadline(self):
        deadline = T0 + timedelta(days=3)
        assert days_remaining(deadline, deadline) == 0
        assert not is_overdue(deadline, deadline)

    @pytest.mark.parametrize("days_past", [1, 2, 5, 40])
    def test_negative_whole_days_once_overdue(self, days_past):
        """Past the deadline the value is minus the whole days elapsed."""
        deadline = T0
        now = deadline + timedelta(days=days_past, hours=3)
        assert days_remaining(deadline, now) == -days_past
        assert is_overdue(deadline, now)

    def test_less_than_a_day_overdue_is_minus_one(self):
        deadline = T0
        assert days_remaining(deadline, deadline + timedelta(minutes=1)) == -1


class TestIncidentSnapshot:
    def test_snapshot_deadlines_and_remaining_time(self):
        incident = BreachIncident(
            id=uuid.uuid4(),
            tenant_id=uuid.uuid4(),
            title="Leaked export",
            severity=IncidentSeverity.CRITICAL,
            status=IncidentStatus.OPEN,
            detected_at=T0,
            created_at=T0,
            updated_at=T0,
        )
        snapshot = SLAPolicy().incident_snapshot(incident, T0 + timedelta(hours=7))

        assert snapshot.cert_in_deadline == T0 + timedelta(hours=6)
        assert snapshot.dpb_deadline == T0 + timedelta(hours=72)
        assert snapshot.overdue_cert_in is True
        assert snapshot.overdue_dpb is False
        assert snapshot.time_remaining_cert_in_seconds == -3600
        assert snapshot.time_remaining_dpb_seconds == 65 * 3600
