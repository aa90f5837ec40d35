"""SLA deadline policy.

Pure functions: no I/O and no system clock. Callers always pass ``now``.
The windows themselves come from ``Settings`` so they can be tuned per
jurisdiction without code changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from caseflow.compliance.models import BreachIncident, Priority, SLASnapshot
from caseflow.config import Settings

_ONE_DAY = timedelta(days=1)


def days_remaining(deadline: datetime, now: datetime) -> int:
    """Whole days left until *deadline*, rounded up.

    Once the deadline has passed the result is negative and its magnitude is
    the number of whole days overdue, with a floor of one so that an overdue
    case never reports ``0``.
    """
    if now > deadline:
        whole_days_past = (now - deadline) // _ONE_DAY
        return -max(1, whole_days_past)
    delta = deadline - now
    days, remainder = divmod(delta, _ONE_DAY)
    return days + (1 if remainder else 0)


def is_overdue(deadline: datetime, now: datetime) -> bool:
    return now > deadline


@dataclass(frozen=True)
class SLAPolicy:
    """Configured SLA windows.

    Usage:
        policy = SLAPolicy.from_settings(get_settings())
        deadline = policy.dsr_deadline(Priority.HIGH, created_at)
    """

    high_window: timedelta = timedelta(days=3)
    medium_window: timedelta = timedelta(days=7)
    low_window: timedelta = timedelta(days=15)
    cert_in_window: timedelta = timedelta(hours=6)
    dpb_window: timedelta = timedelta(hours=72)

    @classmethod
    def from_settings(cls, settings: Settings) -> SLAPolicy:
        return cls(
            high_window=timedelta(days=settings.dsr_sla_high_days),
            medium_window=timedelta(days=settings.dsr_sla_medium_days),
            low_window=timedelta(days=settings.dsr_sla_low_days),
            cert_in_window=timedelta(hours=settings.cert_in_window_hours),
            dpb_window=timedelta(hours=settings.dpb_window_hours),
        )

    def dsr_window(self, priority: Priority) -> timedelta:
        return {
            Priority.HIGH: self.high_window,
            Priority.MEDIUM: self.medium_window,
            Priority.LOW: self.low_window,
        }[priority]

    def dsr_deadline(self, priority: Priority, created_at: datetime) -> datetime:
        return created_at + self.dsr_window(priority)

    def cert_in_deadline(self, detected_at: datetime) -> datetime:
        return detected_at + self.cert_in_window

    def dpb_deadline(self, detected_at: datetime) -> datetime:
        return detected_at + self.dpb_window

    def incident_snapshot(self, incident: BreachIncident, now: datetime) -> SLASnapshot:
        cert_in = self.cert_in_deadline(incident.detected_at)
        dpb = self.dpb_deadline(incident.detected_at)
        return SLASnapshot(
            cert_in_deadline=cert_in,
            dpb_deadline=dpb,
            overdue_cert_in=is_overdue(cert_in, now),
            overdue_dpb=is_overdue(dpb, now),
            time_remaining_cert_in_seconds=int((cert_in - now).total_seconds()),
            time_remaining_dpb_seconds=int((dpb - now).total_seconds()),
        )
