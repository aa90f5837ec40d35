"""Progress aggregator: a 0-100 completion estimate for the UI."""

from __future__ import annotations

from collections.abc import Sequence

from caseflow.compliance.models import DataSubjectRequest, DSRStatus, DSRTask

APPROVED_PROGRESS = 10

# Placeholder shown for an IN_PROGRESS request whose fan-out has produced no
# tasks yet. Not a measurement; kept at the value the UI has always shown.
EMPTY_FANOUT_PLACEHOLDER_PROGRESS = 50

_FIXED_PROGRESS: dict[DSRStatus, int] = {
    DSRStatus.IDENTITY_VERIFICATION: 0,
    DSRStatus.PENDING: 0,
    DSRStatus.APPROVED: APPROVED_PROGRESS,
    DSRStatus.COMPLETED: 100,
    DSRStatus.REJECTED: 0,
    DSRStatus.FAILED: 0,
}


def progress(dsr: DataSubjectRequest, tasks: Sequence[DSRTask]) -> int:
    if dsr.status != DSRStatus.IN_PROGRESS:
        return _FIXED_PROGRESS[dsr.status]
    if not tasks:
        return EMPTY_FANOUT_PLACEHOLDER_PROGRESS
    succeeded = sum(1 for task in tasks if task.succeeded)
    # Half rounds up, matching what the control centre has always displayed
    return (200 * succeeded + len(tasks)) // (2 * len(tasks))
