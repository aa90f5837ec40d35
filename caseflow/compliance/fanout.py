"""Task fan-out resolver.

Turns one approved DSR into one task per in-scope data source. Scope
membership is supplied by the caller; this module never decides it.

Task ids are UUIDv5 values derived from (dsr_id, data_source_id), so two
calls with the same inputs yield the same list in the same order. A replayed
approval therefore cannot duplicate or reorder tasks.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime

from caseflow.compliance.models import (
    DataSource,
    DataSubjectRequest,
    DSRTask,
    DSRType,
    TaskStatus,
    ordered_unique,
)

# Request types handled purely as case records
RECORD_ONLY_TYPES = frozenset({DSRType.NOMINATION, DSRType.GRIEVANCE})

_TASK_NAMESPACE = uuid.UUID("6f1c2a9e-4b7d-5e3f-9a18-2c0d7b4e8f51")


def task_id_for(dsr_id: uuid.UUID, data_source_id: str) -> uuid.UUID:
    return uuid.uuid5(_TASK_NAMESPACE, f"{dsr_id}:{data_source_id}")


def resolve(
    dsr: DataSubjectRequest,
    data_sources_in_scope: Iterable[DataSource | str],
    now: datetime,
) -> list[DSRTask]:
    """Return the ordered task list for *dsr*.

    Source ids are stripped, blank ids dropped, duplicates collapsed and the
    result ordered by ``data_source_id`` ascending.
    NOMINATION and GRIEVANCE requests never execute against data sources and
    resolve to an empty list.
    """
    if dsr.request_type in RECORD_ONLY_TYPES:
        return []

    source_ids = sorted(
        ordered_unique([src.id if isinstance(src, DataSource) else str(src) for src in data_sources_in_scope])
    )
    return [
        DSRTask(
            id=task_id_for(dsr.id, source_id),
            dsr_id=dsr.id,
            tenant_id=dsr.tenant_id,
            data_source_id=source_id,
            task_type=dsr.request_type,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        for source_id in source_ids
    ]
