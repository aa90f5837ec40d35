"""ORM records. Import all here so Alembic autogenerate discovers them."""

from caseflow.models.audit import AuditLogRecord
from caseflow.models.dsr import DSRRecord, DSRTaskRecord
from caseflow.models.incident import BreachIncidentRecord

__all__ = [
    "AuditLogRecord",
    "BreachIncidentRecord",
    "DSRRecord",
    "DSRTaskRecord",
]
