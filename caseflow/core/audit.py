"""Audit sinks for case status transitions.

Design:
- Audit writes happen AFTER the case transaction commits, in a separate
  session, so that a failed audit write never rolls back the business
  operation. Failures are logged and swallowed.
- Sinks are plain classes (not singletons) to keep them testable.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.compliance.models import TransitionRecord
from caseflow.models.audit import AuditLogRecord

log = structlog.get_logger(__name__)


class LoggingAuditSink:
    """Emit each transition as a structured log event."""

    async def record(self, transition: TransitionRecord) -> None:
        log.info("audit.transition", **transition.to_dict())


class SqlAuditSink:
    """Append transitions to the ``audit_logs`` table.

    Usage:
        audit = SqlAuditSink(get_session_factory())
        await audit.record(transition)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, transition: TransitionRecord) -> None:
        entry = AuditLogRecord(
            tenant_id=transition.tenant_id,
            timestamp=transition.timestamp,
            action=f"{transition.entity_type}.transition",
            entity_type=transition.entity_type,
            entity_id=transition.entity_id,
            old_status=transition.old_status,
            new_status=transition.new_status,
            actor=transition.actor,
        )
        try:
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception as exc:
            # Audit failure must not fail the transition that already committed
            log.error(
                "audit.write_failed",
                error=str(exc),
                entity_type=transition.entity_type,
                entity_id=str(transition.entity_id),
            )
