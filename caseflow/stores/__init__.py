"""Case, task and scope stores consumed by the case service."""

from caseflow.stores.base import (
    AuditSink,
    CaseStore,
    NotificationDispatcher,
    ScopeProvider,
    TaskStore,
    UnitOfWork,
    UnitOfWorkFactory,
)
from caseflow.stores.memory import InMemoryCaseDatabase, InMemoryUnitOfWork
from caseflow.stores.scope import StaticScopeProvider

__all__ = [
    "AuditSink",
    "CaseStore",
    "InMemoryCaseDatabase",
    "InMemoryUnitOfWork",
    "NotificationDispatcher",
    "ScopeProvider",
    "StaticScopeProvider",
    "TaskStore",
    "UnitOfWork",
    "UnitOfWorkFactory",
]
