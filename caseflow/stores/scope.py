"""Scope providers: which data sources a tenant's DSRs fan out to."""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence

import structlog

from caseflow.compliance.models import DataSource, ordered_unique
from caseflow.config import Settings

log = structlog.get_logger(__name__)


class StaticScopeProvider:
    """Scope map fixed at construction time.

    Usage:
        scope = StaticScopeProvider.from_settings(get_settings())
        sources = await scope.data_sources_in_scope(tenant_id)
    """

    def __init__(self, scope: Mapping[uuid.UUID | str, Sequence[str]] | None = None) -> None:
        self._scope: dict[str, list[str]] = {
            str(tenant): ordered_unique(list(sources)) for tenant, sources in (scope or {}).items()
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> StaticScopeProvider:
        return cls(settings.data_source_scope)

    def set_scope(self, tenant_id: uuid.UUID, sources: Sequence[str]) -> None:
        self._scope[str(tenant_id)] = ordered_unique(list(sources))

    async def data_sources_in_scope(self, tenant_id: uuid.UUID) -> list[DataSource]:
        sources = self._scope.get(str(tenant_id), [])
        if not sources:
            log.debug("scope.empty", tenant_id=str(tenant_id))
        return [DataSource(id=source_id) for source_id in sources]
