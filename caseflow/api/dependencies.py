"""FastAPI dependencies shared by the case routers.

Authentication is out of scope for this service: the calling gateway passes
an opaque actor id and the tenant id in headers, and they are trusted as-is.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request

from caseflow.compliance.service import CaseService
from caseflow.telemetry.logging import bind_actor_context, bind_tenant_context


@dataclass(frozen=True)
class RequestContext:
    tenant_id: uuid.UUID
    actor: str


async def get_request_context(
    x_tenant_id: Annotated[uuid.UUID, Header(description="Owning tenant of the cases")],
    x_actor_id: Annotated[str, Header(min_length=1, max_length=255, description="Acting officer or system")],
) -> RequestContext:
    bind_tenant_context(x_tenant_id)
    bind_actor_context(x_actor_id)
    return RequestContext(tenant_id=x_tenant_id, actor=x_actor_id)


def get_case_service(request: Request) -> CaseService:
    """Return the ``CaseService`` built during application startup."""
    service = getattr(request.app.state, "case_service", None)
    if service is None:
        raise RuntimeError("Case service not initialized. Start the app through its lifespan.")
    return service


ContextDep = Annotated[RequestContext, Depends(get_request_context)]
ServiceDep = Annotated[CaseService, Depends(get_case_service)]
