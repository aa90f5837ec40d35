"""Main API router - aggregates all sub-routers.

All case routes are versioned under /api/v1 except health checks.
"""

from __future__ import annotations

from fastapi import APIRouter

from caseflow.api import dsr, health, incidents

# Public router (no tenant headers required)
public_router = APIRouter()
public_router.include_router(health.router)

# Versioned API router
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(dsr.router)
api_v1_router.include_router(incidents.router)
