"""Health check endpoints.

/health        - Liveness probe: is the process up?
/health/ready  - Readiness probe: can we serve traffic? (DB reachable?)

These are public endpoints - no tenant headers required.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from caseflow import __version__
from caseflow.config import get_settings
from caseflow.database import get_engine

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def liveness() -> dict:
    """Liveness probe - always returns 200 if the process is running."""
    return {"status": "ok", "version": __version__, "timestamp": datetime.now(UTC).isoformat()}


@router.get("/ready")
async def readiness() -> JSONResponse:
    """Readiness probe - checks DB connectivity when the SQL store is in use."""
    if get_settings().store_backend == "memory":
        db_status = "not_used"
    else:
        try:
            engine = get_engine()
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "ok"
        except Exception as exc:
            db_status = f"error: {exc}"

    is_ready = db_status in ("ok", "not_used")
    return JSONResponse(
        status_code=200 if is_ready else 503,
        content={
            "status": "ready" if is_ready else "not_ready",
            "database": db_status,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
