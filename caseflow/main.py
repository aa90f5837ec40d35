"""FastAPI application entrypoint.

Application startup order:
1. Load settings (from environment)
2. Configure structured logging
3. Initialize the case store (SQL engine or in-memory database)
4. Build the CaseService with its scope, audit and notification collaborators

Shutdown order:
1. Wait for in-flight notifications
2. Close DB connection pool
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from caseflow import __version__
from caseflow.api.router import api_v1_router, public_router
from caseflow.compliance.service import CaseService
from caseflow.config import Settings, get_settings
from caseflow.core.audit import LoggingAuditSink, SqlAuditSink
from caseflow.core.errors import CaseflowError, ErrorKind
from caseflow.database import close_db, get_session_factory, init_db
from caseflow.operations.notification import CaseNotificationService
from caseflow.stores.memory import InMemoryCaseDatabase
from caseflow.stores.scope import StaticScopeProvider
from caseflow.stores.sql import sql_unit_of_work_factory
from caseflow.telemetry.logging import RequestIdMiddleware, configure_logging

log = structlog.get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.NOT_REPORTABLE: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONCURRENT_MODIFICATION: 409,
    ErrorKind.STORE_UNAVAILABLE: 503,
}


def build_case_service(settings: Settings) -> CaseService:
    """Wire the CaseService for the configured store backend."""
    if settings.store_backend == "memory":
        db = InMemoryCaseDatabase()
        uow_factory = db.unit_of_work
        audit = LoggingAuditSink()
    else:
        init_db(settings)
        session_factory = get_session_factory()
        uow_factory = sql_unit_of_work_factory(session_factory)
        audit = SqlAuditSink(session_factory)

    return CaseService(
        uow_factory=uow_factory,
        scope=StaticScopeProvider.from_settings(settings),
        audit=audit,
        notifier=CaseNotificationService.from_settings(settings),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    settings = get_settings()

    # Configure structured logging first (before any log calls)
    configure_logging(
        json_logs=settings.is_prod,
        log_level="DEBUG" if settings.debug else settings.log_level,
    )

    log.info(
        "app.starting",
        environment=settings.environment,
        store_backend=settings.store_backend,
        db_url=settings.database_url.split("@")[-1],
    )

    if getattr(app.state, "case_service", None) is None:
        app.state.case_service = build_case_service(settings)

    log.info("app.ready")
    yield

    await app.state.case_service.aclose()
    await close_db()
    log.info("app.shutdown")


def create_app(service: CaseService | None = None) -> FastAPI:
    """Application factory.

    Pass *service* to run against a pre-built CaseService (tests, embedding);
    otherwise the lifespan builds one from settings.
    """
    settings = get_settings()

    app = FastAPI(
        title="Caseflow",
        description="Compliance case lifecycle and SLA engine for DSRs and breach incidents.",
        version=__version__,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
        openapi_url="/openapi.json" if settings.is_dev else None,
        lifespan=lifespan,
    )
    app.state.case_service = service

    # ------------------------------------------------------------------ #
    # Middleware (added in reverse order - last added = first executed)
    # ------------------------------------------------------------------ #
    cors_origins = ["*"] if settings.is_dev else settings.cors_allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.is_prod,
        allow_methods=["*"],
        allow_headers=["Content-Type", "X-Tenant-Id", "X-Actor-Id"],
    )

    # Unique request ID for log correlation and audit trails
    app.add_middleware(RequestIdMiddleware)

    # ------------------------------------------------------------------ #
    # Routers
    # ------------------------------------------------------------------ #
    app.include_router(public_router)
    app.include_router(api_v1_router)

    # ------------------------------------------------------------------ #
    # Exception handlers
    # ------------------------------------------------------------------ #

    @app.exception_handler(CaseflowError)
    async def caseflow_error_handler(request: Request, exc: CaseflowError) -> JSONResponse:
        status_code = STATUS_BY_KIND[exc.kind]
        log_method = log.warning if exc.retryable else log.info
        log_method(
            "app.case_error",
            path=request.url.path,
            method=request.method,
            kind=exc.kind,
            detail=exc.message,
        )
        headers = {"Retry-After": "1"} if exc.kind == ErrorKind.STORE_UNAVAILABLE else None
        return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "error": ErrorKind.VALIDATION.value,
                "detail": "request validation failed",
                "retryable": False,
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "app.unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


# Module-level app instance for uvicorn
app = create_app()
