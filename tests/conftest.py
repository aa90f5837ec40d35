"""
Shared test fixtures for pytest.

Provides common collaborators and test data for all test modules:
- fake_settings: Test environment configuration (SLA windows, scope, timeouts)
- clock: Manually advanced clock pinned to T0
- memory_db: In-memory case database
- scope: Static scope provider with two data sources for tenant_a
- audit / notifier: AsyncMock collaborators that record calls
- service: CaseService wired to the fixtures above
- tenant_a, tenant_b: Multi-tenant test IDs
"""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from caseflow.compliance.service import CaseService
from caseflow.config import Environment, Settings, get_settings
from caseflow.core.clock import FixedClock
from caseflow.stores.memory import InMemoryCaseDatabase
from caseflow.stores.scope import StaticScopeProvider

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
ACTOR = "officer-1"


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #

@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------------------------------------------ #
# Identity fixtures
# ------------------------------------------------------------------ #

@pytest.fixture
def tenant_a() -> uuid.UUID:
    return uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")


@pytest.fixture
def tenant_b() -> uuid.UUID:
    return uuid.UUID("bbbbbbbb-0000-0000-0000-000000000002")


# ------------------------------------------------------------------ #
# Settings & collaborators
# ------------------------------------------------------------------ #

@pytest.fixture
def fake_settings() -> Settings:
    """Test environment settings with the default SLA windows."""
    return Settings(
        _env_file=None,
        environment=Environment.TEST,
        database_url="sqlite+aiosqlite:///:memory:",
        store_backend="memory",
        store_timeout_seconds=2.0,
        report_timeout_seconds=2.0,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def memory_db() -> InMemoryCaseDatabase:
    return InMemoryCaseDatabase()


@pytest.fixture
def scope(tenant_a: uuid.UUID) -> StaticScopeProvider:
    """tenant_a has two data sources in scope; tenant_b has none."""
    return StaticScopeProvider({tenant_a: ["crm", "billing"]})


@pytest.fixture
def audit() -> AsyncMock:
    sink = AsyncMock()
    sink.record = AsyncMock(return_value=None)
    return sink


@pytest.fixture
def notifier() -> AsyncMock:
    dispatcher = AsyncMock()
    dispatcher.notify_transition = AsyncMock(return_value=True)
    return dispatcher


@pytest.fixture
def service(
    memory_db: InMemoryCaseDatabase,
    scope: StaticScopeProvider,
    audit: AsyncMock,
    notifier: AsyncMock,
    clock: FixedClock,
    fake_settings: Settings,
) -> CaseService:
    """CaseService over the in-memory store with mocked audit and notifications."""
    return CaseService(
        uow_factory=memory_db.unit_of_work,
        scope=scope,
        audit=audit,
        notifier=notifier,
        clock=clock,
        settings=fake_settings,
    )
