"""Tests for Settings validation."""

import pytest
from pydantic import ValidationError

from caseflow.config import Environment, Settings


class TestSettings:
    def test_defaults_match_regulatory_windows(self):
        settings = Settings(_env_file=None, environment=Environment.TEST)

        assert (settings.dsr_sla_high_days, settings.dsr_sla_medium_days, settings.dsr_sla_low_days) == (3, 7, 15)
        assert settings.cert_in_window_hours == 6
        assert settings.dpb_window_hours == 72
        assert settings.dsr_auto_fanout is True

    def test_windows_must_be_ordered(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, dsr_sla_high_days=10, dsr_sla_medium_days=7)

    def test_windows_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, cert_in_window_hours=0)

    def test_dev_enables_debug(self):
        assert Settings(_env_file=None, environment=Environment.DEV).debug is True
        assert Settings(_env_file=None, environment=Environment.PROD, database_url="sqlite+aiosqlite:///x.db").is_prod

    def test_prod_refuses_default_database_password(self):
        with pytest.raises(RuntimeError, match="PRODUCTION STARTUP BLOCKED"):
            Settings(_env_file=None, environment=Environment.PROD)

    def test_scope_map_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATA_SOURCE_SCOPE", '{"tenant-1": ["crm", "billing"]}')
        monkeypatch.setenv("IDENTITY_VERIFICATION_TYPES", '["ERASURE"]')

        settings = Settings(_env_file=None)

        assert settings.data_source_scope == {"tenant-1": ["crm", "billing"]}
        assert settings.identity_verification_types == ["ERASURE"]
