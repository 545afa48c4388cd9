"""
Unit Tests - Configuration
"""
import pytest
from pydantic import ValidationError

from erp_etl.config import DEFAULT_BATCH_SIZE, Settings, get_settings
from erp_etl.config.settings import SourceSettings, WarehouseSettings


class TestSettings:
    """Tests for the settings tree"""

    def test_defaults(self, test_settings):
        """Test defaults of every section"""
        assert test_settings.app_env == "testing"
        assert test_settings.etl.batch_size == DEFAULT_BATCH_SIZE == 500
        assert test_settings.source.backend == "com"
        assert test_settings.source.com_prog_id == "V83.COMConnector"
        assert test_settings.warehouse.command_timeout == 60
        assert not test_settings.is_production

    def test_sections_read_prefixed_env(self, monkeypatch):
        """Test that each section reads its own prefix"""
        monkeypatch.setenv("ETL_BATCH_SIZE", "250")
        monkeypatch.setenv("SOURCE_BACKEND", "MOCK")
        monkeypatch.setenv("WAREHOUSE_HOST", "dwh.internal")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = get_settings()

        assert settings.etl.batch_size == 250
        assert settings.source.backend == "mock"
        assert settings.warehouse.host == "dwh.internal"
        assert settings.monitoring.log_level == "DEBUG"

    def test_get_settings_is_cached(self):
        """Test that settings are loaded once"""
        assert get_settings() is get_settings()

    def test_non_positive_batch_size_is_accepted(self, monkeypatch):
        """Test that the fallback is left to the orchestrator"""
        monkeypatch.setenv("ETL_BATCH_SIZE", "0")
        assert get_settings().etl.batch_size == 0

    def test_invalid_environment_rejected(self):
        """Test app_env validation"""
        with pytest.raises(ValidationError):
            Settings(app_env="qa")

    def test_invalid_backend_rejected(self):
        """Test source backend validation"""
        with pytest.raises(ValidationError):
            SourceSettings(backend="odbc")


class TestWarehouseSettings:
    """Tests for warehouse URL building"""

    def test_async_url_from_parts(self):
        settings = WarehouseSettings(host="db", port=5433, db="dwh", user="loader", password="s3cret")

        assert settings.async_url == "postgresql+asyncpg://loader:s3cret@db:5433/dwh"

    def test_url_override(self):
        settings = WarehouseSettings(url="sqlite+aiosqlite:///:memory:", host="ignored")

        assert settings.async_url == "sqlite+aiosqlite:///:memory:"

    def test_password_is_secret(self):
        settings = WarehouseSettings(password="s3cret")

        assert "s3cret" not in repr(settings)
