"""
ERP Warehouse ETL
Centralized Configuration Management

Pydantic settings with environment variable support, validation and
type safety. Each subsystem reads its own prefixed environment variables.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BATCH_SIZE = 500


class WarehouseSettings(BaseSettings):
    """Analytical warehouse (star schema) connection"""

    model_config = SettingsConfigDict(env_prefix="WAREHOUSE_")

    driver: str = Field(default="postgresql+asyncpg", description="SQLAlchemy async driver")
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="erp_warehouse", description="Database name")
    user: str = Field(default="etl", description="Database user")
    password: SecretStr = Field(default="etl_password", description="Database password")
    url: Optional[str] = Field(default=None, description="Full database URL (overrides host/port)")
    command_timeout: int = Field(default=60, description="Per-statement timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL queries")

    @property
    def async_url(self) -> str:
        """Async database URL - uses WAREHOUSE_URL if set, otherwise builds from parts"""
        if self.url:
            return self.url
        return f"{self.driver}://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class SourceSettings(BaseSettings):
    """ERP source system (client-automation interface)"""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    backend: str = Field(default="com", description="Source backend: com or mock")
    connection_string: str = Field(default="", description="ERP infobase connection string")
    com_prog_id: str = Field(default="V83.COMConnector", description="COM ProgID of the ERP connector")
    mock_seed: int = Field(default=42, description="Seed for the mock source data")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate backend value"""
        allowed = ["com", "mock"]
        if v.lower() not in allowed:
            raise ValueError(f"Source backend must be one of: {allowed}")
        return v.lower()


class EtlSettings(BaseSettings):
    """ETL run tuning"""

    model_config = SettingsConfigDict(env_prefix="ETL_")

    # Non-positive values are tolerated here; the orchestrator falls back to the default.
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, description="Fact rows per bulk insert")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="erp-warehouse-etl", description="Application name")
    app_env: str = Field(default="development", description="Environment")

    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    source: SourceSettings = Field(default_factory=SourceSettings)
    etl: EtlSettings = Field(default_factory=EtlSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
