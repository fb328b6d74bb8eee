"""
Unified Dashboard Pipeline
Centralized Configuration Management

Application-level configuration loaded with Pydantic settings from the
environment. Per-account settings (fees, source credentials) are not stored
here; they come from the account settings store at call time.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="unified_dashboard", alias="database", description="Database name")
    user: str = Field(default="dashboard", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=100, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class ConnectorSettings(BaseSettings):
    """Upstream source API configuration"""

    model_config = SettingsConfigDict(env_prefix="CONNECTOR_")

    http_timeout_seconds: float = Field(default=30.0, description="Per-request HTTP timeout")

    # Orders source (Shopify Admin REST)
    shopify_api_version: str = Field(default="2025-01", description="Shopify Admin API version")
    shopify_page_size: int = Field(default=250, description="Orders page size")

    # Shipments source (Shiprocket)
    shiprocket_base_url: str = Field(
        default="https://apiv2.shiprocket.in/v1/external",
        description="Shiprocket external API base URL",
    )
    shiprocket_page_size: int = Field(default=100, description="Shipments page size")

    # Ads source (Facebook Graph)
    facebook_graph_url: str = Field(default="https://graph.facebook.com/v18.0", description="Graph API base URL")
    facebook_page_size: int = Field(default=100, description="Insights page size")


class PipelineSettings(BaseSettings):
    """Aggregation pipeline, cache and refresh job configuration"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    cache_backend: str = Field(default="database", description="Snapshot cache backend: redis or database")
    cache_ttl_minutes: int = Field(default=10, description="Snapshot time-to-live")

    # Background refresh
    refresh_enabled: bool = Field(default=True, description="Run the refresh loop inside the API process")
    refresh_interval_minutes: int = Field(default=5, description="Refresh job interval")
    refresh_batch_size: int = Field(default=100, description="Identities processed per refresh run")
    refresh_date_ranges: List[int] = Field(default=[7, 30, 90], description="Date ranges pre-warmed per identity")

    # Source failure handling
    breaker_failure_threshold: int = Field(default=3, description="Consecutive failures before cooldown")
    breaker_cooldown_minutes: int = Field(default=15, description="Cooldown after the threshold is hit")
    source_retry_attempts: int = Field(default=0, description="Extra attempts per source within one request")
    source_retry_backoff_seconds: float = Field(default=1.0, description="Delay between attempts")

    # Rankings
    top_n: int = Field(default=10, description="Rows kept in best-seller and state rankings")

    @field_validator("cache_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate cache backend value"""
        allowed = ["redis", "database"]
        if v.lower() not in allowed:
            raise ValueError(f"Cache backend must be one of: {allowed}")
        return v.lower()


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
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
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="unified-dashboard", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    connectors: ConnectorSettings = Field(default_factory=ConnectorSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
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
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
