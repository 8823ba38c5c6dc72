"""
Bestsellers Mirror
Centralized Configuration Management

Typed configuration built on Pydantic settings. Every section reads its
values from environment variables (or a local ``.env`` file) and validates
them on load.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Local store configuration"""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", env_file=".env", extra="ignore")

    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL (overrides path)")
    path: str = Field(default="./data/bestsellers.db", description="SQLite database file")
    echo: bool = Field(default=False, description="Echo SQL queries")

    @property
    def async_url(self) -> str:
        """Async database URL (aiosqlite unless DATABASE_URL says otherwise)"""
        if self.url:
            return self.url
        return f"sqlite+aiosqlite:///{self.path}"

    @property
    def is_sqlite(self) -> bool:
        return self.async_url.startswith("sqlite")


class BooksApiSettings(BaseSettings):
    """Remote Books API configuration"""

    model_config = SettingsConfigDict(env_prefix="NYT_", env_file=".env", extra="ignore")

    api_key: Optional[SecretStr] = Field(default=None, description="Books API key")
    base_url: str = Field(
        default="https://api.nytimes.com/svc/books/v3",
        description="Books API base URL",
    )
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout in seconds")

    # Rate limiting (5 requests per minute, 500 per day)
    rate_limit_delay_seconds: float = Field(
        default=12.0, description="Fixed delay before every outbound call"
    )
    max_requests_per_day: int = Field(default=500, description="Daily call ceiling")

    @field_validator("rate_limit_delay_seconds")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("rate_limit_delay_seconds must not be negative")
        return v


class SecuritySettings(BaseSettings):
    """Query API exposure configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(default=["*"], description="Allowed CORS origins")


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="text", alias="LOG_FORMAT", description="Log format: json or text")


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

    # Application
    app_name: str = Field(default="bestsellers-mirror", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    books_api: BooksApiSettings = Field(default_factory=BooksApiSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
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
