"""Application configuration management."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server settings
    app_host: str = Field(default="0.0.0.0", description="Server bind host")
    app_port: int = Field(default=8080, description="Server bind port")
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        description="Origins allowed to call the API (the dashboard client)",
    )

    # Upstream API settings
    upstream_url: str = Field(
        default="https://api.open-meteo.com/v1/forecast",
        description="Open-Meteo forecast API URL",
    )
    upstream_timeout_seconds: float = Field(
        default=10.0,
        description="Upstream request timeout in seconds",
        ge=0.1,
        le=60.0,
    )
    forecast_days: int = Field(
        default=7,
        description="Number of daily forecast entries requested",
        ge=1,
        le=16,
    )

    # Cache settings
    cache_ttl_seconds: int = Field(
        default=3600,
        description="TTL shared by the raw weather and formatted city caches",
        ge=1,
        le=86400,
    )
    cache_sweep_probability: float = Field(
        default=0.1,
        description="Chance of sweeping expired entries after a raw weather write",
        ge=0.0,
        le=1.0,
    )

    # Supabase settings
    supabase_url: str = Field(
        default="http://localhost:54321",
        description="Supabase project URL (PostgREST and GoTrue)",
    )
    supabase_key: str = Field(
        default="",
        description="Supabase API key sent as apikey and bearer token",
    )
    store_timeout_seconds: float = Field(
        default=5.0,
        description="Database and auth request timeout in seconds",
        ge=0.1,
        le=60.0,
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: str = Field(
        default="json",
        description="Log format (json or text)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
