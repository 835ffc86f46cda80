from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration read from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="AUTOSHOP_", case_sensitive=False)

    app_name: str = Field(default="Autoshop Tickets")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s %(levelname)s %(name)s %(message)s")

    # Storage configuration
    storage_backend: str = Field(default="sql", pattern="^(sql|memory)$")
    database_url: str = Field(default="sqlite+aiosqlite:///./autoshop.db")
    ticket_snapshot_path: str | None = Field(default=None)

    # Lifecycle configuration
    ticket_id_prefix: str = Field(default="t", min_length=1)
    strict_status_transitions: bool = Field(default=True)

    # Observability configuration
    otel_enabled: bool = Field(default=False)
    otel_service_name: str = Field(default="autoshop-tickets")
    otel_exporter_otlp_endpoint: str | None = Field(default=None)
    otel_exporter_otlp_headers: str | None = Field(default=None)


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
