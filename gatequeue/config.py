"""Application settings loaded from GATEQUEUE_* environment variables and .env."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PRODUCTION = "production"


class Settings(BaseSettings):
    """Runtime configuration for the gatequeue service."""

    environment: str = Field(
        default="development",
        description="Runtime environment; error responses carry debug info outside production.",
    )
    app_name: str = Field(default="gatequeue", description="Displayed API title.")
    log_level: str = Field(default="INFO", description="Root log level.")
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of the console renderer.",
    )
    redis_url: str = Field(
        default="",
        description="redis:// URL of the job store. Empty uses the in-process store.",
    )
    database_url: str = Field(
        default="",
        description="SQLAlchemy async URL of the policy store. Empty keeps policies in memory.",
    )
    permission_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    permission_cache_maxsize: int = Field(default=10_000, ge=1)
    policy_reload_interval_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Seconds between policy store reloads. Unset follows the permission cache TTL.",
    )
    job_ttl_seconds: int = Field(default=86_400, ge=1)
    lease_timeout_seconds: float = Field(default=300.0, gt=0)
    seed_default_policies: bool = Field(
        default=True,
        description="Seed the demo rules and role assignments into an empty policy store.",
    )
    auth_required: bool = Field(
        default=True,
        description="Reject requests without an X-User-Id header with 401.",
    )
    autostart_queues: bool = Field(
        default=False,
        description="Create the preset queues and start their workers on start-up.",
    )
    default_locale: str = Field(default="en-US")

    model_config = SettingsConfigDict(
        env_prefix="GATEQUEUE_",
        env_file=(".env",),
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == PRODUCTION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings instance."""
    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached settings to force a reload on next access."""
    get_settings.cache_clear()
