"""Application settings using Pydantic Settings.

Centralized configuration for the wizard session engine.

Environment variables:
- APP_*: application-wide settings (environment, logging, store backend)
- WIZARD_*: questionnaire behaviour
- RESILIENCE_*: caller-driven retry policy used for unsynced edits
- DB_*: database connection (see config.database)
"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


STORE_BACKENDS = ("memory", "sql")


class WizardSettings(BaseSettings):
    """Questionnaire behaviour settings."""

    model_config = SettingsConfigDict(
        env_prefix="WIZARD_",
        extra="ignore",
    )

    strict_field_validation: bool = Field(
        default=True,
        description="Reject field keys that the step catalog does not declare"
    )
    require_last_step_for_completion: bool = Field(
        default=True,
        description="Only allow completion once the last step is active"
    )


class ResilienceSettings(BaseSettings):
    """Retry policy for explicit re-sync of failed writes."""

    model_config = SettingsConfigDict(
        env_prefix="RESILIENCE_",
        extra="ignore",
    )

    retry_max_attempts: int = Field(default=3, ge=1, description="Max retry attempts")
    retry_initial_delay: float = Field(default=0.5, ge=0.0, description="Initial delay in seconds")
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    retry_max_delay: float = Field(default=10.0, ge=0.0, description="Max delay between retries")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    name: str = Field(default="Wizard Session Engine", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")

    # Response store backend
    store_backend: str = Field(
        default="sql",
        description="Response store implementation: memory or sql"
    )

    @field_validator("store_backend")
    @classmethod
    def _check_store_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be one of {STORE_BACKENDS}, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    # Nested settings (loaded separately)
    @property
    def wizard(self) -> WizardSettings:
        return WizardSettings()

    @property
    def resilience(self) -> ResilienceSettings:
        return ResilienceSettings()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings loaded from environment.
    """
    return Settings()
