"""Database settings for the SQL response store.

SQLite through aiosqlite is the default so a checkout works without a
server; set DB_DRIVER=postgresql+asyncpg and the DB_HOST/DB_* variables
for a shared deployment.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Connection settings, read from DB_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    driver: str = Field(default="sqlite+aiosqlite", description="SQLAlchemy async driver")

    # Server databases
    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    name: str = Field(default="wizard")
    user: str = Field(default="")
    password: str = Field(default="")

    # SQLite file
    sqlite_path: Path = Field(default=Path("data/wizard_sessions.db"))

    # Pooling (ignored for SQLite)
    pool_size: int = Field(default=5, ge=1, le=100)
    max_overflow: int = Field(default=10, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, description="Seconds to wait for a pooled connection")
    pool_recycle: int = Field(default=1800, ge=60, description="Seconds before a connection is replaced")

    echo_sql: bool = Field(default=False, description="Echo every SQL statement")
    query_timeout: int = Field(default=30, ge=1, description="Per-statement timeout in seconds")

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.driver.lower()

    @computed_field
    @property
    def is_postgres(self) -> bool:
        return "postgres" in self.driver.lower()

    @computed_field
    @property
    def async_url(self) -> str:
        """SQLAlchemy URL; creates the SQLite file's directory on first use."""
        if self.is_sqlite:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path.absolute()}"

        credentials = self.user
        if credentials and self.password:
            credentials = f"{credentials}:{self.password}"
        if credentials:
            credentials += "@"
        return f"{self.driver}://{credentials}{self.host}:{self.port}/{self.name}"

    def get_connect_args(self) -> dict:
        """Driver-specific connect() keyword arguments."""
        if self.is_sqlite:
            return {"check_same_thread": False, "timeout": self.query_timeout}
        return {"command_timeout": self.query_timeout}


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Cached settings loaded from the environment."""
    return DatabaseSettings()
