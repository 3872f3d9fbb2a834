"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - Every setting has a working default; secrets come from the environment only
    - get_settings() is cached (lru_cache), single instance per process
    - Settings only configure; the bus, history and breakers are built from them
      by services/bus_factory.py, never held here

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - sqlite+aiosqlite default so the API runs without a database server
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from command_core.core.redaction import DEFAULT_SENSITIVE_FIELDS


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = "sqlite+aiosqlite:///./command_core.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres gives postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Command bus
    history_capacity: int = 100
    command_timeout_seconds: float = 30.0
    audit_sensitive_fields: list[str] = list(DEFAULT_SENSITIVE_FIELDS)

    # Recovery: retry
    retry_max_attempts: int = 3
    retry_base_delay_ms: int = 100
    retry_max_delay_ms: int = 5_000

    # Recovery: circuit breaker
    breaker_failure_threshold: int = 5
    breaker_window_seconds: float = 60.0
    breaker_cooldown_seconds: float = 30.0
    breaker_half_open_max_calls: int = 1

    # Auth commands
    password_hash_rounds: int = 12
    login_max_attempts: int = 5
    login_window_seconds: float = 60.0

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
