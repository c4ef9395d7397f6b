"""Application configuration and settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_BASE_DIR = Path(__file__).resolve().parents[2]
_ENV_FILE = _BASE_DIR / ".env"


class Settings(BaseSettings):
    """Deployment settings loaded from environment variables.

    Generation policy (day structure, cost strategy, ...) is not configured
    here; it travels with each request as a GeneratorConfig.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE, env_file_encoding="utf-8", extra="ignore"
    )

    # Storage tiers
    database_url: str = Field(
        default="sqlite:///./itinerary.db",
        description="Structured storage tier connection URL",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the key-value tier and the sync channel",
    )
    storage_key_prefix: str = Field(
        default="itinerary_generator_",
        description="Key prefix for persisted itinerary records",
    )
    backup_key_prefix: str = Field(
        default="backup_", description="Prefix prepended to backup tier keys"
    )

    # Sync
    sync_channel_name: str = Field(
        default="itinerary-sync", description="Pub/sub channel for cross-context sync"
    )
    sync_interval_s: float = Field(
        default=30.0, description="Background sync sweep interval in seconds"
    )

    # Management engine
    state_cache_timeout_s: float = Field(
        default=3600.0, description="Age after which in-memory state is refreshed"
    )
    cleanup_interval_s: float = Field(
        default=300.0, description="Background memory cleanup interval in seconds"
    )
    max_destinations_in_memory: int = Field(
        default=100, description="Capacity of the destination LRU cache"
    )
    max_update_retry_attempts: int = Field(
        default=3, description="Recovery attempts after a failed update"
    )
    error_log_limit: int = Field(
        default=50, description="Maximum entries kept in a state's error log"
    )

    # Generation
    recovery_max_attempts: int = Field(
        default=3, description="Maximum recovery rounds per generation call"
    )
    rng_seed: int = Field(
        default=42, description="Seed for synthetic real-time price deltas"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level names."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("database_url", mode="after")
    @classmethod
    def _normalize_sqlite_url(cls, value: str) -> str:
        """Ensure relative sqlite URLs always point to the repo root."""
        sqlite_prefixes = ("sqlite:///", "sqlite+pysqlite:///")
        for prefix in sqlite_prefixes:
            if value.startswith(prefix):
                path = value[len(prefix) :]
                if path and path != ":memory:" and not path.startswith("/"):
                    abs_path = (_BASE_DIR / path).resolve()
                    return f"{prefix}{abs_path.as_posix()}"
        return value


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get application settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
