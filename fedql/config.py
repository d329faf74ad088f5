"""Process configuration using pydantic-settings.

Settings are read from environment variables prefixed with ``FEDQL_`` or
from a ``.env`` file in the working directory.  They tune the planner; the
database topology itself comes from the metadata loader.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from fedql.schema.metadata import Freshness


class FedQLSettings(BaseSettings):
    """Planner settings.

    Attributes:
        trino_enabled: Overrides ``MultiDbConfig.trino.enabled`` when set.
        default_freshness: Tolerance used when a query does not specify one.
        cache_enabled: When ``False`` the cache strategy is never attempted.
        log_level: Minimum level for process logs.
        log_json: Render process logs as JSON instead of console output.
    """

    model_config = SettingsConfigDict(
        env_prefix="FEDQL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    trino_enabled: bool | None = None
    default_freshness: Freshness = Freshness.HOURS
    cache_enabled: bool = True

    log_level: str = "INFO"
    log_json: bool = False


@lru_cache
def get_settings() -> FedQLSettings:
    """Returns the process-wide settings instance."""
    return FedQLSettings()
