"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(
        default="Material Inventory Engine",
        description="Human friendly name for the API.",
    )
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment flag used for logging/metrics.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./inventory.db",
        description="SQLAlchemy compatible database URL.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    log_level: str = Field(default="INFO", description="Level for the package logger.")
    low_stock_threshold: float = Field(
        default=10,
        ge=0,
        description="Fallback low-stock threshold when an item has no reorder point "
        "or minimum stock of its own.",
    )
    import_chunk_size: int = Field(
        default=1000,
        gt=0,
        description="Number of rows persisted per bulk-import transaction.",
    )
    import_sample_limit: int = Field(
        default=100,
        ge=0,
        description="Maximum number of created items echoed back by a bulk import.",
    )
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        gt=0,
        description="Upper bound on the size of a bulk-import upload.",
    )
    store_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout applied to every call against the store.",
    )
    allocation_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts made when an allocation loses a version race.",
    )

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite+aiosqlite:///path/to/db"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
