"""Centralized configuration management with environment-aware defaults.

This module implements the configuration system using Pydantic Settings,
providing type-safe configuration with validation and environment variable
support.

Features:
- **Type safety**: All configuration values are validated and typed
- **Environment variables**: Supports .env files and environment overrides
- **Nested configuration**: Uses __ delimiter for nested structures
  (e.g. ``DATABASE_CONFIG__HOST``)
- **Caching**: Configuration is cached for performance

Configuration sources (in order of precedence):
1. Environment variables
2. .env file in project root
3. Default values in model definitions
"""

import os
from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

OrmLogLevel = Literal["silent", "error", "warn", "info"]

ORM_LOG_LEVELS: tuple[str, ...] = ("silent", "error", "warn", "info")
DEFAULT_ORM_LOG_LEVEL: OrmLogLevel = "info"

SUPPORTED_URL_PREFIXES: tuple[str, ...] = (
    "postgresql+asyncpg://",
    "sqlite+aiosqlite://",
)


class LogConfig(BaseModel):
    """Logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    enable_sql_logging: bool = Field(
        default=False,
        description="Enable slow query logging",
    )
    slow_query_threshold_ms: int = Field(
        default=100,
        gt=0,
        description="Slow query threshold in milliseconds",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
        ],
        description="Field names to redact",
    )


class DatabaseConfig(BaseModel):
    """Database connection and pool settings."""

    host: str = Field(default="localhost", description="Database server host")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    user: str = Field(default="postgres", description="Database user")
    password: SecretStr = Field(
        default=SecretStr("postgres"), description="Database password"
    )
    name: str = Field(default="gin_app", description="Database name")
    ssl_mode: Literal[
        "disable", "allow", "prefer", "require", "verify-ca", "verify-full"
    ] = Field(default="disable", description="TLS mode passed to the driver")
    timezone: str = Field(
        default="UTC",
        description="IANA timezone for the session and for stamped timestamps",
    )
    db_schema: str | None = Field(
        default=None,
        description="Schema that unqualified tables are placed in",
    )
    database_url: str | None = Field(
        default=None,
        description="Full connection URL; overrides host/port/credentials/name",
    )
    max_idle_conns: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connections kept open in the pool while idle",
    )
    max_open_conns: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Upper bound on simultaneously open connections",
    )
    max_lifetime_seconds: int = Field(
        default=60,
        ge=0,
        description="Recycle connections older than this (0 disables recycling)",
    )
    pool_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout in seconds for acquiring a connection from the pool",
    )
    pool_pre_ping: bool = Field(
        default=True,
        description="Whether to test connections before using them",
    )
    command_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Per-statement timeout in seconds (asyncpg only)",
    )
    orm_log_level: OrmLogLevel = Field(
        default=DEFAULT_ORM_LOG_LEVEL,
        description="ORM statement logging verbosity",
    )

    @field_validator("orm_log_level", mode="before")
    @classmethod
    def normalize_orm_log_level(cls, v: object) -> str:
        """Lower-case the level; anything unrecognized falls back to info."""
        level = str(v).strip().lower() if v is not None else ""
        if level not in ORM_LOG_LEVELS:
            return DEFAULT_ORM_LOG_LEVEL
        return level

    @field_validator("timezone", mode="after")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names unknown to the tz database."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"Unknown timezone: {v}"
            raise ValueError(msg) from e
        return v

    @field_validator("database_url", "db_schema", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v

    @field_validator("database_url", mode="after")
    @classmethod
    def validate_database_url(cls, v: str | None) -> str | None:
        """Validate the URL names one of the supported async drivers."""
        if v is not None and not v.startswith(SUPPORTED_URL_PREFIXES):
            msg = (
                "Database URL must use postgresql+asyncpg:// or "
                "sqlite+aiosqlite:// for async support"
            )
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> "DatabaseConfig":
        """Idle connections can never exceed the open connection limit."""
        if self.max_idle_conns > self.max_open_conns:
            msg = "max_idle_conns cannot exceed max_open_conns"
            raise ValueError(msg)
        return self


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
    )

    app_name: str = Field(default="Repokit", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")
    operation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for each repository call made by the demo",
    )

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )

    database_config: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )

    def model_post_init(self, __context: object) -> None:
        """Post initialization to set environment-based defaults."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

    def _detect_formatter(self) -> Literal["console", "json"]:
        """Auto-detect log formatter based on environment."""
        if os.getenv("K_SERVICE") or os.getenv("AWS_EXECUTION_ENV"):
            return "json"
        if self.environment == "development":
            return "console"
        return "json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
