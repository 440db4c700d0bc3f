# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Configuration management using Pydantic Settings."""

from beartype import beartype
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with immutable configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FNOL_",
        env_file=None,
        env_file_encoding="utf-8",
        frozen=True,  # Immutable settings
        validate_default=True,
        extra="forbid",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./fnol_intake.db",
        description="SQLAlchemy async connection URL (postgresql+asyncpg in production)",
        min_length=1,
    )
    database_pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size",
    )
    database_pool_timeout: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="Connection acquisition timeout in seconds",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log",
    )

    # Case identifiers
    case_id_prefix: str = Field(
        default="FNOL",
        min_length=1,
        max_length=10,
        description="Prefix of every case identifier",
    )
    case_id_sequence_width: int = Field(
        default=6,
        ge=4,
        le=10,
        description="Minimum zero-padded width of the sequence part",
    )
    case_sequence_name: str = Field(
        default="FNOL",
        min_length=1,
        max_length=64,
        description="Name of the sequence counter used for case identifiers",
    )

    # Idempotency
    idempotency_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        le=30 * 86400,
        description="Lifetime of an idempotency record",
    )
    idempotency_sweep_interval_seconds: int = Field(
        default=3600,
        ge=1,
        le=86400,
        description="Interval between expired idempotency record sweeps",
    )
    derive_idempotency_tokens: bool = Field(
        default=False,
        description="Derive a synthetic token from identity fields when none is supplied",
    )

    # Timeouts
    step_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=120.0,
        description="Timeout applied to each external call of the submission protocol",
    )
    submission_deadline_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=300.0,
        description="Overall deadline for the steps that precede persistence",
    )

    # Workflow engine
    process_starter_mode: str = Field(
        default="demo",
        pattern="^(demo|http)$",
        description="Workflow engine adapter: demo (no engine) or http",
    )
    process_engine_url: str | None = Field(
        default=None,
        description="Base URL of the workflow engine REST API",
    )
    process_definition_id: str = Field(
        default="gcc-motor-fnol-process",
        min_length=1,
        description="Process definition started for each case",
    )
    process_engine_token: str | None = Field(
        default=None,
        description="Bearer token for the workflow engine",
    )

    # Webhook notifications
    webhook_enabled: bool = Field(
        default=False,
        description="Send a webhook when a case is created",
    )
    webhook_url: str | None = Field(
        default=None,
        description="Webhook endpoint URL",
    )
    webhook_secret: str | None = Field(
        default=None,
        description="HMAC-SHA256 secret for the X-Webhook-Signature header",
    )
    webhook_timeout_seconds: float = Field(
        default=5.0,
        ge=1.0,
        le=30.0,
        description="Webhook request timeout",
    )
    webhook_retry_count: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first failed webhook attempt",
    )
    webhook_backoff_multiplier: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Exponential backoff multiplier between webhook attempts",
    )
    webhook_backoff_max_seconds: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="Upper bound for a single webhook backoff wait",
    )

    @field_validator("case_id_prefix")
    @classmethod
    def validate_prefix(cls: type["Settings"], v: str) -> str:
        """Case id prefixes are upper-case ASCII letters only."""
        if not (v.isascii() and v.isalpha() and v.isupper()):
            raise ValueError(f"Case id prefix must be upper-case letters: {v!r}")
        return v

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(
        cls: type["Settings"], v: str | None, info: ValidationInfo
    ) -> str | None:
        """Require a URL when webhooks are enabled."""
        if info.data.get("webhook_enabled") and not v:
            raise ValueError("webhook_url is required when webhook_enabled is set")
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid webhook URL: {v}")
        return v

    @field_validator("process_engine_url")
    @classmethod
    def validate_engine_url(
        cls: type["Settings"], v: str | None, info: ValidationInfo
    ) -> str | None:
        """Require an engine URL in http mode."""
        if info.data.get("process_starter_mode") == "http" and not v:
            raise ValueError(
                "process_engine_url is required when process_starter_mode is http"
            )
        return v

    @property
    @beartype
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


_settings: Settings | None = None


@beartype
def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


@beartype
def clear_settings_cache() -> None:
    """Clear settings cache (for testing)."""
    global _settings
    _settings = None
