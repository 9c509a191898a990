"""
Configuration for the archival pipeline.

All values come from environment variables prefixed with ``MESSAGE_ARCHIVE_``
(or a ``.env`` file). Example: ``MESSAGE_ARCHIVE_MESSAGE_RETENTION_DAYS=60``.

Settings are deliberately not cached: the archival job calls load_settings()
at the start of every run so retention changes apply without a restart.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from message_archive.errors import ConfigurationError


class Settings(BaseSettings):
    """Root configuration object."""

    model_config = SettingsConfigDict(
        env_prefix="MESSAGE_ARCHIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Live store (PostgreSQL) ──────────────────────────────────────────
    database_url: SecretStr | None = None
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=100)

    # ── Retention ────────────────────────────────────────────────────────
    message_retention_days: int = Field(default=90, ge=1)
    notification_ttl_days: int = Field(default=45, ge=1)
    page_size: int = Field(default=500, ge=1, le=500)

    # ── Cold store ───────────────────────────────────────────────────────
    archive_bucket: str = "message-archive"
    storage_backend: Literal["memory", "s3", "oss"] = "memory"

    s3_endpoint_url: str | None = None
    s3_region: str = "us-east-1"
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None

    oss_endpoint: str | None = None
    oss_access_key_id: str | None = None
    oss_access_key_secret: SecretStr | None = None

    # ── Admin surface ────────────────────────────────────────────────────
    admin_token: SecretStr | None = None

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_format: str = "json"  # "json" or "console"


def load_settings(**overrides) -> Settings:
    """
    Read settings from the environment.

    Raises ConfigurationError (not pydantic's ValidationError) so callers only
    need to handle one failure type at startup.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigurationError(f"invalid configuration: {', '.join(fields)}", {"fields": fields}) from e
