"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``NAGARSEVA_`` prefix; GCP / infrastructure settings use
their canonical environment variable names via ``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the NagarSeva complaint service.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``NAGARSEVA_``; GCP / infra keys
    use their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="NAGARSEVA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Document store ─────────────────────────────────────────────────
    store_backend: Literal["memory", "firestore"] = "memory"
    gcp_project_id: str = Field(default="", validation_alias="GCP_PROJECT_ID")
    # Mapping table, audit records and notifications live in the operations
    # database; citizen complaints are read from the citizen database.
    operations_firestore_database: str = "(default)"
    citizen_firestore_database: str = "(default)"

    complaints_collection: str = "complaints"
    mappings_collection: str = "civic_issues"
    processed_collection: str = "processed_complaints"
    notifications_collection: str = "notifications"

    # ── Redis (mapping cache) ──────────────────────────────────────────
    redis_url: str = Field(default="", validation_alias="REDIS_URL")
    mapping_cache_ttl: int = 300  # 5 minutes

    # ── Department resolver ────────────────────────────────────────────
    mapping_lookup_timeout_seconds: float = Field(default=5.0, gt=0)
    mapping_lookup_attempts: int = Field(default=2, ge=1, le=5)

    # ── SLA monitor ────────────────────────────────────────────────────
    enable_sla_monitor: bool = True
    sla_check_interval_seconds: float = Field(default=60.0, gt=0)

    # ── Complaint processor ────────────────────────────────────────────
    enable_complaint_processor: bool = False

    # ── Notifications ──────────────────────────────────────────────────
    # "memory" keeps a process-local inbox served by /api/v1/notifications;
    # "store" appends to the operations notifications collection.
    notification_sink: Literal["memory", "store"] = "memory"

    # ── Read paths ─────────────────────────────────────────────────────
    statistics_fetch_limit: int = 1000
    attention_fetch_limit: int = 500
    long_pending_days: int = 7
    complaint_query_timeout_seconds: float = Field(default=10.0, gt=0)
    complaint_query_attempts: int = Field(default=2, ge=1, le=5)

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT")
    cors_origins: str = ""  # comma-separated, production only

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
