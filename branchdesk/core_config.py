"""
branchdesk - Unified Configuration

Single source of truth for intake configuration. The CLI, the uploader and
the Supabase adapters all read settings through get_settings().

ENV VARS:
---------
Required:
  SUPABASE_URL                  - Supabase project REST URL (https://xxx.supabase.co)
  SUPABASE_SERVICE_ROLE_KEY     - Service role JWT (server-side only)

Environment control:
  SUPABASE_MODE                 - dev | prod (default: dev)
  ENVIRONMENT                   - dev | staging | prod (default: dev)
  LOG_LEVEL                     - DEBUG | INFO | WARNING | ERROR (default: INFO)

Intake:
  UPLOADS_BUCKET                - Storage bucket for raw artifacts and manifests
  UPLOAD_IO_TIMEOUT_SECONDS     - Deadline applied to every external call
  DISCORD_WEBHOOK_URL           - Monitoring sink for dropped audit writes

Usage:
------
    from branchdesk.core_config import get_settings

    settings = get_settings()
    print(settings.uploads_bucket)
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Intake settings.

    Loads from environment variables with fallback to an env file.
    Set ENV_FILE to point at the right file (defaults to .env.dev).
    """

    model_config = SettingsConfigDict(
        env_file=os.environ.get("ENV_FILE", ".env.dev"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # =========================================================================
    # SUPABASE
    # =========================================================================

    SUPABASE_URL: str = Field(..., description="Supabase project REST URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role JWT key")
    SUPABASE_MODE: str = Field(default="dev", description="Supabase mode (dev/prod)")

    # =========================================================================
    # ENVIRONMENT CONTROL
    # =========================================================================

    ENVIRONMENT: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # =========================================================================
    # INTAKE
    # =========================================================================

    UPLOADS_BUCKET: str = Field(
        default="uploads",
        description="Supabase Storage bucket for raw CSV artifacts and manifests",
    )
    UPLOAD_IO_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Deadline for each relational/object-store call",
    )
    DISCORD_WEBHOOK_URL: str | None = Field(
        default=None,
        description="Webhook receiving audit-trail write failures",
    )

    # =========================================================================
    # VALIDATION & NORMALIZATION
    # =========================================================================

    @model_validator(mode="before")
    @classmethod
    def _normalize_values(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Strip whitespace/quotes and normalize ENVIRONMENT aliases."""
        for key, value in list(values.items()):
            if isinstance(value, str):
                values[key] = value.strip().strip('"').strip("'").strip()

        env_key = next((k for k in ("ENVIRONMENT", "environment") if k in values), None)
        if env_key:
            raw = str(values[env_key]).lower().strip()
            if raw == "production":
                logger.warning("ENVIRONMENT='production' is deprecated; use 'prod'. Normalizing.")
                values[env_key] = "prod"
            elif raw == "development":
                logger.warning("ENVIRONMENT='development' is deprecated; use 'dev'. Normalizing.")
                values[env_key] = "dev"
            elif raw not in ("dev", "staging", "prod"):
                raise ValueError(
                    f"ENVIRONMENT='{raw}' is invalid. Must be one of: dev, staging, prod"
                )
            else:
                values[env_key] = raw

        return values

    # =========================================================================
    # PROPERTY ALIASES
    # =========================================================================

    @property
    def supabase_url(self) -> str:
        return self.SUPABASE_URL

    @property
    def supabase_service_role_key(self) -> str:
        return self.SUPABASE_SERVICE_ROLE_KEY

    @property
    def supabase_mode(self) -> Literal["dev", "prod"]:
        """Normalized Supabase mode."""
        mode = (self.SUPABASE_MODE or "dev").strip().lower()
        if mode in ("prod", "production"):
            return "prod"
        return "dev"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def uploads_bucket(self) -> str:
        return self.UPLOADS_BUCKET

    @property
    def upload_io_timeout(self) -> float:
        return self.UPLOAD_IO_TIMEOUT_SECONDS

    @property
    def discord_webhook_url(self) -> str | None:
        return self.DISCORD_WEBHOOK_URL


# =========================================================================
# SINGLETON & FACTORY
# =========================================================================


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()  # type: ignore[call-arg]


def reset_settings() -> None:
    """Clear the cached settings (for testing)."""
    get_settings.cache_clear()


# =========================================================================
# LOGGING CONFIGURATION
# =========================================================================

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s tenant=%(tenant)s dataset=%(dataset)s %(message)s"


def _log_formatter() -> logging.Formatter:
    # records logged without extra={"tenant": ..., "dataset": ...} print "-"
    return logging.Formatter(LOG_FORMAT, defaults={"tenant": "-", "dataset": "-"})


def configure_logging(settings: Settings | None = None) -> None:
    """Configure application logging based on settings."""
    level_name = settings.LOG_LEVEL if settings is not None else os.getenv("LOG_LEVEL", "INFO")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    root.setLevel(level)
    formatter = _log_formatter()
    for handler in root.handlers:
        handler.setFormatter(formatter)

    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
