"""
Run Ingest Engine - Backend Core Config

STRICT CONFIGURATION LOADER
============================

Settings are read from os.environ only. Auto-loading of .env files is
DISABLED so that a stray file on disk can never point a production process at
the wrong database.

    from backend.core.config import get_settings
    settings = get_settings()

PROD SAFETY:
    ENVIRONMENT=prod with STORE_BACKEND=memory raises RuntimeError at startup.
    An in-memory store in production silently loses every ingested run.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings with strict environment isolation.

    CRITICAL: Does NOT auto-load any .env file.
    All variables must be present in os.environ before instantiation.
    """

    model_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

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
    # STORAGE
    # =========================================================================

    STORE_BACKEND: Literal["postgres", "memory"] = Field(
        default="postgres",
        description="Persistence backend (memory is for local dev and tests)",
    )
    DATABASE_URL: str = Field(
        default="",
        description="Postgres connection string",
    )
    DB_POOL_MIN_SIZE: int = Field(default=1, ge=1)
    DB_POOL_MAX_SIZE: int = Field(default=10, ge=1)

    # =========================================================================
    # INGESTION RULES
    # =========================================================================

    RUN_ID_PREFIX: str = Field(
        default="tr_",
        min_length=1,
        description="Namespace prefix every submitted run_id must carry",
    )
    RUN_ID_MIN_SUFFIX_LENGTH: int = Field(
        default=1,
        ge=1,
        description="Characters required after RUN_ID_PREFIX",
    )

    # =========================================================================
    # CREDENTIALS
    # =========================================================================

    TOKEN_HASH_ROUNDS: int = Field(
        default=10,
        ge=4,
        le=31,
        description="bcrypt cost factor for stored token hashes",
    )
    CREDENTIAL_LOOKUP: Literal["indexed", "scan"] = Field(
        default="indexed",
        description="Token resolution strategy",
    )
    ADMIN_API_KEY: str | None = Field(
        default=None,
        description="X-API-Key required by org/project/token endpoints",
    )

    # =========================================================================
    # SERVER CONFIGURATION
    # =========================================================================

    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8888)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @model_validator(mode="after")
    def _validate_storage(self) -> "Settings":
        """
        Cross-field checks.

        - prod + memory store is fatal
        - postgres store without a DSN is allowed to boot (readyz reports 503)
        - pool bounds must be ordered
        """
        if self.ENVIRONMENT == "prod" and self.STORE_BACKEND == "memory":
            raise RuntimeError(
                "CRITICAL: STORE_BACKEND=memory is not allowed when ENVIRONMENT=prod\n"
                "Ingested runs would be lost on restart. Set DATABASE_URL and "
                "STORE_BACKEND=postgres."
            )

        if self.DB_POOL_MIN_SIZE > self.DB_POOL_MAX_SIZE:
            raise ValueError(
                f"DB_POOL_MIN_SIZE ({self.DB_POOL_MIN_SIZE}) exceeds "
                f"DB_POOL_MAX_SIZE ({self.DB_POOL_MAX_SIZE})"
            )

        if self.STORE_BACKEND == "postgres" and not self.DATABASE_URL.strip():
            logger.warning(
                "DATABASE_URL not configured - database operations will fail "
                "and /readyz will return 503 until it is set"
            )

        if self.ENVIRONMENT == "prod" and not self.ADMIN_API_KEY:
            logger.warning(
                "ADMIN_API_KEY not set in production - admin endpoints will reject all calls"
            )

        return self

    @staticmethod
    def _extract_db_host(db_url: str) -> str | None:
        """Extract hostname from database URL."""
        try:
            return urlparse(db_url).hostname
        except ValueError:
            return None

    # =========================================================================
    # PROPERTY ALIASES
    # =========================================================================

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL.strip()

    @property
    def environment(self) -> Literal["dev", "staging", "prod"]:
        return self.ENVIRONMENT

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "dev"


# =========================================================================
# SINGLETON PATTERN
# =========================================================================


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()  # type: ignore[call-arg]


def reset_settings() -> None:
    """Clear the cached settings (for testing or environment switch)."""
    get_settings.cache_clear()


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure application logging based on settings.

    In production, uses structured JSON logging for observability.
    In development, uses colored console output.
    """
    from .logging import configure_structured_logging

    if settings is None:
        settings = get_settings()

    configure_structured_logging(
        level=settings.LOG_LEVEL,
        json_output=settings.is_production,
        service_name="run-ingest",
    )

    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)


def log_startup_diagnostics(
    settings: Settings | None = None, service_name: str = "run-ingest"
) -> None:
    """Log effective configuration at startup (never logs secrets)."""
    settings = settings or get_settings()
    db_host = (
        Settings._extract_db_host(settings.database_url)
        if settings.database_url
        else "not_configured"
    )
    logger.info(
        f"[{service_name}] env={settings.ENVIRONMENT} store={settings.STORE_BACKEND} "
        f"db_host={db_host} lookup={settings.CREDENTIAL_LOOKUP} "
        f"run_id_prefix={settings.RUN_ID_PREFIX!r} "
        f"admin_key={'set' if settings.ADMIN_API_KEY else 'unset'}"
    )
