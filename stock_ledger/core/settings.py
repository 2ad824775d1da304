from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the stock ledger service.

    This is separate from stock_ledger.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Stock Ledger API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Multi-store inventory stock ledger for a trading company: per-store balances, "
            "append-only stock transactions, production runs and inventory valuation."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed sample stores and products after migrations.",
    )

    # Write path tuning
    LOCK_TIMEOUT_SECONDS: float = Field(
        default=2.0, gt=0, description="Max wait for a per-key balance lock before retrying."
    )
    WRITE_RETRY_ATTEMPTS: int = Field(
        default=3, ge=1, description="Attempts for a unit of work before surfacing ConcurrencyError."
    )
    WRITE_RETRY_BACKOFF_SECONDS: float = Field(
        default=0.05, ge=0, description="Initial backoff between attempts; doubled per attempt."
    )
    REJECT_NEGATIVE_BALANCE: bool = Field(
        default=False,
        description="If true, writes leaving a negative quantity or weight are rejected.",
    )

    # Numbering
    PRODUCTION_NUMBER_PREFIX: str = Field(default="PR-")
    DOCUMENT_NUMBER_WIDTH: int = Field(default=6, ge=1)

    # Reporting
    VALUATION_DEFAULT_PAGE_SIZE: int = Field(default=100, ge=1)
    VALUATION_MAX_PAGE_SIZE: int = Field(default=1000, ge=1)

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root log level name, e.g. DEBUG or WARNING")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    Note:
      A new instance is built on each call so tests can change the environment
      between cases.
    """
    return AppSettings()
