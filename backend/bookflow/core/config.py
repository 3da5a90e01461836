import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME, DEFAULT_DEBOUNCE_SECONDS, DEFAULT_SCAN_DAYS


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the reservation engine."""

    app_name: str = Field(default=BRAND_NAME.lower(), description="Service name used in logs")
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )

    # Storage
    database_url_raw: str = Field(
        default="sqlite+pysqlite:///./bookflow.db",
        alias="database_url",
        description="SQLAlchemy URL of the reservation store",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")
    database_auto_create: bool = Field(
        default=False,
        description="Create missing tables at startup instead of relying on alembic",
    )

    # Realtime
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for multi-instance realtime fan-out",
    )
    realtime_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Transport used by the invalidation bus",
    )
    realtime_debounce_seconds: float = Field(
        default=DEFAULT_DEBOUNCE_SECONDS,
        ge=0,
        description="Quiet window before a burst of changes is delivered",
    )
    realtime_subscribe_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How long a subscription may stay in 'connecting'",
    )
    sse_heartbeat_interval: int = Field(
        default=15,
        ge=1,
        description="Seconds between SSE keep-alive comments",
    )

    # Availability
    availability_cache_ttl_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Lifetime of a cached slot list; 0 disables caching",
    )
    next_available_scan_days: int = Field(
        default=DEFAULT_SCAN_DAYS,
        ge=1,
        description="Default forward scan horizon for next-available-date",
    )

    # Payments
    stripe_secret_key: Optional[SecretStr] = Field(
        default=None,
        description="Stripe secret key; payment intents are mocked when unset",
    )
    default_currency: str = Field(default="usd", description="ISO currency for payment intents")

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("default_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        normalized = value.strip().lower()
        if len(normalized) != 3:
            raise ValueError("default_currency must be a 3-letter ISO code")
        return normalized

    @property
    def database_url(self) -> str:
        return self.database_url_raw

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key and self.stripe_secret_key.get_secret_value())


settings = Settings()
logger.info(
    "[CONFIG] environment=%s realtime_backend=%s stripe_configured=%s",
    settings.environment,
    settings.realtime_backend,
    settings.stripe_configured,
)
