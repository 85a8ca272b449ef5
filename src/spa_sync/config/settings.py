"""Configuration settings for the spa ledger sync."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Codat (ledger side). The key is optional here so a missing key can be
    # reported as a ConfigurationError at the point of use.
    codat_api_key: SecretStr | None = Field(default=None, validation_alias="CODAT_API_KEY")
    codat_api_url: str = Field(default="https://api.codat.io", validation_alias="CODAT_API_URL")
    codat_page_size: int = Field(default=100, validation_alias="CODAT_PAGE_SIZE")
    codat_platform_key: str = Field(default="qhyg", validation_alias="CODAT_PLATFORM_KEY")

    # Zenoti (source side)
    zenoti_api_url: str = Field(
        default="https://api.zenoti.com", validation_alias="ZENOTI_API_URL"
    )

    http_timeout: float = Field(default=30.0, validation_alias="HTTP_TIMEOUT")

    # Rate-limit retries for paginated listings
    rate_limit_pause_seconds: float = Field(
        default=5.0, validation_alias="RATE_LIMIT_PAUSE_SECONDS"
    )
    rate_limit_max_attempts: int = Field(default=5, validation_alias="RATE_LIMIT_MAX_ATTEMPTS")

    # Push operation polling
    push_initial_delay_seconds: float = Field(
        default=2.0, validation_alias="PUSH_INITIAL_DELAY_SECONDS"
    )
    push_poll_interval_seconds: float = Field(
        default=2.0, validation_alias="PUSH_POLL_INTERVAL_SECONDS"
    )
    push_max_attempts: int = Field(default=30, validation_alias="PUSH_MAX_ATTEMPTS")
    push_max_elapsed_seconds: float = Field(
        default=120.0, validation_alias="PUSH_MAX_ELAPSED_SECONDS"
    )

    # Sync behaviour
    sync_window_days: int = Field(default=7, ge=1, le=7, validation_alias="SYNC_WINDOW_DAYS")
    sync_currency: str = Field(default="USD", validation_alias="SYNC_CURRENCY")
    sync_strict_accounts: bool = Field(default=True, validation_alias="SYNC_STRICT_ACCOUNTS")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
