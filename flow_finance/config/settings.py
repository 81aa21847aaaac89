"""
Configuration Management for Flow Finance

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Runtime user choices (primary currency, frecency data, cached rates) are
NOT configuration - they live in the preferences store. This module only
holds deployment-level knobs and the defaults those preferences fall back to.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Embedded database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FLOW_DB_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///flow.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )


class ExchangeRatesSettings(BaseSettings):
    """Exchange rate API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FLOW_EXCHANGE_RATES_",
        extra="ignore"
    )

    # {date} is "latest" or YYYY-MM-DD, {currency} is a lowercase code
    main_url_template: str = Field(
        default=(
            "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@{date}"
            "/v1/currencies/{currency}.json"
        ),
        description="Primary rates endpoint"
    )
    fallback_url_template: str = Field(
        default="https://{date}.currency-api.pages.dev/v1/currencies/{currency}.json",
        description="Endpoint used when the primary one fails"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout per request"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per endpoint before giving up on it"
    )
    retry_wait_min: float = Field(
        default=1.0,
        ge=0,
        description="Minimum backoff between attempts (seconds)"
    )
    retry_wait_max: float = Field(
        default=8.0,
        ge=0,
        description="Maximum backoff between attempts (seconds)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Preference defaults
    default_primary_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Primary currency until the user picks one"
    )
    combine_transfer_transactions_default: bool = Field(
        default=True,
        description="Render both sides of a transfer as a single row"
    )

    # Naming
    transfer_title_template: str = Field(
        default="Transfer from {from_name} to {to_name}",
        description="Title used for transfers created without one"
    )
    unknown_account_name: str = Field(
        default="???",
        description="Displayed when an account name can't be resolved"
    )

    # Ranking
    frecency_half_life_days: float = Field(
        default=14.0,
        gt=0,
        description="Days until the recency half of a frecency score halves"
    )
    smart_search_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Minimum fuzzy partial ratio for smart search matches"
    )

    @field_validator('default_primary_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def exchange_rates(self) -> ExchangeRatesSettings:
        return ExchangeRatesSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("database", "exchange_rates", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
