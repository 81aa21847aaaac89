"""Configuration package."""

from flow_finance.config.settings import (
    AppSettings,
    DatabaseSettings,
    ExchangeRatesSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "ExchangeRatesSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
