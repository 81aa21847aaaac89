"""
Exchange Rates Service

Fetches daily rates from the free currency-api project and keeps an
in-memory cache, persisted to preferences so the app has rates offline.

DESIGN DECISION: Two mirrors of the same dataset are tried in order.
The jsDelivr CDN is the main source; the pages.dev mirror is only asked
when the main one keeps failing. Each source gets its own retry budget.
"""

import asyncio
import datetime as dt
from typing import Any, Optional

import requests
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from flow_finance.audit import AuditLogger
from flow_finance.config import ExchangeRatesSettings, get_settings
from flow_finance.models.money import (
    ExchangeRates,
    ExchangeRatesSet,
    MoneyError,
    is_currency_code_valid,
)
from flow_finance.services.preferences import Preferences


logger = structlog.get_logger(__name__)


class ExchangeRatesError(Exception):
    """Rates could not be obtained."""
    pass


class ExchangeRatesService:
    """
    Exchange rates with an offline cache.

    Usage:
        service = ExchangeRatesService(preferences)
        await service.init()
        rates = await service.try_fetch_rates("EUR")
    """

    def __init__(
        self,
        preferences: Preferences,
        session: Optional[Any] = None,
        settings: Optional[ExchangeRatesSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            preferences: Where the cache is persisted and the primary
                currency is read from
            session: Object with a requests-compatible `get`. Defaults to
                a new requests.Session
            settings: Endpoint, timeout and retry configuration
            audit_logger: Optional audit trail for fetches
        """
        self._preferences = preferences
        self._session = session or requests.Session()
        self._settings = settings or get_settings().exchange_rates
        self._audit = audit_logger
        self._cache = ExchangeRatesSet()

    @property
    def cache(self) -> ExchangeRatesSet:
        return self._cache

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type((requests.RequestException, ValueError)),
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self._settings.retry_wait_min,
                max=self._settings.retry_wait_max,
            ),
            reraise=True,
        )

    def _get_json(self, url: str) -> dict:
        """GET url and decode the JSON body, retrying transient failures."""
        for attempt in self._retrying():
            with attempt:
                response = self._session.get(url, timeout=self._settings.timeout_seconds)
                response.raise_for_status()
                payload = response.json()
                if not isinstance(payload, dict):
                    raise ValueError("Rates payload is not a JSON object")
                return payload

    def _download(self, currency: str, date_param: str) -> tuple[str, dict]:
        sources = (
            ("main", self._settings.main_url_template),
            ("fallback", self._settings.fallback_url_template),
        )
        errors = []

        for name, template in sources:
            url = template.format(date=date_param, currency=currency)
            try:
                return name, self._get_json(url)
            except (requests.RequestException, ValueError) as e:
                logger.warning(
                    "exchange_rates_source_failed",
                    source=name,
                    currency=currency,
                    error=str(e),
                )
                errors.append(f"{name}: {e}")

        raise ExchangeRatesError(
            f"Failed to fetch exchange rates for {currency}: {'; '.join(errors)}"
        )

    @staticmethod
    def _date_param(value: Optional[dt.date]) -> str:
        if value is None:
            return "latest"
        return value.strftime("%Y-%m-%d")

    async def fetch_rates(
        self,
        base_currency: str,
        date: Optional[dt.date] = None,
    ) -> ExchangeRates:
        """
        Fetch rates for base_currency.

        Args:
            base_currency: Three-letter code, any case
            date: Day to fetch; latest when omitted

        Returns:
            Rates based on base_currency

        Raises:
            ExchangeRatesError: Invalid code, or no source answered
        """
        normalized = base_currency.strip().lower()
        if not is_currency_code_valid(normalized):
            raise ExchangeRatesError(f"Invalid currency code: {base_currency}")

        try:
            source, payload = await asyncio.to_thread(
                self._download, normalized, self._date_param(date)
            )
            rates = ExchangeRates.from_json(normalized, payload)
        except (ExchangeRatesError, MoneyError, KeyError, ValueError) as e:
            if self._audit:
                await self._audit.log_exchange_rates_fetch_failed(
                    base_currency=normalized.upper(),
                    error_message=str(e),
                )
            if isinstance(e, ExchangeRatesError):
                raise
            raise ExchangeRatesError(f"Malformed rates payload for {base_currency}: {e}") from e

        if self._audit:
            await self._audit.log_exchange_rates_fetched(
                base_currency=rates.base_currency,
                source=source,
                rate_count=len(rates.rates),
            )

        await self.update_cache(base_currency, rates)
        return rates

    async def try_fetch_rates(
        self,
        base_currency: str,
        date: Optional[dt.date] = None,
    ) -> Optional[ExchangeRates]:
        """Fetch rates, falling back to the cache. Never raises."""
        try:
            return await self.fetch_rates(base_currency, date)
        except ExchangeRatesError as e:
            logger.info(
                "exchange_rates_using_cache",
                currency=base_currency,
                error=str(e),
            )
            return self._cache.get(base_currency)

    def get_cached_rates(self, base_currency: str) -> Optional[ExchangeRates]:
        return self._cache.get(base_currency)

    async def get_primary_currency_rates(self) -> Optional[ExchangeRates]:
        return self._cache.get(await self._preferences.get_primary_currency())

    async def update_cache(self, base_currency: str, rates: ExchangeRates) -> None:
        """Store rates in memory and persist the whole cache."""
        self._cache.set(base_currency, rates)

        try:
            await self._preferences.set_exchange_rates_cache(self._cache)
        except Exception as e:
            logger.error("exchange_rates_cache_persist_failed", error=str(e))

    async def init(self) -> None:
        """Load the persisted cache, then refresh the primary currency."""
        persisted = await self._preferences.get_exchange_rates_cache()
        if persisted is not None:
            for base, rates in persisted.sets.items():
                self._cache.set(base, rates)

        await self.try_fetch_rates(await self._preferences.get_primary_currency())
