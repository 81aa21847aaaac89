"""
Local Preferences

User choices that change at runtime: the primary currency, whether to
combine transfer rows, frecency data and the exchange rates cache.

All values are stored as strings in the preferences table; this service
owns their serialization.
"""

from datetime import datetime
from typing import Optional

import structlog

from flow_finance.config import get_settings
from flow_finance.models.frecency import FrecencyData
from flow_finance.models.money import ExchangeRatesSet, normalize_currency_code
from flow_finance.services.storage import PreferencesStorageInterface


PRIMARY_CURRENCY_KEY = "flow.primaryCurrency"
COMBINE_TRANSFERS_KEY = "flow.combineTransferTransactions"
EXCHANGE_RATES_CACHE_KEY = "flow.exchangeRatesCache"
FRECENCY_KEY_PREFIX = "flow.frecency"


logger = structlog.get_logger(__name__)


class Preferences:
    """Typed access to the preferences store."""

    def __init__(self, storage: PreferencesStorageInterface):
        self._storage = storage
        self._settings = get_settings().app

    # -------------------------------------------------------------------------
    # Primary currency
    # -------------------------------------------------------------------------

    async def get_primary_currency(self) -> str:
        """The user's primary currency, or the configured default."""
        value = await self._storage.get_value(PRIMARY_CURRENCY_KEY)
        return value or self._settings.default_primary_currency

    async def set_primary_currency(self, currency: str) -> None:
        await self._storage.set_value(
            PRIMARY_CURRENCY_KEY,
            normalize_currency_code(currency),
        )

    # -------------------------------------------------------------------------
    # Transfers
    # -------------------------------------------------------------------------

    async def get_combine_transfer_transactions(self) -> bool:
        value = await self._storage.get_value(COMBINE_TRANSFERS_KEY)
        if value is None:
            return self._settings.combine_transfer_transactions_default
        return value == "true"

    async def set_combine_transfer_transactions(self, value: bool) -> None:
        await self._storage.set_value(COMBINE_TRANSFERS_KEY, "true" if value else "false")

    # -------------------------------------------------------------------------
    # Frecency
    # -------------------------------------------------------------------------

    @staticmethod
    def _frecency_key(type: str, uuid: str) -> str:
        return f"{FRECENCY_KEY_PREFIX}:{type}:{uuid}"

    async def get_frecency_data(self, type: str, uuid: str) -> Optional[FrecencyData]:
        raw = await self._storage.get_value(self._frecency_key(type, uuid))
        if raw is None:
            return None
        try:
            return FrecencyData.model_validate_json(raw)
        except ValueError as e:
            # A corrupt record only costs the ranking, drop it
            logger.warning("frecency_data_unreadable", type=type, uuid=uuid, error=str(e))
            return None

    async def update_frecency_data(
        self,
        type: str,
        uuid: str,
        now: Optional[datetime] = None,
    ) -> FrecencyData:
        """Record one use of the entity and return the new data."""
        current = await self.get_frecency_data(type, uuid)
        if current is None:
            current = FrecencyData(type=type, uuid=uuid, use_count=0)

        updated = current.used(now)
        await self._storage.set_value(
            self._frecency_key(type, uuid),
            updated.model_dump_json(),
        )
        return updated

    # -------------------------------------------------------------------------
    # Exchange rates cache
    # -------------------------------------------------------------------------

    async def get_exchange_rates_cache(self) -> Optional[ExchangeRatesSet]:
        raw = await self._storage.get_value(EXCHANGE_RATES_CACHE_KEY)
        if raw is None:
            return None
        try:
            return ExchangeRatesSet.from_json(raw)
        except ValueError as e:
            logger.warning("exchange_rates_cache_unreadable", error=str(e))
            return None

    async def set_exchange_rates_cache(self, rates: ExchangeRatesSet) -> None:
        await self._storage.set_value(EXCHANGE_RATES_CACHE_KEY, rates.to_json())
