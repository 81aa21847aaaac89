"""
Tests for the exchange rates service.

HTTP is served by FakeSession; nothing leaves the process.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

import requests

from conftest import (
    FALLBACK_HOST,
    MAIN_HOST,
    FakeResponse,
    FakeSession,
    usd_rates_payload,
)
from flow_finance.models import AuditEventType
from flow_finance.services.exchange_rates import ExchangeRatesError, ExchangeRatesService


class TestFetchRates:
    """Tests for fetching from the two sources."""

    def test_main_source(self, make_app):
        """Test the main source answers first."""
        session = FakeSession({MAIN_HOST: FakeResponse(usd_rates_payload())})

        async def run():
            app = make_app(session)
            await app.start()
            session.calls.clear()
            return await app.exchange_rates.fetch_rates("usd")

        rates = asyncio.run(run())
        assert rates.base_currency == "USD"
        assert rates.rates["EUR"] == Decimal("0.5")
        assert len(session.calls) == 1
        assert MAIN_HOST in session.calls[0]
        assert "latest" in session.calls[0]
        assert session.calls[0].endswith("/usd.json")

    def test_fallback_after_main_fails(self, make_app):
        """Test the mirror is asked when the main source errors."""
        session = FakeSession({
            MAIN_HOST: FakeResponse(status_code=503),
            FALLBACK_HOST: FakeResponse(usd_rates_payload(eur=0.9)),
        })

        async def run():
            app = make_app(session)
            await app.start()
            session.calls.clear()
            rates = await app.exchange_rates.fetch_rates("USD")
            events = await app.audit_logger._storage.get_recent_events()
            return rates, events

        rates, events = asyncio.run(run())
        assert rates.rates["EUR"] == Decimal("0.9")
        assert [MAIN_HOST in url for url in session.calls] == [True, False]
        assert FALLBACK_HOST in session.calls[1]

        fetched = [e for e in events if e.event_type == AuditEventType.EXCHANGE_RATES_FETCHED]
        assert fetched[0].details["source"] == "fallback"

    def test_dated_request(self, make_app):
        """Test a specific day is requested by date."""
        session = FakeSession({MAIN_HOST: FakeResponse(usd_rates_payload())})

        async def run():
            app = make_app(session)
            await app.start()
            session.calls.clear()
            await app.exchange_rates.fetch_rates("USD", date(2024, 5, 1))

        asyncio.run(run())
        assert "@2024-05-01/" in session.calls[0]

    def test_both_sources_fail(self, make_app):
        """Test an error is raised when nothing answers."""
        session = FakeSession({
            MAIN_HOST: requests.ConnectionError("down"),
            FALLBACK_HOST: FakeResponse(status_code=500),
        })

        async def run():
            app = make_app(session)
            await app.start()
            await app.exchange_rates.fetch_rates("USD")

        with pytest.raises(ExchangeRatesError):
            asyncio.run(run())

    def test_malformed_payload(self, make_app):
        """Test a payload without the base table is an error."""
        session = FakeSession({MAIN_HOST: FakeResponse({"date": "2024-05-01", "eur": {}})})

        async def run():
            app = make_app(session)
            await app.start()
            await app.exchange_rates.fetch_rates("USD")

        with pytest.raises(ExchangeRatesError):
            asyncio.run(run())

    def test_invalid_currency_code(self, make_app):
        """Test bad codes fail before any request."""
        session = FakeSession()

        async def run():
            app = make_app(session)
            await app.start()
            session.calls.clear()
            await app.exchange_rates.fetch_rates("euro")

        with pytest.raises(ExchangeRatesError):
            asyncio.run(run())
        assert session.calls == []

    def test_retries_each_source(self, make_app, fast_rates_settings):
        """Test every attempt in the budget is used before switching."""
        session = FakeSession({
            MAIN_HOST: FakeResponse(status_code=500),
            FALLBACK_HOST: FakeResponse(usd_rates_payload()),
        })
        settings = fast_rates_settings.model_copy(update={"retry_attempts": 3})

        async def run():
            app = make_app(session)
            await app.start()
            service = ExchangeRatesService(app.preferences, session=session, settings=settings)
            session.calls.clear()
            await service.fetch_rates("USD")

        asyncio.run(run())
        assert [MAIN_HOST in url for url in session.calls] == [True, True, True, False]


class TestRatesCache:
    """Tests for the in-memory and persisted cache."""

    def test_try_fetch_falls_back_to_cache(self, make_app):
        """Test stale rates are served when the network is gone."""
        session = FakeSession({MAIN_HOST: FakeResponse(usd_rates_payload(eur=0.7))})

        async def run():
            app = make_app(session)
            await app.start()
            session.routes = {}
            return await app.exchange_rates.try_fetch_rates("USD")

        rates = asyncio.run(run())
        assert rates.rates["EUR"] == Decimal("0.7")

    def test_try_fetch_without_cache(self, make_app):
        """Test None when there is neither network nor cache."""
        async def run():
            app = make_app()
            await app.start()
            return await app.exchange_rates.try_fetch_rates("EUR")

        assert asyncio.run(run()) is None

    def test_start_loads_primary_currency_rates(self, make_app):
        """Test startup fetches rates for the primary currency."""
        session = FakeSession({MAIN_HOST: FakeResponse(usd_rates_payload())})

        async def run():
            app = make_app(session)
            await app.start()
            return await app.exchange_rates.get_primary_currency_rates()

        rates = asyncio.run(run())
        assert rates.base_currency == "USD"

    def test_start_survives_network_failure(self, make_app):
        """Test startup completes without rates."""
        async def run():
            app = make_app()
            await app.start()
            return (
                await app.exchange_rates.get_primary_currency_rates(),
                await app.audit_logger._storage.get_recent_events(),
            )

        rates, events = asyncio.run(run())
        assert rates is None
        assert any(e.event_type == AuditEventType.EXCHANGE_RATES_FETCH_FAILED for e in events)

    def test_persisted_cache_is_loaded(self, make_app, fast_rates_settings):
        """Test a new service picks up rates persisted by an earlier one."""
        session = FakeSession({MAIN_HOST: FakeResponse(usd_rates_payload(gbp=0.75))})

        async def run():
            app = make_app(session)
            await app.start()

            offline = ExchangeRatesService(
                app.preferences, session=FakeSession(), settings=fast_rates_settings
            )
            assert offline.get_cached_rates("USD") is None
            await offline.init()
            return offline.get_cached_rates("usd")

        rates = asyncio.run(run())
        assert rates.rates["GBP"] == Decimal("0.75")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
