"""
Shared test fixtures.

Every test gets its own in-memory SQLite database and a fake HTTP
session, so no test touches disk or network.
"""

import pytest
import requests

from flow_finance.config import ExchangeRatesSettings
from flow_finance.orchestrator import create_app_components


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """
    Answers GET requests from a table of url fragments.

    A value may be a FakeResponse or an exception to raise. Urls that
    match nothing raise requests.ConnectionError.
    """

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls: list[str] = []

    def get(self, url: str, timeout=None):
        self.calls.append(url)
        for fragment, answer in self.routes.items():
            if fragment in url:
                if isinstance(answer, Exception):
                    raise answer
                return answer
        raise requests.ConnectionError(f"No route for {url}")


MAIN_HOST = "cdn.jsdelivr.net"
FALLBACK_HOST = "currency-api.pages.dev"


def usd_rates_payload(eur: float = 0.5, gbp: float = 0.8) -> dict:
    return {"date": "2024-05-01", "usd": {"eur": eur, "gbp": gbp, "usd": 1}}


@pytest.fixture
def fast_rates_settings() -> ExchangeRatesSettings:
    """One attempt per source, no backoff."""
    return ExchangeRatesSettings(retry_attempts=1, retry_wait_min=0, retry_wait_max=0)


@pytest.fixture
def make_app(fast_rates_settings):
    """Factory for a wired app on a fresh in-memory database."""

    def factory(session=None):
        return create_app_components(
            database_url="sqlite:///:memory:",
            http_session=session or FakeSession(),
            exchange_rates_settings=fast_rates_settings,
        )

    return factory
