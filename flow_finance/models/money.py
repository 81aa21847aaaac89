"""
Money, Exchange Rates and Money Flows

DESIGN DECISION: Amounts are Decimal, never float.
A Money value always carries its currency, and arithmetic across two
currencies is an error rather than a silent mix. Conversion only happens
through an explicit ExchangeRates table.

Exchange rates follow the currency-api layout: one base currency and a map
of "1 base = N target" rates. Conversions that don't start or end at the
base are crossed through it.
"""

import datetime as dt
import re
from decimal import Decimal
from typing import Any, Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


UNKNOWN_CURRENCY = "XXX"

_CURRENCY_CODE = re.compile(r"^[A-Za-z]{3}$")


class MoneyError(Exception):
    """Invalid money arithmetic or conversion."""
    pass


def is_currency_code_valid(code: Optional[str]) -> bool:
    """Three-letter alphabetic code, case-insensitive."""
    if code is None:
        return False
    return bool(_CURRENCY_CODE.match(code.strip()))


def normalize_currency_code(code: str) -> str:
    """Validate and upper-case a currency code."""
    if not is_currency_code_valid(code):
        raise ValueError(f"Invalid currency code: {code!r}")
    return code.strip().upper()


# =============================================================================
# EXCHANGE RATES
# =============================================================================

class ExchangeRates(BaseModel):
    """
    A rates table for a single base currency on a single date.

    `rates[X]` is how many units of X one unit of the base buys.
    """

    date: dt.date
    base_currency: str
    rates: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator('base_currency')
    @classmethod
    def validate_base(cls, v: str) -> str:
        return normalize_currency_code(v)

    @field_validator('rates')
    @classmethod
    def upper_case_codes(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        return {code.upper(): rate for code, rate in v.items()}

    @classmethod
    def from_json(cls, base_currency: str, payload: dict[str, Any]) -> "ExchangeRates":
        """
        Parse a currency-api response.

        Payload shape: {"date": "2024-05-01", "usd": {"eur": 0.93, ...}}
        """
        key = base_currency.strip().lower()
        raw_rates = payload.get(key)
        if not isinstance(raw_rates, dict):
            raise MoneyError(f"Rates payload has no '{key}' table")

        rates = {}
        for code, rate in raw_rates.items():
            if isinstance(rate, bool) or not isinstance(rate, (int, float, str, Decimal)):
                continue
            rates[code] = Decimal(str(rate))

        return cls(
            date=dt.date.fromisoformat(payload["date"]),
            base_currency=base_currency,
            rates=rates,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "baseCurrency": self.base_currency,
            "rates": {code: str(rate) for code, rate in self.rates.items()},
        }

    def rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Multiplier that converts an amount in from_currency to to_currency."""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()

        if from_currency == to_currency:
            return Decimal(1)

        try:
            if from_currency == self.base_currency:
                return self.rates[to_currency]
            if to_currency == self.base_currency:
                return Decimal(1) / self.rates[from_currency]
            return self.rates[to_currency] / self.rates[from_currency]
        except KeyError as e:
            raise MoneyError(
                f"No {self.base_currency} rate for {e.args[0]}"
            ) from None
        except ZeroDivisionError:
            raise MoneyError(
                f"Zero rate between {from_currency} and {to_currency}"
            ) from None


class ExchangeRatesSet(BaseModel):
    """In-memory cache of rates tables keyed by base currency."""

    sets: dict[str, ExchangeRates] = Field(default_factory=dict)

    def get(self, base_currency: str) -> Optional[ExchangeRates]:
        return self.sets.get(base_currency.strip().upper())

    def set(self, base_currency: str, rates: ExchangeRates) -> None:
        self.sets[base_currency.strip().upper()] = rates

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "ExchangeRatesSet":
        return cls.model_validate_json(raw)


# =============================================================================
# MONEY
# =============================================================================

class Money(BaseModel):
    """An amount in a specific currency."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str

    def __init__(self, amount: Any = None, currency: Optional[str] = None, **data: Any):
        # Allow positional construction: Money(10, "USD")
        if amount is not None:
            data["amount"] = amount
        if currency is not None:
            data["currency"] = currency
        super().__init__(**data)

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def _check_currency(self, other: "Money") -> None:
        if other.currency != self.currency:
            raise MoneyError(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __abs__(self) -> "Money":
        return Money(abs(self.amount), self.currency)

    def convert(self, target_currency: str, rates: ExchangeRates) -> "Money":
        """Convert to target_currency using the given rates table."""
        target_currency = normalize_currency_code(target_currency)
        if target_currency == self.currency:
            return self
        return Money(
            self.amount * rates.rate(self.currency, target_currency),
            target_currency,
        )

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


# =============================================================================
# MONEY FLOW
# =============================================================================

K = TypeVar("K")


class MoneyFlow(Generic[K]):
    """
    Income and expense totals, tracked per currency.

    Negative amounts count as expense, everything else as income.
    `associated_data` carries whatever the flow is keyed on (an Account,
    a Category...) so callers don't have to look it up again.
    """

    def __init__(self, associated_data: Optional[K] = None):
        self.associated_data = associated_data
        self._income: dict[str, Decimal] = {}
        self._expense: dict[str, Decimal] = {}

    def add(self, money: Money) -> None:
        bucket = self._expense if money.is_negative else self._income
        bucket[money.currency] = bucket.get(money.currency, Decimal(0)) + money.amount

    def add_all(self, monies: Iterable[Money]) -> None:
        for money in monies:
            self.add(money)

    @property
    def currencies(self) -> set[str]:
        return set(self._income) | set(self._expense)

    @property
    def is_empty(self) -> bool:
        return not self._income and not self._expense

    def get_income_by_currency(self, currency: str) -> Money:
        currency = normalize_currency_code(currency)
        return Money(self._income.get(currency, Decimal(0)), currency)

    def get_expense_by_currency(self, currency: str) -> Money:
        currency = normalize_currency_code(currency)
        return Money(self._expense.get(currency, Decimal(0)), currency)

    def get_flow_by_currency(self, currency: str) -> Money:
        return self.get_income_by_currency(currency) + self.get_expense_by_currency(currency)

    def _total(
        self,
        bucket: dict[str, Decimal],
        rates: ExchangeRates,
        currency: str,
    ) -> Money:
        currency = normalize_currency_code(currency)
        total = Money(0, currency)
        for code, amount in bucket.items():
            total += Money(amount, code).convert(currency, rates)
        return total

    def get_total_income(self, rates: ExchangeRates, currency: str) -> Money:
        return self._total(self._income, rates, currency)

    def get_total_expense(self, rates: ExchangeRates, currency: str) -> Money:
        return self._total(self._expense, rates, currency)

    def get_total_flow(self, rates: ExchangeRates, currency: str) -> Money:
        return self.get_total_income(rates, currency) + self.get_total_expense(rates, currency)

    def __repr__(self) -> str:
        return f"MoneyFlow(income={self._income!r}, expense={self._expense!r})"


class FlowAnalytics(Generic[K]):
    """Money flows for a time range, keyed by e.g. account or category uuid."""

    def __init__(self, range, flow: dict[str, MoneyFlow[K]]):
        self.range = range
        self.flow = flow

    def __len__(self) -> int:
        return len(self.flow)

    def get(self, key: str) -> Optional[MoneyFlow[K]]:
        return self.flow.get(key)
