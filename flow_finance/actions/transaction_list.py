"""
Transaction List Helpers

Pure functions over iterables of transactions. Nothing here touches
storage, so list screens, analytics and tests share the same logic.
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flow_finance.models.entities import Transaction
from flow_finance.models.filters import TransactionPredicate, TransactionSearchData
from flow_finance.models.money import UNKNOWN_CURRENCY, Money, MoneyFlow
from flow_finance.models.time_range import DayTimeRange, TimeRange


GroupedTransactions = dict[TimeRange, list[Transaction]]


# =============================================================================
# FILTERS
# =============================================================================

def non_transfers(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if not t.is_transfer]


def transfers(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.is_transfer]


def expenses(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.amount < 0]


def incomes(transactions: Iterable[Transaction]) -> list[Transaction]:
    # Zero amounts are neither income nor expense here
    return [t for t in transactions if t.amount > 0]


def non_pending(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.is_pending is not True]


def renderable_count(
    transactions: Iterable[Transaction],
    combine_transfers: bool,
) -> int:
    """
    Number of rows a list of transactions renders as.

    When transfers are combined, each pair shows up as a single row.
    """
    transactions = list(transactions)
    if not combine_transfers:
        return len(transactions)
    return len(transactions) - len(transfers(transactions)) // 2


# =============================================================================
# SUMS
# =============================================================================

def income_sum_without_currency(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in incomes(transactions)), Decimal(0))


def expense_sum_without_currency(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in expenses(transactions)), Decimal(0))


def sum_without_currency(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), Decimal(0))


def _money_sum(
    selected: list[Transaction],
    all_transactions: list[Transaction],
) -> Money:
    currency = all_transactions[0].currency if all_transactions else UNKNOWN_CURRENCY
    total = Money(0, currency)
    for transaction in selected:
        total += transaction.money
    return total


def income_sum(transactions: Iterable[Transaction]) -> Money:
    """
    Total income as Money.

    Raises MoneyError if the transactions span several currencies.
    """
    transactions = list(transactions)
    return _money_sum(incomes(transactions), transactions)


def expense_sum(transactions: Iterable[Transaction]) -> Money:
    transactions = list(transactions)
    return _money_sum(expenses(transactions), transactions)


def sum_money(transactions: Iterable[Transaction]) -> Money:
    transactions = list(transactions)
    return _money_sum(transactions, transactions)


def flow(transactions: Iterable[Transaction]) -> MoneyFlow:
    """Per-currency income and expense of the transactions."""
    result = MoneyFlow()
    result.add_all(t.money for t in transactions)
    return result


# =============================================================================
# GROUPING
# =============================================================================

def group_by_range(
    transactions: Iterable[Transaction],
    range_fn: Callable[[Transaction], TimeRange],
) -> GroupedTransactions:
    """Group transactions by range_fn, keeping first-seen order."""
    grouped: GroupedTransactions = {}
    for transaction in transactions:
        grouped.setdefault(range_fn(transaction), []).append(transaction)
    return grouped


def group_by_date(transactions: Iterable[Transaction]) -> GroupedTransactions:
    """One group per calendar day of transaction_date."""
    return group_by_range(
        transactions,
        lambda t: DayTimeRange.from_datetime(t.transaction_date),
    )


def split_by_anchor(
    grouped: Mapping[TimeRange, list[Transaction]],
    anchor: Optional[datetime] = None,
) -> tuple[GroupedTransactions, GroupedTransactions]:
    """
    Split grouped transactions into (future, past) relative to anchor.

    A group is past when its range starts before the anchor. List screens
    render the future part (upcoming, usually pending) above the rest.
    """
    anchor = anchor or datetime.now()
    future: GroupedTransactions = {}
    past: GroupedTransactions = {}

    for time_range, items in grouped.items():
        target = past if time_range.is_past_anchored(anchor) else future
        target[time_range] = items

    return future, past


# =============================================================================
# FILTERING AND SEARCH
# =============================================================================

def filter_transactions(
    transactions: Iterable[Transaction],
    predicates: Iterable[TransactionPredicate],
) -> list[Transaction]:
    predicates = list(predicates)
    return [t for t in transactions if all(p(t) for p in predicates)]


def search(
    transactions: Iterable[Transaction],
    data: Optional[TransactionSearchData],
) -> list[Transaction]:
    """Keyword search; everything matches when there's no keyword."""
    if data is None:
        return list(transactions)
    return data.apply(transactions)
