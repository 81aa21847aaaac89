"""
Flow Analytics Engine

DESIGN DECISION: Analytics are computed from stored transactions on demand.
Nothing is pre-aggregated, so totals can never disagree with the ledger.

Only settled (non-pending) transactions count. Transfers are left out of
per-category and per-account flows by default, since they move money
without earning or spending it.
"""

from collections.abc import Callable, Iterable
from typing import Optional, TypeVar

import structlog

from flow_finance.actions.accounts import AccountActions
from flow_finance.actions.transaction_list import flow as transactions_flow
from flow_finance.models.entities import NIL_UUID, Account, Category, Transaction
from flow_finance.models.filters import TransactionFilter
from flow_finance.models.money import ExchangeRates, FlowAnalytics, Money, MoneyError, MoneyFlow
from flow_finance.models.time_range import TimeRange
from flow_finance.services.exchange_rates import ExchangeRatesService
from flow_finance.services.preferences import Preferences
from flow_finance.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)

T = TypeVar("T")
K = TypeVar("K")


def flow_by(
    transactions: Iterable[Transaction],
    key_by: Callable[[Transaction], Optional[T]],
    associate_by: Optional[Callable[[Transaction], K]] = None,
) -> dict[T, MoneyFlow[K]]:
    """
    Bucket transactions into money flows.

    Transactions whose key is None are skipped. Associated data is taken
    from the first transaction seen for each key.
    """
    result: dict[T, MoneyFlow[K]] = {}

    for transaction in transactions:
        key = key_by(transaction)
        if key is None:
            continue

        if key not in result:
            associated = associate_by(transaction) if associate_by else None
            result[key] = MoneyFlow(associated_data=associated)
        result[key].add(transaction.money)

    return result


def summarize_flow(
    transactions: Optional[Iterable[Transaction]],
    rates: Optional[ExchangeRates],
    primary_currency: str,
) -> tuple[Optional[Money], Optional[Money]]:
    """
    (income, expense) of the transactions in the primary currency.

    Without rates only primary-currency amounts are counted; with rates
    every currency is converted. Returns (None, None) while transactions
    are not loaded (None).
    """
    if transactions is None:
        return None, None

    money_flow = transactions_flow(transactions)

    if rates is None:
        return (
            money_flow.get_income_by_currency(primary_currency),
            money_flow.get_expense_by_currency(primary_currency),
        )

    return (
        money_flow.get_total_income(rates, primary_currency),
        money_flow.get_total_expense(rates, primary_currency),
    )


class AnalyticsEngine:
    """
    Flow and balance analytics over the ledger.

    GUARANTEES:
    - Only settled transactions are counted
    - Cross-currency totals are only produced when rates are available
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        preferences: Preferences,
        exchange_rates: ExchangeRatesService,
        account_actions: AccountActions,
    ):
        self._storage = storage
        self._preferences = preferences
        self._exchange_rates = exchange_rates
        self._accounts = account_actions

    async def transactions_by_range(self, range: TimeRange) -> list[Transaction]:
        """Non-pending transactions in range, newest first."""
        return await self._storage.find_transactions(
            TransactionFilter(range=range, is_pending=False)
        )

    async def flow_by_categories(
        self,
        range: TimeRange,
        ignore_transfers: bool = True,
    ) -> FlowAnalytics[Optional[Category]]:
        """Flows keyed by category uuid; uncategorized goes under the nil uuid."""
        transactions = await self.transactions_by_range(range)
        categories = {c.id: c for c in await self._storage.list_categories()}

        def key_by(t: Transaction) -> Optional[str]:
            if ignore_transfers and t.is_transfer:
                return None
            category = categories.get(t.category_id)
            return category.uuid if category else NIL_UUID

        return FlowAnalytics(
            range=range,
            flow=flow_by(transactions, key_by, lambda t: categories.get(t.category_id)),
        )

    async def flow_by_accounts(
        self,
        range: TimeRange,
        ignore_transfers: bool = True,
    ) -> FlowAnalytics[Account]:
        """Flows keyed by account uuid."""
        transactions = await self.transactions_by_range(range)
        accounts = {a.id: a for a in await self._storage.list_accounts()}

        def key_by(t: Transaction) -> Optional[str]:
            if ignore_transfers and t.is_transfer:
                return None
            account = accounts.get(t.account_id)
            if account is None:
                logger.warning(
                    "transaction_without_account",
                    transaction_uuid=t.uuid,
                    account_id=t.account_id,
                )
                return NIL_UUID
            return account.uuid

        return FlowAnalytics(
            range=range,
            flow=flow_by(transactions, key_by, lambda t: accounts.get(t.account_id)),
        )

    async def get_primary_currency_grand_total(self) -> Money:
        """
        Sum of balances of primary-currency accounts.

        Accounts excluded from the total balance are skipped. Archived
        accounts still count here.
        """
        primary_currency = await self._preferences.get_primary_currency()
        total = Money(0, primary_currency)

        for account in await self._storage.list_accounts():
            if account.exclude_from_total_balance or account.currency != primary_currency:
                continue
            total += await self._accounts.balance(account)

        return total

    async def get_grand_total(self) -> Optional[Money]:
        """
        Sum of all active, included account balances in the primary currency.

        Returns None when some account needs converting and no rates
        (fetched or cached) are available, or the rates lack its currency.
        """
        primary_currency = await self._preferences.get_primary_currency()
        accounts = [
            a for a in await self._storage.list_accounts()
            if not a.exclude_from_total_balance and not a.archived
        ]

        total = Money(0, primary_currency)
        foreign = []
        for account in accounts:
            if account.currency == primary_currency:
                total += await self._accounts.balance(account)
            else:
                foreign.append(account)

        if not foreign:
            return total

        rates = await self._exchange_rates.try_fetch_rates(primary_currency)
        if rates is None:
            logger.info("grand_total_unavailable", reason="no_exchange_rates")
            return None

        try:
            for account in foreign:
                balance = await self._accounts.balance(account)
                total += balance.convert(primary_currency, rates)
        except MoneyError as e:
            logger.warning("grand_total_unavailable", reason="missing_rate", error=str(e))
            return None

        return total
