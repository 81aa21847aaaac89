"""
Account Actions

Balances, transaction creation and transfers between accounts.

DESIGN DECISION: Balance is never stored.
It is always the sum of the account's non-pending transactions, so a
balance correction is itself a transaction (subtype updateBalance)
rather than an overwrite.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

import structlog

from flow_finance.actions.transactions import TransferError
from flow_finance.audit import AuditLogger, create_correlation_id
from flow_finance.config import get_settings
from flow_finance.models.entities import (
    Account,
    Category,
    Geo,
    Transaction,
    TransactionExtension,
    TransactionSubtype,
    Transfer,
    new_uuid,
)
from flow_finance.models.filters import TransactionFilter
from flow_finance.models.frecency import FrecencyGroup
from flow_finance.models.money import Money
from flow_finance.services.preferences import Preferences
from flow_finance.services.storage import LedgerStorageInterface, StorageError
from flow_finance.utils import Memoizer


logger = structlog.get_logger(__name__)

Amount = Union[Decimal, int, float, str]


def _to_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, float):
        return Decimal(str(amount))
    return Decimal(amount)


def actives(accounts: Iterable[Account]) -> list[Account]:
    return [a for a in accounts if not a.archived]


def inactives(accounts: Iterable[Account]) -> list[Account]:
    return [a for a in accounts if a.archived]


class AccountActions:
    """
    Operations on accounts.

    Usage:
        actions = AccountActions(storage, preferences, audit_logger)
        await actions.create_and_save_transaction(wallet, Decimal("-4.50"), title="Coffee")
        await actions.transfer_to(wallet, savings, Decimal("100"))
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        preferences: Preferences,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._preferences = preferences
        self._audit = audit_logger or AuditLogger()
        self._settings = get_settings().app
        self._names = Memoizer(self._lookup_name)

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    async def _settled(self, account: Account) -> list[Transaction]:
        return await self._storage.find_transactions(
            TransactionFilter(accounts=[account.id], is_pending=False)
        )

    async def balance(self, account: Account) -> Money:
        """Sum of the account's non-pending transactions."""
        transactions = await self._settled(account)
        return Money(sum((t.amount for t in transactions), Decimal(0)), account.currency)

    async def balance_at(self, account: Account, at: datetime) -> Money:
        """Balance including everything dated on or before `at`."""
        transactions = await self._settled(account)
        return Money(
            sum((t.amount for t in transactions if t.transaction_date <= at), Decimal(0)),
            account.currency,
        )

    # -------------------------------------------------------------------------
    # Names
    # -------------------------------------------------------------------------

    async def _lookup_name(self, uuid: str) -> Optional[str]:
        try:
            account = await self._storage.get_account_by_uuid(uuid)
        except StorageError as e:
            logger.warning("account_name_lookup_failed", uuid=uuid, error=str(e))
            return None
        return account.name if account else None

    async def name_by_uuid(self, uuid: Optional[str]) -> str:
        """Account name for a uuid, memoized. Unknown uuids aren't cached."""
        if not uuid:
            return self._settings.unknown_account_name

        name = await self._names.get(uuid)
        if name is None:
            self._names.invalidate(uuid)
            return self._settings.unknown_account_name
        return name

    async def save_account(self, account: Account) -> int:
        """Save an account and drop its memoized name so renames show up."""
        account_id = await self._storage.put_account(account)
        self._names.invalidate(account.uuid)
        return account_id

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _build_transaction(
        self,
        account: Account,
        amount: Amount,
        uuid: str,
        transaction_date: Optional[datetime] = None,
        created_date: Optional[datetime] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[Category] = None,
        extensions: Optional[list[TransactionExtension]] = None,
        is_pending: Optional[bool] = None,
        subtype: Optional[TransactionSubtype] = None,
    ) -> Transaction:
        """
        Extensions without a related transaction are attached to the new
        one. Extensions already pointing at another transaction are
        dropped, except Transfer, which always points at the other side.
        """
        if not account.id:
            raise ValueError("Account must be saved before adding transactions")

        now = datetime.now()

        applicable = []
        for ext in extensions or []:
            if ext.related_transaction_uuid is None:
                applicable.append(ext.model_copy(update={"related_transaction_uuid": uuid}))
            elif isinstance(ext, Transfer) or ext.related_transaction_uuid == uuid:
                applicable.append(ext)
            else:
                logger.debug(
                    "extension_dropped",
                    transaction_uuid=uuid,
                    extension_uuid=ext.uuid,
                    related_transaction_uuid=ext.related_transaction_uuid,
                )

        return Transaction(
            uuid=uuid,
            amount=_to_decimal(amount),
            currency=account.currency,
            title=title,
            description=description,
            transaction_date=transaction_date or now,
            created_date=created_date or now,
            is_pending=False if is_pending is None else is_pending,
            subtype=subtype,
            account_id=account.id,
            category_id=category.id if category else None,
            extensions=applicable,
        )

    async def _after_save(
        self,
        transaction: Transaction,
        account: Account,
        category: Optional[Category],
        correlation_id: Optional[UUID],
    ) -> None:
        try:
            await self._preferences.update_frecency_data("account", account.uuid)
            if category is not None:
                await self._preferences.update_frecency_data("category", category.uuid)
        except StorageError as e:
            logger.warning(
                "frecency_update_failed",
                transaction_id=transaction.id,
                error=str(e),
            )

        await self._audit.log_transaction_created(
            transaction_uuid=transaction.uuid,
            amount=str(transaction.amount),
            currency=transaction.currency,
            correlation_id=correlation_id,
        )

    async def create_and_save_transaction(
        self,
        account: Account,
        amount: Amount,
        transaction_date: Optional[datetime] = None,
        created_date: Optional[datetime] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[Category] = None,
        extensions: Optional[list[TransactionExtension]] = None,
        uuid_override: Optional[str] = None,
        is_pending: Optional[bool] = None,
        subtype: Optional[TransactionSubtype] = None,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Create a transaction in the account's currency and save it.

        Frecency of the account (and category) is bumped afterwards; a
        failure there is logged, not raised.

        Returns:
            The new transaction's id
        """
        transaction = self._build_transaction(
            account,
            amount,
            uuid_override or new_uuid(),
            transaction_date=transaction_date,
            created_date=created_date,
            title=title,
            description=description,
            category=category,
            extensions=extensions,
            is_pending=is_pending,
            subtype=subtype,
        )

        transaction_id = await self._storage.put_transaction(transaction)
        await self._after_save(transaction, account, category, correlation_id)
        return transaction_id

    async def update_balance_and_save(
        self,
        account: Account,
        target_balance: Amount,
        title: Optional[str] = None,
        transaction_date: Optional[datetime] = None,
    ) -> int:
        """
        Add a correction so the balance becomes target_balance.

        With transaction_date, the balance at that moment is corrected
        instead of the current one.

        Returns:
            The correction transaction's id
        """
        current = (
            await self.balance(account)
            if transaction_date is None
            else await self.balance_at(account, transaction_date)
        )
        delta = _to_decimal(target_balance) - current.amount

        uuid = new_uuid()
        transaction_id = await self.create_and_save_transaction(
            account,
            delta,
            title=title,
            transaction_date=transaction_date,
            subtype=TransactionSubtype.UPDATE_BALANCE,
            uuid_override=uuid,
        )
        await self._audit.log_balance_updated(
            account_uuid=account.uuid,
            delta=str(delta),
            transaction_uuid=uuid,
        )
        return transaction_id

    async def transfer_to(
        self,
        account: Account,
        target_account: Account,
        amount: Amount,
        title: Optional[str] = None,
        description: Optional[str] = None,
        created_date: Optional[datetime] = None,
        transaction_date: Optional[datetime] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        extensions: Optional[list[TransactionExtension]] = None,
        is_pending: Optional[bool] = None,
    ) -> tuple[int, int]:
        """
        Move money from account to target_account.

        A negative amount moves money the other way. Either way the first
        id is the outgoing transaction and the second the incoming one.
        Both sides are saved together or not at all.

        Raises:
            TransferError: Zero amount, or both sides are the same account
            ValueError: Either account is not saved yet
        """
        amount = _to_decimal(amount)

        if amount == 0:
            raise TransferError("Transfer amount cannot be zero")
        if account.uuid == target_account.uuid:
            raise TransferError("Cannot transfer to the same account")
        if not account.id or not target_account.id:
            raise ValueError("Both accounts must be saved before transferring")

        if amount < 0:
            return await self.transfer_to(
                target_account,
                account,
                -amount,
                title=title,
                description=description,
                created_date=created_date,
                transaction_date=transaction_date,
                latitude=latitude,
                longitude=longitude,
                extensions=extensions,
                is_pending=is_pending,
            )

        from_uuid = new_uuid()
        to_uuid = new_uuid()
        correlation_id = create_correlation_id()
        now = datetime.now()

        transfer = Transfer(
            from_account_uuid=account.uuid,
            to_account_uuid=target_account.uuid,
            related_transaction_uuid=to_uuid,
        )

        if title is None:
            title = self._settings.transfer_title_template.format(
                from_name=account.name,
                to_name=target_account.name,
            )

        shared = [ext for ext in extensions or [] if not isinstance(ext, Transfer)]

        def side(side_account: Account, side_amount: Decimal, uuid: str, own_transfer: Transfer):
            side_extensions = [own_transfer, *(ext.model_copy() for ext in shared)]
            if latitude is not None and longitude is not None:
                side_extensions.append(Geo(latitude=latitude, longitude=longitude))
            return self._build_transaction(
                side_account,
                side_amount,
                uuid,
                transaction_date=transaction_date or now,
                created_date=created_date or now,
                title=title,
                description=description,
                extensions=side_extensions,
                is_pending=is_pending,
            )

        outgoing = side(account, -amount, from_uuid, transfer)
        incoming = side(
            target_account,
            amount,
            to_uuid,
            transfer.model_copy(update={"related_transaction_uuid": from_uuid}),
        )

        from_id, to_id = await self._storage.put_transactions([outgoing, incoming])

        await self._after_save(outgoing, account, None, correlation_id)
        await self._after_save(incoming, target_account, None, correlation_id)

        await self._audit.log_transfer_created(
            transfer_uuid=transfer.uuid,
            from_transaction_uuid=from_uuid,
            to_transaction_uuid=to_uuid,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        return from_id, to_id

    # -------------------------------------------------------------------------
    # Listing and ordering
    # -------------------------------------------------------------------------

    async def _frecency_group(self, type: str, uuids: Iterable[str]) -> FrecencyGroup:
        data = []
        for uuid in uuids:
            item = await self._preferences.get_frecency_data(type, uuid)
            if item is not None:
                data.append(item)
        return FrecencyGroup(data, half_life_days=self._settings.frecency_half_life_days)

    async def get_accounts(self, sort_by_frecency: bool = True) -> list[Account]:
        """Non-archived accounts, most used first unless told otherwise."""
        accounts = actives(await self._storage.list_accounts())

        if sort_by_frecency:
            group = await self._frecency_group("account", (a.uuid for a in accounts))
            now = datetime.now()
            accounts.sort(key=lambda a: group.get_score(a.uuid, now), reverse=True)

        return accounts

    async def get_categories(self, sort_by_frecency: bool = True) -> list[Category]:
        categories = await self._storage.list_categories()

        if sort_by_frecency:
            group = await self._frecency_group("category", (c.uuid for c in categories))
            now = datetime.now()
            categories.sort(key=lambda c: group.get_score(c.uuid, now), reverse=True)

        return categories

    async def update_account_order_list(
        self,
        accounts: Optional[list[Account]] = None,
        ignore_if_no_unset_value: bool = False,
    ) -> None:
        """
        Persist list position as each account's sort_order.

        With ignore_if_no_unset_value, nothing happens unless some
        account still has the unset (-1) value.
        """
        if accounts is None:
            accounts = await self._storage.list_accounts()

        if ignore_if_no_unset_value and not any(a.sort_order < 0 for a in accounts):
            return

        for index, account in enumerate(accounts):
            account.sort_order = index

        await self._storage.put_accounts(accounts)
        await self._audit.log_account_order_updated(account_count=len(accounts))
