"""
Transaction Actions

DESIGN DECISION: A transfer is stored as TWO transactions.
Whenever one side is deleted, confirmed or edited, the other side must
follow, otherwise the two account balances drift apart.

Keeping the pair in sync is best-effort: if the counterpart is missing
or can't be written, the problem is logged and audited, and the
operation on the side the user touched still goes through.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog

from flow_finance.audit import AuditLogger, create_correlation_id
from flow_finance.models.entities import NIL_UUID, Transaction, Transfer, new_uuid
from flow_finance.services.storage import LedgerStorageInterface, StorageError


logger = structlog.get_logger(__name__)


class TransferError(Exception):
    """Invalid operation on a transfer."""
    pass


# Fields a transfer shares with its counterpart
MIRRORED_FIELDS = ("title", "description", "transaction_date", "is_pending")

UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "amount",
    "transaction_date",
    "is_pending",
    "subtype",
    "account_id",
    "category_id",
})


class TransactionActions:
    """
    Operations on single transactions that keep transfer pairs consistent.

    Usage:
        actions = TransactionActions(storage, audit_logger)
        await actions.confirm(transaction)
        await actions.delete(transaction)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    async def _find_counterpart(self, transaction: Transaction) -> Optional[Transaction]:
        transfer = transaction.transfer
        if transfer is None:
            return None
        return await self._storage.get_transaction_by_uuid(
            transfer.related_transaction_uuid or NIL_UUID
        )

    async def _report_inconsistent(
        self,
        transaction: Transaction,
        operation: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.warning(
            "transfer_inconsistent",
            transaction_uuid=transaction.uuid,
            operation=operation,
            reason=reason,
        )
        await self._audit.log_transfer_inconsistent(
            transaction_uuid=transaction.uuid,
            operation=operation,
            reason=reason,
            correlation_id=correlation_id,
        )

    async def find_transfer_original_or_this(self, transaction: Transaction) -> Transaction:
        """
        The outgoing side of a transfer, or the transaction itself.

        Edits to a transfer are made through its outgoing (negative) side.
        If the incoming side's counterpart can't be found, the incoming
        side is returned.
        """
        if not transaction.is_transfer or transaction.amount < 0:
            return transaction

        try:
            original = await self._find_counterpart(transaction)
        except StorageError as e:
            logger.warning(
                "transfer_original_lookup_failed",
                transaction_uuid=transaction.uuid,
                error=str(e),
            )
            return transaction

        return original or transaction

    async def delete(self, transaction: Transaction) -> bool:
        """
        Delete a transaction, and its counterpart if it's a transfer.

        Returns:
            True if the transaction itself was removed
        """
        correlation_id = create_correlation_id()
        related_uuid = None

        if transaction.is_transfer:
            related_uuid = transaction.transfer.related_transaction_uuid
            if related_uuid is None:
                await self._report_inconsistent(
                    transaction, "delete", "Missing related transaction uuid", correlation_id
                )
            else:
                try:
                    counterpart = await self._find_counterpart(transaction)
                    if counterpart is None:
                        raise StorageError("Related transaction not found")
                    if not await self._storage.delete_transaction(counterpart.id):
                        raise StorageError("Failed to remove related transaction")
                    await self._audit.log_transaction_deleted(
                        transaction_uuid=counterpart.uuid,
                        related_uuid=transaction.uuid,
                        correlation_id=correlation_id,
                    )
                except StorageError as e:
                    await self._report_inconsistent(
                        transaction, "delete", str(e), correlation_id
                    )

        removed = await self._storage.delete_transaction(transaction.id)
        if removed:
            await self._audit.log_transaction_deleted(
                transaction_uuid=transaction.uuid,
                related_uuid=related_uuid,
                correlation_id=correlation_id,
            )
        return removed

    async def confirm(
        self,
        transaction: Transaction,
        confirm: bool = True,
        update_transaction_date: bool = True,
    ) -> bool:
        """
        Confirm (or un-confirm) a pending transaction.

        When confirming with update_transaction_date, the transaction is
        moved to now. Transfers update both sides.

        Returns:
            False if the transaction couldn't be saved
        """
        correlation_id = create_correlation_id()
        now = datetime.now()
        is_pending = not confirm
        stamp_date = update_transaction_date and not is_pending

        try:
            if transaction.is_transfer:
                try:
                    counterpart = await self._find_counterpart(transaction)
                    if counterpart is None:
                        raise StorageError("Related transaction not found")

                    counterpart.is_pending = is_pending
                    if stamp_date:
                        counterpart.transaction_date = now
                    await self._storage.put_transaction(counterpart)
                except StorageError as e:
                    await self._report_inconsistent(
                        transaction, "confirm", str(e), correlation_id
                    )

            transaction.is_pending = is_pending
            if stamp_date:
                transaction.transaction_date = now
            await self._storage.put_transaction(transaction)
        except StorageError as e:
            logger.error(
                "transaction_confirm_failed",
                transaction_uuid=transaction.uuid,
                error=str(e),
            )
            return False

        await self._audit.log_transaction_confirmed(
            transaction_uuid=transaction.uuid,
            confirmed=confirm,
            correlation_id=correlation_id,
        )
        return True

    async def duplicate(self, transaction: Transaction) -> int:
        """
        Save a copy of a transaction under a new uuid.

        Returns:
            The new transaction's id

        Raises:
            TransferError: Transfers can't be duplicated
        """
        if transaction.is_transfer:
            raise TransferError("Cannot duplicate transfer transactions")

        uuid = new_uuid()
        extensions = [
            ext.model_copy(update={"uuid": new_uuid(), "related_transaction_uuid": uuid})
            for ext in transaction.extensions
            if not isinstance(ext, Transfer)
        ]

        duplicate = Transaction(
            uuid=uuid,
            amount=transaction.amount,
            currency=transaction.currency,
            title=transaction.title,
            description=transaction.description,
            transaction_date=transaction.transaction_date,
            created_date=datetime.now(),
            is_pending=transaction.is_pending,
            account_id=transaction.account_id,
            category_id=transaction.category_id,
            extensions=extensions,
        )

        transaction_id = await self._storage.put_transaction(duplicate)
        await self._audit.log_transaction_duplicated(
            source_uuid=transaction.uuid,
            duplicate_uuid=uuid,
        )
        return transaction_id

    async def update(self, transaction: Transaction, **changes: Any) -> Transaction:
        """
        Apply changes to a transaction and save it.

        All changes are validated before any is applied, so a bad value
        leaves the transaction untouched.

        For a transfer, shared fields are copied onto the counterpart and
        the amount is mirrored with the opposite sign. A transfer side
        keeps its direction: only the magnitude of a new amount is used.

        Raises:
            ValueError: Unknown field
            pydantic.ValidationError: Invalid value
            TransferError: Moving a transfer to another account, or
                zeroing its amount
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        validated = Transaction.model_validate({
            **transaction.model_dump(exclude={"extensions"}),
            **changes,
            "extensions": transaction.extensions,
        })

        if transaction.is_transfer:
            if validated.account_id != transaction.account_id:
                raise TransferError("Cannot move a transfer to another account")
            if "amount" in changes:
                if validated.amount == 0:
                    raise TransferError("Transfer amount cannot be zero")
                magnitude = abs(validated.amount)
                validated.amount = -magnitude if transaction.amount < 0 else magnitude

        correlation_id = create_correlation_id()

        for field in changes:
            setattr(transaction, field, getattr(validated, field))

        if transaction.is_transfer:
            mirrored = [f for f in MIRRORED_FIELDS if f in changes]
            if "amount" in changes:
                mirrored.append("amount")

            if mirrored:
                try:
                    counterpart = await self._find_counterpart(transaction)
                    if counterpart is None:
                        raise StorageError("Related transaction not found")

                    for field in mirrored:
                        if field == "amount":
                            counterpart.amount = -transaction.amount
                        else:
                            setattr(counterpart, field, getattr(transaction, field))
                    await self._storage.put_transaction(counterpart)
                    await self._audit.log_transaction_updated(
                        transaction_uuid=counterpart.uuid,
                        fields=mirrored,
                        correlation_id=correlation_id,
                    )
                except StorageError as e:
                    await self._report_inconsistent(
                        transaction, "update", str(e), correlation_id
                    )

        await self._storage.put_transaction(transaction)
        await self._audit.log_transaction_updated(
            transaction_uuid=transaction.uuid,
            fields=sorted(changes),
            correlation_id=correlation_id,
        )
        return transaction
