"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep business rules (transfer pairing, balances) out of the database layer
2. Use an in-memory SQLite database for testing
3. Swap the embedded database for another backend later

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from flow_finance.models.audit import AuditEvent
from flow_finance.models.entities import (
    Account,
    BackupEntry,
    Category,
    Transaction,
)
from flow_finance.models.filters import TransactionFilter


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    `put_*` methods are upserts: id 0 inserts, any other id updates.
    They write the assigned id back onto the model and return it.
    """

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def put_account(self, account: Account) -> int:
        """
        Insert or update an account.

        Returns:
            The account's storage id

        Raises:
            DuplicateError: If another account has the same uuid
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def put_accounts(self, accounts: list[Account]) -> list[int]:
        """Insert or update several accounts in one unit of work."""
        pass

    @abstractmethod
    async def get_account(self, account_id: int) -> Optional[Account]:
        pass

    @abstractmethod
    async def get_account_by_uuid(self, uuid: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """All accounts, archived included, ordered by sort_order then id."""
        pass

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def put_category(self, category: Category) -> int:
        pass

    @abstractmethod
    async def get_category(self, category_id: int) -> Optional[Category]:
        pass

    @abstractmethod
    async def get_category_by_uuid(self, uuid: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def put_transaction(self, transaction: Transaction) -> int:
        """
        Insert or update a transaction.

        Returns:
            The transaction's storage id

        Raises:
            DuplicateError: If another transaction has the same uuid
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def put_transactions(self, transactions: list[Transaction]) -> list[int]:
        """
        Insert or update several transactions in one storage transaction.

        Either every transaction is written or none is. Used for both
        sides of a transfer.

        Returns:
            Storage ids, in input order
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def get_transaction_by_uuid(self, uuid: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def find_transactions(
        self,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """
        Find transactions matching a filter.

        Returns:
            Matching transactions, newest transaction_date first
        """
        pass

    @abstractmethod
    async def find_first_transaction(
        self,
        filter: Optional[TransactionFilter] = None,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: int) -> bool:
        """
        Delete a transaction by id.

        Returns:
            True if a row was removed
        """
        pass

    # -------------------------------------------------------------------------
    # Backups
    # -------------------------------------------------------------------------

    @abstractmethod
    async def put_backup_entry(self, entry: BackupEntry) -> int:
        pass

    @abstractmethod
    async def list_backup_entries(self) -> list[BackupEntry]:
        pass

    @abstractmethod
    async def delete_backup_entry(self, entry_id: int) -> bool:
        pass


class PreferencesStorageInterface(ABC):
    """
    Abstract key/value store for local preferences.

    Values are opaque strings; callers serialize.
    """

    @abstractmethod
    async def get_value(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_value(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete_value(self, key: str) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Related events in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events for one entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
