"""
SQLite Storage Implementation

DESIGN DECISION: An embedded SQLite database (through SQLAlchemy) is the
storage backend because:
1. Single-file, zero-setup - right for a personal app
2. Both sides of a transfer are written in one database transaction
   (put_transactions), so a pair is never half-saved
3. `sqlite:///:memory:` makes tests fast and isolated

TRADEOFFS:
- Decimal amounts are stored as TEXT (SQLite has no exact decimal type)
- Extensions are stored as a JSON column; we never query inside them
- Keyword search and derived-type filters run in Python

The implementation follows the abstract interface, so business logic
never touches SQLAlchemy directly.
"""

import json
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import TypeAdapter
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from flow_finance.config import get_settings
from flow_finance.models.audit import AuditEvent, AuditEventType, AuditSeverity
from flow_finance.models.entities import (
    Account,
    AnyExtension,
    BackupEntry,
    Category,
    Transaction,
    TransactionSubtype,
)
from flow_finance.models.filters import TransactionFilter
from flow_finance.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    PreferencesStorageInterface,
    StorageError,
)


Base = declarative_base()

_extensions_adapter = TypeAdapter(list[AnyExtension])


# =============================================================================
# TABLES
# =============================================================================

class AccountRow(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    currency = Column(String(3), nullable=False)
    exclude_from_total_balance = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=-1)
    created_date = Column(DateTime, nullable=False)


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    created_date = Column(DateTime, nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True)
    title = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)

    # Decimal as text, see module docstring
    amount = Column(String(64), nullable=False)
    currency = Column(String(3), nullable=False)

    transaction_date = Column(DateTime, nullable=False, index=True)
    created_date = Column(DateTime, nullable=False)
    is_pending = Column(Boolean, nullable=True)
    subtype = Column(String(32), nullable=True)

    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)

    extensions_json = Column(Text, nullable=False, default="[]")


class BackupEntryRow(Base):
    __tablename__ = "backup_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_path = Column(Text, nullable=False)
    created_date = Column(DateTime, nullable=False)


class PreferenceRow(Base):
    __tablename__ = "preferences"

    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id = Column(String(36), primary_key=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    event_type = Column(String(64), nullable=False)
    severity = Column(String(16), nullable=False)
    entity_type = Column(String(64), nullable=True)
    entity_id = Column(String(64), nullable=True, index=True)
    correlation_id = Column(String(36), nullable=True, index=True)
    description = Column(String(500), nullable=False)
    details_json = Column(Text, nullable=False, default="{}")
    error_message = Column(Text, nullable=True)


# =============================================================================
# CLIENT
# =============================================================================

class SqlDatabase:
    """
    Low-level database wrapper.

    Owns the engine and session factory, and provides retry logic for
    opening the database file.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings().database
        self._url = url or settings.url
        self._echo = settings.echo if echo is None else echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def url(self) -> str:
        return self._url

    @retry(
        retry=retry_if_exception_type(ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        reraise=True,
    )
    def connect(self) -> Engine:
        """Create the engine and make sure the schema exists."""
        if self._engine is None:
            kwargs = {"echo": self._echo}
            if self._url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if ":memory:" in self._url or self._url == "sqlite://":
                    # One shared connection, otherwise every session sees
                    # its own empty database
                    kwargs["poolclass"] = StaticPool
            try:
                engine = create_engine(self._url, **kwargs)
                Base.metadata.create_all(engine)
            except SQLAlchemyError as e:
                raise ConnectionError(f"Failed to open database {self._url}: {e}")
            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        return self._engine

    def session(self) -> Session:
        self.connect()
        return self._session_factory()

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


# =============================================================================
# LEDGER
# =============================================================================

class SqlLedgerStorage(LedgerStorageInterface):
    """
    SQLite implementation of ledger storage.

    One row per entity. Models are converted explicitly in both directions
    so the schema never leaks into business code.
    """

    def __init__(self, database: Optional[SqlDatabase] = None):
        self._db = database or SqlDatabase()

    # -- row mapping ----------------------------------------------------------

    @staticmethod
    def _account_to_row(account: Account, row: AccountRow) -> AccountRow:
        row.uuid = account.uuid
        row.name = account.name
        row.currency = account.currency
        row.exclude_from_total_balance = account.exclude_from_total_balance
        row.archived = account.archived
        row.sort_order = account.sort_order
        row.created_date = account.created_date
        return row

    @staticmethod
    def _row_to_account(row: AccountRow) -> Account:
        return Account(
            id=row.id,
            uuid=row.uuid,
            name=row.name,
            currency=row.currency,
            exclude_from_total_balance=bool(row.exclude_from_total_balance),
            archived=bool(row.archived),
            sort_order=row.sort_order,
            created_date=row.created_date,
        )

    @staticmethod
    def _category_to_row(category: Category, row: CategoryRow) -> CategoryRow:
        row.uuid = category.uuid
        row.name = category.name
        row.created_date = category.created_date
        return row

    @staticmethod
    def _row_to_category(row: CategoryRow) -> Category:
        return Category(
            id=row.id,
            uuid=row.uuid,
            name=row.name,
            created_date=row.created_date,
        )

    @staticmethod
    def _transaction_to_row(transaction: Transaction, row: TransactionRow) -> TransactionRow:
        row.uuid = transaction.uuid
        row.title = transaction.title
        row.description = transaction.description
        row.amount = str(transaction.amount)
        row.currency = transaction.currency
        row.transaction_date = transaction.transaction_date
        row.created_date = transaction.created_date
        row.is_pending = transaction.is_pending
        row.subtype = transaction.subtype.value if transaction.subtype else None
        row.account_id = transaction.account_id
        row.category_id = transaction.category_id
        row.extensions_json = json.dumps(
            _extensions_adapter.dump_python(transaction.extensions, mode="json")
        )
        return row

    @staticmethod
    def _row_to_transaction(row: TransactionRow) -> Transaction:
        return Transaction(
            id=row.id,
            uuid=row.uuid,
            title=row.title,
            description=row.description,
            amount=Decimal(row.amount),
            currency=row.currency,
            transaction_date=row.transaction_date,
            created_date=row.created_date,
            is_pending=row.is_pending,
            subtype=TransactionSubtype(row.subtype) if row.subtype else None,
            account_id=row.account_id,
            category_id=row.category_id,
            extensions=_extensions_adapter.validate_python(
                json.loads(row.extensions_json or "[]")
            ),
        )

    # -- generic upsert -------------------------------------------------------

    def _upsert(self, session: Session, row_type, model, to_row) -> int:
        row = session.get(row_type, model.id) if model.id else None
        if row is None:
            row = row_type()
            if model.id:
                row.id = model.id
            session.add(row)
        to_row(model, row)
        session.flush()
        model.id = row.id
        return row.id

    def _put_many(self, row_type, models: list, to_row, label: str) -> list[int]:
        """Upsert all models in one transaction; all or nothing."""
        original_ids = [m.id for m in models]
        try:
            with self._db.session() as session, session.begin():
                return [self._upsert(session, row_type, m, to_row) for m in models]
        except SQLAlchemyError as e:
            # Rolled back, so ids written back by _upsert are not real
            for model, original_id in zip(models, original_ids):
                model.id = original_id
            if isinstance(e, IntegrityError):
                raise DuplicateError(f"Duplicate {label}: {e.orig}")
            raise StorageError(f"Failed to save {label}: {e}")

    # -- accounts -------------------------------------------------------------

    async def put_account(self, account: Account) -> int:
        return self._put_many(AccountRow, [account], self._account_to_row, "account")[0]

    async def put_accounts(self, accounts: list[Account]) -> list[int]:
        return self._put_many(AccountRow, accounts, self._account_to_row, "account")

    async def get_account(self, account_id: int) -> Optional[Account]:
        try:
            with self._db.session() as session:
                row = session.get(AccountRow, account_id)
                return self._row_to_account(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get account: {e}")

    async def get_account_by_uuid(self, uuid: str) -> Optional[Account]:
        try:
            with self._db.session() as session:
                row = session.scalars(
                    select(AccountRow).where(AccountRow.uuid == uuid)
                ).first()
                return self._row_to_account(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get account: {e}")

    async def list_accounts(self) -> list[Account]:
        try:
            with self._db.session() as session:
                rows = session.scalars(
                    select(AccountRow).order_by(AccountRow.sort_order, AccountRow.id)
                ).all()
                return [self._row_to_account(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list accounts: {e}")

    # -- categories -----------------------------------------------------------

    async def put_category(self, category: Category) -> int:
        return self._put_many(CategoryRow, [category], self._category_to_row, "category")[0]

    async def get_category(self, category_id: int) -> Optional[Category]:
        try:
            with self._db.session() as session:
                row = session.get(CategoryRow, category_id)
                return self._row_to_category(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get category: {e}")

    async def get_category_by_uuid(self, uuid: str) -> Optional[Category]:
        try:
            with self._db.session() as session:
                row = session.scalars(
                    select(CategoryRow).where(CategoryRow.uuid == uuid)
                ).first()
                return self._row_to_category(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get category: {e}")

    async def list_categories(self) -> list[Category]:
        try:
            with self._db.session() as session:
                rows = session.scalars(select(CategoryRow).order_by(CategoryRow.id)).all()
                return [self._row_to_category(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list categories: {e}")

    # -- transactions ---------------------------------------------------------

    async def put_transaction(self, transaction: Transaction) -> int:
        return self._put_many(
            TransactionRow, [transaction], self._transaction_to_row, "transaction"
        )[0]

    async def put_transactions(self, transactions: list[Transaction]) -> list[int]:
        return self._put_many(
            TransactionRow, transactions, self._transaction_to_row, "transaction"
        )

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        try:
            with self._db.session() as session:
                row = session.get(TransactionRow, transaction_id)
                return self._row_to_transaction(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def get_transaction_by_uuid(self, uuid: str) -> Optional[Transaction]:
        try:
            with self._db.session() as session:
                row = session.scalars(
                    select(TransactionRow).where(TransactionRow.uuid == uuid)
                ).first()
                return self._row_to_transaction(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get transaction: {e}")

    def _narrow(self, statement, filter: TransactionFilter):
        """Push the filter fields SQL can evaluate into the query."""
        if filter.range is not None:
            statement = statement.where(
                TransactionRow.transaction_date >= filter.range.start,
                TransactionRow.transaction_date < filter.range.end,
            )
        if filter.is_pending is True:
            statement = statement.where(TransactionRow.is_pending.is_(True))
        elif filter.is_pending is False:
            statement = statement.where(
                or_(
                    TransactionRow.is_pending.is_(False),
                    TransactionRow.is_pending.is_(None),
                )
            )
        if filter.uuids is not None:
            statement = statement.where(TransactionRow.uuid.in_(filter.uuids))
        if filter.accounts is not None:
            statement = statement.where(TransactionRow.account_id.in_(filter.accounts))
        if filter.categories is not None:
            statement = statement.where(TransactionRow.category_id.in_(filter.categories))
        return statement

    async def find_transactions(
        self,
        filter: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        filter = filter or TransactionFilter()
        try:
            with self._db.session() as session:
                statement = self._narrow(select(TransactionRow), filter).order_by(
                    TransactionRow.transaction_date.desc(),
                    TransactionRow.id.desc(),
                )
                transactions = [
                    self._row_to_transaction(row)
                    for row in session.scalars(statement).all()
                ]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to find transactions: {e}")

        # Derived fields (type) and keyword search
        return filter.apply(transactions)

    async def find_first_transaction(
        self,
        filter: Optional[TransactionFilter] = None,
    ) -> Optional[Transaction]:
        transactions = await self.find_transactions(filter)
        return transactions[0] if transactions else None

    async def delete_transaction(self, transaction_id: int) -> bool:
        try:
            with self._db.session() as session, session.begin():
                result = session.execute(
                    delete(TransactionRow).where(TransactionRow.id == transaction_id)
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    # -- backups --------------------------------------------------------------

    @staticmethod
    def _backup_to_row(entry: BackupEntry, row: BackupEntryRow) -> BackupEntryRow:
        row.file_path = entry.file_path
        row.created_date = entry.created_date
        return row

    async def put_backup_entry(self, entry: BackupEntry) -> int:
        return self._put_many(BackupEntryRow, [entry], self._backup_to_row, "backup entry")[0]

    async def list_backup_entries(self) -> list[BackupEntry]:
        try:
            with self._db.session() as session:
                rows = session.scalars(
                    select(BackupEntryRow).order_by(BackupEntryRow.created_date.desc())
                ).all()
                return [
                    BackupEntry(id=row.id, file_path=row.file_path, created_date=row.created_date)
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list backups: {e}")

    async def delete_backup_entry(self, entry_id: int) -> bool:
        try:
            with self._db.session() as session, session.begin():
                result = session.execute(
                    delete(BackupEntryRow).where(BackupEntryRow.id == entry_id)
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete backup entry: {e}")


# =============================================================================
# PREFERENCES
# =============================================================================

class SqlPreferencesStorage(PreferencesStorageInterface):
    """Key/value preferences in a single table."""

    def __init__(self, database: Optional[SqlDatabase] = None):
        self._db = database or SqlDatabase()

    async def get_value(self, key: str) -> Optional[str]:
        try:
            with self._db.session() as session:
                row = session.get(PreferenceRow, key)
                return row.value if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read preference {key}: {e}")

    async def set_value(self, key: str, value: str) -> None:
        try:
            with self._db.session() as session, session.begin():
                session.merge(PreferenceRow(key=key, value=value))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write preference {key}: {e}")

    async def delete_value(self, key: str) -> bool:
        try:
            with self._db.session() as session, session.begin():
                result = session.execute(delete(PreferenceRow).where(PreferenceRow.key == key))
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete preference {key}: {e}")


# =============================================================================
# AUDIT
# =============================================================================

class SqlAuditStorage(AuditStorageInterface):
    """
    SQLite implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, database: Optional[SqlDatabase] = None):
        self._db = database or SqlDatabase()

    @staticmethod
    def _event_to_row(event: AuditEvent) -> AuditEventRow:
        return AuditEventRow(
            event_id=str(event.event_id),
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=str(event.correlation_id) if event.correlation_id else None,
            description=event.description,
            details_json=json.dumps(event.details, default=str),
            error_message=event.error_message,
        )

    @staticmethod
    def _row_to_event(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
            description=row.description,
            details=json.loads(row.details_json) if row.details_json else {},
            error_message=row.error_message,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._db.session() as session, session.begin():
                session.add(self._event_to_row(event))
            return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to append audit event: {e}")

    def _query(self, statement) -> list[AuditEvent]:
        try:
            with self._db.session() as session:
                return [self._row_to_event(row) for row in session.scalars(statement).all()]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return self._query(
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == str(correlation_id))
            .order_by(AuditEventRow.timestamp)
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return self._query(
            select(AuditEventRow)
            .where(
                AuditEventRow.entity_type == entity_type,
                AuditEventRow.entity_id == entity_id,
            )
            .order_by(AuditEventRow.timestamp)
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return self._query(
            select(AuditEventRow)
            .order_by(AuditEventRow.timestamp.desc())
            .limit(limit)
        )
