"""
Core Ledger Entities for Flow Finance

These models define the schemas for everything persisted in the ledger:
accounts, categories, transactions (with their extensions) and backups.

DESIGN DECISION: A transfer is NOT a special row type.
It is two ordinary transactions, one per account, each carrying a Transfer
extension that names the other side. This keeps per-account balances a
plain sum, at the cost of having to keep the two rows in sync.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flow_finance.models.money import Money, normalize_currency_code


# The nil UUID stands in for "no entity", e.g. uncategorized flow buckets
NIL_UUID = "00000000-0000-0000-0000-000000000000"

TRANSFER_KEY = "@flow/default-transfer"
GEO_KEY = "@flow/default-geo"


def new_uuid() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Derived classification of a transaction."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionSubtype(str, Enum):
    """Why a transaction was created, when it wasn't entered by hand."""
    UPDATE_BALANCE = "updateBalance"


# =============================================================================
# EXTENSIONS
# =============================================================================

class TransactionExtension(BaseModel):
    """
    Extra data attached to a transaction.

    `related_transaction_uuid` is the transaction the extension belongs to.
    Transfer is the exception: it points at the OTHER side of the pair.
    """

    uuid: str = Field(default_factory=new_uuid)
    related_transaction_uuid: Optional[str] = None


class Transfer(TransactionExtension):
    """Marks one side of a transfer pair."""

    key: Literal["@flow/default-transfer"] = TRANSFER_KEY
    from_account_uuid: str
    to_account_uuid: str


class Geo(TransactionExtension):
    """Where the transaction happened."""

    key: Literal["@flow/default-geo"] = GEO_KEY
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


AnyExtension = Annotated[Union[Transfer, Geo], Field(discriminator="key")]


# =============================================================================
# ACCOUNTS AND CATEGORIES
# =============================================================================

class Account(BaseModel):
    """
    A money container (wallet, bank account, card...).

    Balance is NOT stored - it is the sum of the account's transactions.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: int = Field(default=0, ge=0, description="Storage id, 0 until saved")
    uuid: str = Field(default_factory=new_uuid)
    name: str = Field(..., min_length=1, max_length=200)
    currency: str
    exclude_from_total_balance: bool = False
    archived: bool = False
    sort_order: int = Field(default=-1, description="-1 means unset")
    created_date: datetime = Field(default_factory=datetime.now)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)


class Category(BaseModel):
    """A spending/earning category."""
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: int = Field(default=0, ge=0)
    uuid: str = Field(default_factory=new_uuid)
    name: str = Field(..., min_length=1, max_length=200)
    created_date: datetime = Field(default_factory=datetime.now)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single ledger entry.

    Amount is signed: negative for money leaving the account.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: int = Field(default=0, ge=0)
    uuid: str = Field(default_factory=new_uuid)

    title: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)

    amount: Decimal
    currency: str

    transaction_date: datetime = Field(default_factory=datetime.now)
    created_date: datetime = Field(default_factory=datetime.now)

    is_pending: Optional[bool] = None
    subtype: Optional[TransactionSubtype] = None

    account_id: int = Field(..., ge=0)
    category_id: Optional[int] = None

    extensions: list[AnyExtension] = Field(default_factory=list)

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency_code(v)

    @property
    def transfer(self) -> Optional[Transfer]:
        for ext in self.extensions:
            if isinstance(ext, Transfer):
                return ext
        return None

    @property
    def is_transfer(self) -> bool:
        return self.transfer is not None

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)

    @property
    def type(self) -> TransactionType:
        if self.is_transfer:
            return TransactionType.TRANSFER
        if self.amount < 0:
            return TransactionType.EXPENSE
        return TransactionType.INCOME

    def add_extensions(self, extensions: list[TransactionExtension]) -> None:
        self.extensions = [*self.extensions, *extensions]


# =============================================================================
# BACKUPS
# =============================================================================

class BackupEntry(BaseModel):
    """A backup file known to the app."""

    id: int = Field(default=0, ge=0)
    file_path: str = Field(..., min_length=1)
    created_date: datetime = Field(default_factory=datetime.now)
