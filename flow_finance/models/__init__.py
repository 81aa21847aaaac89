"""
Data Models Package

This package contains all Pydantic models used in Flow Finance.
All data flowing through the ledger must conform to these schemas.
"""

from flow_finance.models.entities import (
    NIL_UUID,
    Account,
    AnyExtension,
    BackupEntry,
    Category,
    Geo,
    Transaction,
    TransactionExtension,
    TransactionSubtype,
    TransactionType,
    Transfer,
)
from flow_finance.models.filters import (
    TransactionFilter,
    TransactionSearchData,
    TransactionSearchMode,
)
from flow_finance.models.frecency import FrecencyData, FrecencyGroup
from flow_finance.models.money import (
    UNKNOWN_CURRENCY,
    ExchangeRates,
    ExchangeRatesSet,
    FlowAnalytics,
    Money,
    MoneyError,
    MoneyFlow,
    is_currency_code_valid,
)
from flow_finance.models.time_range import (
    CustomTimeRange,
    DayTimeRange,
    MonthTimeRange,
    TimeRange,
    YearTimeRange,
)
from flow_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entities
    "NIL_UUID",
    "Account",
    "AnyExtension",
    "BackupEntry",
    "Category",
    "Geo",
    "Transaction",
    "TransactionExtension",
    "TransactionSubtype",
    "TransactionType",
    "Transfer",
    # Filters
    "TransactionFilter",
    "TransactionSearchData",
    "TransactionSearchMode",
    # Frecency
    "FrecencyData",
    "FrecencyGroup",
    # Money
    "UNKNOWN_CURRENCY",
    "ExchangeRates",
    "ExchangeRatesSet",
    "FlowAnalytics",
    "Money",
    "MoneyError",
    "MoneyFlow",
    "is_currency_code_valid",
    # Time ranges
    "CustomTimeRange",
    "DayTimeRange",
    "MonthTimeRange",
    "TimeRange",
    "YearTimeRange",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
