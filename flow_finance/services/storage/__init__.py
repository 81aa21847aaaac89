"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements embedded SQLite as the backend, but designed to be swappable.
"""

from flow_finance.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    PreferencesStorageInterface,
    StorageError,
)
from flow_finance.services.storage.sql import (
    SqlAuditStorage,
    SqlDatabase,
    SqlLedgerStorage,
    SqlPreferencesStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "PreferencesStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # SQLite implementation
    "SqlAuditStorage",
    "SqlDatabase",
    "SqlLedgerStorage",
    "SqlPreferencesStorage",
]
