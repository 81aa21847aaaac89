"""
Audit Models for Flow Finance

Every mutation of the ledger is logged for audit purposes.
This provides:
1. Traceability of all balance-affecting operations
2. Debugging information when a transfer pair goes out of sync
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_CONFIRMED = "transaction_confirmed"
    TRANSACTION_DUPLICATED = "transaction_duplicated"

    # Transfers
    TRANSFER_CREATED = "transfer_created"
    TRANSFER_INCONSISTENT = "transfer_inconsistent"

    # Accounts
    BALANCE_UPDATED = "balance_updated"
    ACCOUNT_ORDER_UPDATED = "account_order_updated"

    # Backups
    BACKUP_DELETED = "backup_deleted"

    # Exchange rates
    EXCHANGE_RATES_FETCHED = "exchange_rates_fetched"
    EXCHANGE_RATES_FETCH_FAILED = "exchange_rates_fetch_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="uuid of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., both sides of a transfer)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(uuid, amount, currency)
        event = AuditEventBuilder.transfer_created(from_uuid, to_uuid, ...)
    """

    @staticmethod
    def transaction_created(
        transaction_uuid: str,
        amount: str,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_uuid,
            correlation_id=correlation_id,
            description=f"Transaction created: {amount} {currency}",
            details={
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def transaction_updated(
        transaction_uuid: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_uuid,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
        )

    @staticmethod
    def transaction_deleted(
        transaction_uuid: str,
        related_uuid: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_uuid,
            correlation_id=correlation_id,
            description="Transaction deleted",
            details={"related_transaction_uuid": related_uuid},
        )

    @staticmethod
    def transaction_confirmed(
        transaction_uuid: str,
        confirmed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CONFIRMED,
            entity_type="transaction",
            entity_id=transaction_uuid,
            correlation_id=correlation_id,
            description=(
                "Transaction confirmed" if confirmed
                else "Transaction marked as pending"
            ),
            details={"confirmed": confirmed},
        )

    @staticmethod
    def transaction_duplicated(
        source_uuid: str,
        duplicate_uuid: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DUPLICATED,
            entity_type="transaction",
            entity_id=duplicate_uuid,
            correlation_id=correlation_id,
            description="Transaction duplicated",
            details={"source_uuid": source_uuid},
        )

    @staticmethod
    def transfer_created(
        transfer_uuid: str,
        from_transaction_uuid: str,
        to_transaction_uuid: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_CREATED,
            entity_type="transfer",
            entity_id=transfer_uuid,
            correlation_id=correlation_id,
            description=f"Transfer created: {amount}",
            details={
                "from_transaction_uuid": from_transaction_uuid,
                "to_transaction_uuid": to_transaction_uuid,
                "amount": amount,
            },
        )

    @staticmethod
    def transfer_inconsistent(
        transaction_uuid: str,
        operation: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_INCONSISTENT,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_uuid,
            correlation_id=correlation_id,
            description=f"Transfer pair out of sync during {operation}",
            details={"operation": operation},
            error_message=reason,
        )

    @staticmethod
    def balance_updated(
        account_uuid: str,
        delta: str,
        transaction_uuid: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATED,
            entity_type="account",
            entity_id=account_uuid,
            correlation_id=correlation_id,
            description=f"Balance adjusted by {delta}",
            details={
                "delta": delta,
                "transaction_uuid": transaction_uuid,
            },
        )

    @staticmethod
    def account_order_updated(
        account_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_ORDER_UPDATED,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Sort order assigned to {account_count} accounts",
            details={"account_count": account_count},
        )

    @staticmethod
    def backup_deleted(
        file_path: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_DELETED,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup deleted",
            details={"file_path": file_path},
        )

    @staticmethod
    def exchange_rates_fetched(
        base_currency: str,
        source: str,
        rate_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXCHANGE_RATES_FETCHED,
            entity_type="exchange_rates",
            description=f"Fetched {rate_count} {base_currency} rates from {source}",
            details={
                "base_currency": base_currency,
                "source": source,
                "rate_count": rate_count,
            },
        )

    @staticmethod
    def exchange_rates_fetch_failed(
        base_currency: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXCHANGE_RATES_FETCH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="exchange_rates",
            description=f"Failed to fetch {base_currency} rates",
            details={"base_currency": base_currency},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
