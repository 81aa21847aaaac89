"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Traceability of balance-affecting operations
2. A record of transfer pairs that went out of sync
3. History the user can inspect

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (a failed audit write never aborts a ledger write)
- Supports correlation IDs to trace related events (both sides of a transfer)
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from flow_finance.config import get_settings
from flow_finance.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from flow_finance.services.storage import AuditStorageInterface


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide structured logging."""
    level = level or get_settings().app.log_level
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit table (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("flow_finance.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction_uuid: str,
        amount: str,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            transaction_uuid=transaction_uuid,
            amount=amount,
            currency=currency,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_uuid: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_uuid=transaction_uuid,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_uuid: str,
        related_uuid: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_uuid=transaction_uuid,
            related_uuid=related_uuid,
            correlation_id=correlation_id,
        ))

    async def log_transaction_confirmed(
        self,
        transaction_uuid: str,
        confirmed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_confirmed(
            transaction_uuid=transaction_uuid,
            confirmed=confirmed,
            correlation_id=correlation_id,
        ))

    async def log_transaction_duplicated(
        self,
        source_uuid: str,
        duplicate_uuid: str,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_duplicated(
            source_uuid=source_uuid,
            duplicate_uuid=duplicate_uuid,
        ))

    async def log_transfer_created(
        self,
        transfer_uuid: str,
        from_transaction_uuid: str,
        to_transaction_uuid: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log both sides of a new transfer under one event."""
        await self.log(AuditEventBuilder.transfer_created(
            transfer_uuid=transfer_uuid,
            from_transaction_uuid=from_transaction_uuid,
            to_transaction_uuid=to_transaction_uuid,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transfer_inconsistent(
        self,
        transaction_uuid: str,
        operation: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transfer whose counterpart couldn't be found or updated."""
        await self.log(AuditEventBuilder.transfer_inconsistent(
            transaction_uuid=transaction_uuid,
            operation=operation,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_balance_updated(
        self,
        account_uuid: str,
        delta: str,
        transaction_uuid: str,
    ) -> None:
        await self.log(AuditEventBuilder.balance_updated(
            account_uuid=account_uuid,
            delta=delta,
            transaction_uuid=transaction_uuid,
        ))

    async def log_account_order_updated(self, account_count: int) -> None:
        await self.log(AuditEventBuilder.account_order_updated(
            account_count=account_count,
        ))

    async def log_backup_deleted(self, file_path: str) -> None:
        await self.log(AuditEventBuilder.backup_deleted(file_path=file_path))

    async def log_exchange_rates_fetched(
        self,
        base_currency: str,
        source: str,
        rate_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.exchange_rates_fetched(
            base_currency=base_currency,
            source=source,
            rate_count=rate_count,
        ))

    async def log_exchange_rates_fetch_failed(
        self,
        base_currency: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.exchange_rates_fetch_failed(
            base_currency=base_currency,
            error_message=error_message,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use one per user action (e.g. creating a transfer) and pass it to
    every event that action produces.
    """
    return uuid4()
