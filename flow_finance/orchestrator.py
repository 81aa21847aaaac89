"""
Main Orchestrator for Flow Finance

This module ties together all the components:
storage -> preferences -> exchange rates -> actions -> analytics

DESIGN DECISION: The orchestrator owns startup order.
- The schema exists before anything reads the ledger
- Accounts get a stable sort order before they are listed
- Exchange rates are loaded last, and a network failure never blocks startup

Every component receives its collaborators explicitly, so tests can swap
any of them (e.g. a fake HTTP session for exchange rates).
"""

from typing import Any, Optional

import structlog

from flow_finance.actions import (
    AccountActions,
    BackupActions,
    TitleSuggestions,
    TransactionActions,
)
from flow_finance.analytics import AnalyticsEngine
from flow_finance.audit import AuditLogger
from flow_finance.config import ExchangeRatesSettings
from flow_finance.services.exchange_rates import ExchangeRatesService
from flow_finance.services.preferences import Preferences
from flow_finance.services.storage import (
    SqlAuditStorage,
    SqlDatabase,
    SqlLedgerStorage,
    SqlPreferencesStorage,
    StorageError,
)


logger = structlog.get_logger(__name__)


class FlowApp:
    """
    Application container.

    Holds one instance of every service and action class, wired together.
    """

    def __init__(
        self,
        database: SqlDatabase,
        ledger: SqlLedgerStorage,
        preferences: Preferences,
        exchange_rates: ExchangeRatesService,
        audit_logger: AuditLogger,
    ):
        self.database = database
        self.ledger = ledger
        self.preferences = preferences
        self.exchange_rates = exchange_rates
        self.audit_logger = audit_logger

        self.accounts = AccountActions(ledger, preferences, audit_logger)
        self.transactions = TransactionActions(ledger, audit_logger)
        self.suggestions = TitleSuggestions(ledger)
        self.backups = BackupActions(ledger, audit_logger)
        self.analytics = AnalyticsEngine(
            ledger,
            preferences,
            exchange_rates,
            self.accounts,
        )

    async def start(self) -> None:
        """
        Prepare the app for use.

        1. Create the schema
        2. Assign sort_order to accounts that don't have one yet
        3. Load and refresh exchange rates (failures are tolerated)
        """
        self.database.connect()

        await self.accounts.update_account_order_list(ignore_if_no_unset_value=True)

        try:
            await self.exchange_rates.init()
        except StorageError as e:
            logger.warning("exchange_rates_init_failed", error=str(e))
            await self.audit_logger.log_error(
                error_type="exchange_rates_init_failed",
                error_message=str(e),
            )

        logger.info("flow_app_started", database=self.database.url)

    def close(self) -> None:
        self.database.close()


def create_app_components(
    database_url: Optional[str] = None,
    http_session: Optional[Any] = None,
    exchange_rates_settings: Optional[ExchangeRatesSettings] = None,
) -> FlowApp:
    """
    Factory function to create all application components.

    Args:
        database_url: SQLAlchemy URL; defaults to the configured one.
                      Use "sqlite:///:memory:" for tests.
        http_session: requests-compatible session for exchange rates
        exchange_rates_settings: Override endpoint/retry configuration

    Returns:
        A wired FlowApp; call `await app.start()` before use
    """
    database = SqlDatabase(database_url)

    ledger = SqlLedgerStorage(database)
    audit_logger = AuditLogger(SqlAuditStorage(database))
    preferences = Preferences(SqlPreferencesStorage(database))

    exchange_rates = ExchangeRatesService(
        preferences,
        session=http_session,
        settings=exchange_rates_settings,
        audit_logger=audit_logger,
    )

    return FlowApp(
        database=database,
        ledger=ledger,
        preferences=preferences,
        exchange_rates=exchange_rates,
        audit_logger=audit_logger,
    )
