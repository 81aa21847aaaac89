"""
Integration tests for account and transaction actions.

Covers transfer pair consistency end to end: create, confirm, update,
duplicate and delete, plus balances, ordering and suggestions.
"""

import asyncio
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from pydantic import ValidationError

from flow_finance.actions import (
    AccountActions,
    TitleSuggestions,
    TransactionActions,
    TransferError,
    actives,
    inactives,
)
from flow_finance.models import (
    Account,
    AuditEventType,
    BackupEntry,
    Category,
    Geo,
    Transaction,
    TransactionFilter,
    TransactionSubtype,
    TransactionType,
    Transfer,
)
from flow_finance.services.preferences import Preferences
from flow_finance.services.storage import (
    DuplicateError,
    SqlLedgerStorage,
    SqlPreferencesStorage,
    StorageError,
)


async def started(make_app):
    app = make_app()
    await app.start()
    return app


async def add_account(app, name, currency="USD", **kwargs) -> Account:
    account = Account(name=name, currency=currency, **kwargs)
    await app.ledger.put_account(account)
    return account


async def add_category(app, name) -> Category:
    category = Category(name=name)
    await app.ledger.put_category(category)
    return category


class BrokenLedger(SqlLedgerStorage):
    """Ledger whose transaction reads and writes always fail."""

    async def put_transaction(self, transaction):
        raise StorageError("disk full")

    async def find_transactions(self, filter=None):
        raise StorageError("disk full")


class BrokenPreferencesStorage(SqlPreferencesStorage):
    """Preferences store that can read but not write."""

    async def set_value(self, key, value):
        raise StorageError("read-only")


class TestCreateTransaction:
    """Tests for AccountActions.create_and_save_transaction."""

    def test_creates_in_account_currency(self, make_app):
        """Test the transaction inherits the account currency."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet", "EUR")
            transaction_id = await app.accounts.create_and_save_transaction(
                wallet, Decimal("-4.50"), title="Coffee"
            )
            return await app.ledger.get_transaction(transaction_id)

        t = asyncio.run(run())
        assert t.currency == "EUR"
        assert t.amount == Decimal("-4.50")
        assert t.is_pending is False
        assert t.type == TransactionType.EXPENSE

    def test_extension_rules(self, make_app):
        """Test unattached extensions are attached and foreign ones dropped."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            transaction_id = await app.accounts.create_and_save_transaction(
                wallet,
                -1,
                uuid_override="11111111-1111-1111-1111-111111111111",
                extensions=[
                    Geo(latitude=1, longitude=1),
                    Geo(latitude=2, longitude=2, related_transaction_uuid="someone-else"),
                    Geo(
                        latitude=3,
                        longitude=3,
                        related_transaction_uuid="11111111-1111-1111-1111-111111111111",
                    ),
                ],
            )
            return await app.ledger.get_transaction(transaction_id)

        t = asyncio.run(run())
        assert t.uuid == "11111111-1111-1111-1111-111111111111"
        assert [ext.latitude for ext in t.extensions] == [1, 3]
        assert all(ext.related_transaction_uuid == t.uuid for ext in t.extensions)

    def test_unsaved_account_rejected(self, make_app):
        """Test transactions need a stored account."""
        async def run():
            app = await started(make_app)
            await app.accounts.create_and_save_transaction(
                Account(name="Ghost", currency="USD"), 1
            )

        with pytest.raises(ValueError):
            asyncio.run(run())

    def test_updates_frecency(self, make_app):
        """Test account and category usage is recorded."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            food = await add_category(app, "Food")
            await app.accounts.create_and_save_transaction(wallet, -1, category=food)
            await app.accounts.create_and_save_transaction(wallet, -1)
            return (
                await app.preferences.get_frecency_data("account", wallet.uuid),
                await app.preferences.get_frecency_data("category", food.uuid),
            )

        account_data, category_data = asyncio.run(run())
        assert account_data.use_count == 2
        assert category_data.use_count == 1

    def test_frecency_failure_still_saves(self, make_app):
        """Test a failing preferences store doesn't lose the transaction."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            actions = AccountActions(
                app.ledger,
                Preferences(BrokenPreferencesStorage(app.database)),
                app.audit_logger,
            )
            transaction_id = await actions.create_and_save_transaction(wallet, -3, title="Tea")
            return transaction_id, await app.ledger.get_transaction(transaction_id)

        transaction_id, t = asyncio.run(run())
        assert transaction_id > 0
        assert t.title == "Tea"


class TestBalances:
    """Tests for balance calculation."""

    def test_balance_ignores_pending(self, make_app):
        """Test pending transactions don't count yet."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            await app.accounts.create_and_save_transaction(wallet, 100)
            await app.accounts.create_and_save_transaction(wallet, Decimal("-30.25"))
            await app.accounts.create_and_save_transaction(wallet, -50, is_pending=True)
            return await app.accounts.balance(wallet)

        balance = asyncio.run(run())
        assert balance.amount == Decimal("69.75")
        assert balance.currency == "USD"

    def test_balance_at(self, make_app):
        """Test historical balance includes the boundary instant."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            start = datetime(2024, 5, 1)
            await app.accounts.create_and_save_transaction(wallet, 10, transaction_date=start)
            await app.accounts.create_and_save_transaction(
                wallet, 5, transaction_date=start + timedelta(days=1)
            )
            return (
                await app.accounts.balance_at(wallet, start),
                await app.accounts.balance_at(wallet, start - timedelta(seconds=1)),
            )

        at_start, before = asyncio.run(run())
        assert at_start.amount == Decimal("10")
        assert before.amount == Decimal("0")

    def test_update_balance_and_save(self, make_app):
        """Test a correction transaction brings the balance to the target."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            await app.accounts.create_and_save_transaction(wallet, 40)
            correction_id = await app.accounts.update_balance_and_save(
                wallet, Decimal("100"), title="Recount"
            )
            return (
                await app.ledger.get_transaction(correction_id),
                await app.accounts.balance(wallet),
            )

        correction, balance = asyncio.run(run())
        assert correction.amount == Decimal("60")
        assert correction.subtype == TransactionSubtype.UPDATE_BALANCE
        assert balance.amount == Decimal("100")

    def test_update_balance_at_date(self, make_app):
        """Test a dated correction uses the balance at that date."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            past = datetime(2024, 1, 1)
            await app.accounts.create_and_save_transaction(wallet, 40, transaction_date=past)
            await app.accounts.create_and_save_transaction(wallet, 1000)
            correction_id = await app.accounts.update_balance_and_save(
                wallet, 50, transaction_date=past + timedelta(hours=1)
            )
            return await app.ledger.get_transaction(correction_id)

        correction = asyncio.run(run())
        assert correction.amount == Decimal("10")


class TestTransfers:
    """Tests for creating transfer pairs."""

    def test_transfer_creates_linked_pair(self, make_app):
        """Test both sides reference each other."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            from_id, to_id = await app.accounts.transfer_to(wallet, bank, Decimal("25"))
            return (
                wallet,
                bank,
                await app.ledger.get_transaction(from_id),
                await app.ledger.get_transaction(to_id),
                await app.accounts.balance(wallet),
                await app.accounts.balance(bank),
            )

        wallet, bank, outgoing, incoming, wallet_balance, bank_balance = asyncio.run(run())

        assert outgoing.amount == Decimal("-25")
        assert incoming.amount == Decimal("25")
        assert outgoing.account_id == wallet.id
        assert incoming.account_id == bank.id
        assert outgoing.transfer.related_transaction_uuid == incoming.uuid
        assert incoming.transfer.related_transaction_uuid == outgoing.uuid
        assert outgoing.transfer.uuid == incoming.transfer.uuid
        assert outgoing.transfer.from_account_uuid == wallet.uuid
        assert outgoing.transfer.to_account_uuid == bank.uuid
        assert outgoing.title == "Transfer from Wallet to Bank"
        assert wallet_balance.amount == Decimal("-25")
        assert bank_balance.amount == Decimal("25")

    def test_negative_amount_reverses_direction(self, make_app):
        """Test money flows from the target when the amount is negative."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            from_id, _ = await app.accounts.transfer_to(wallet, bank, -10)
            return bank, await app.ledger.get_transaction(from_id)

        bank, outgoing = asyncio.run(run())
        assert outgoing.account_id == bank.id
        assert outgoing.amount == Decimal("-10")
        assert outgoing.title == "Transfer from Bank to Wallet"

    def test_zero_amount_rejected(self, make_app):
        """Test a zero transfer is an error."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            await app.accounts.transfer_to(wallet, bank, 0)

        with pytest.raises(TransferError):
            asyncio.run(run())

    def test_same_account_rejected(self, make_app):
        """Test transferring to yourself is an error."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            await app.accounts.transfer_to(wallet, wallet, 5)

        with pytest.raises(TransferError):
            asyncio.run(run())

    def test_caller_extensions_copied_to_both_sides(self, make_app):
        """Test extensions land on each side, pointing at that side."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            from_id, to_id = await app.accounts.transfer_to(
                wallet,
                bank,
                5,
                extensions=[
                    Geo(latitude=10, longitude=20),
                    Transfer(from_account_uuid="x", to_account_uuid="y"),
                ],
            )
            return (
                await app.ledger.get_transaction(from_id),
                await app.ledger.get_transaction(to_id),
            )

        outgoing, incoming = asyncio.run(run())
        for side in (outgoing, incoming):
            geos = [ext for ext in side.extensions if isinstance(ext, Geo)]
            transfers = [ext for ext in side.extensions if isinstance(ext, Transfer)]
            assert len(geos) == 1
            assert geos[0].related_transaction_uuid == side.uuid
            assert len(transfers) == 1
            assert transfers[0].from_account_uuid != "x"

    def test_transfer_is_audited(self, make_app):
        """Test a transfer produces correlated audit events."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            await app.accounts.transfer_to(wallet, bank, 5)
            recent = await app.audit_logger._storage.get_recent_events()
            transfer_event = next(
                e for e in recent if e.event_type == AuditEventType.TRANSFER_CREATED
            )
            return await app.audit_logger._storage.get_events_by_correlation_id(
                transfer_event.correlation_id
            )

        events = asyncio.run(run())
        types = sorted(e.event_type.value for e in events)
        assert types == ["transaction_created", "transaction_created", "transfer_created"]

    def test_empty_title_kept(self, make_app):
        """Test an explicit empty title isn't replaced by the default."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            from_id, to_id = await app.accounts.transfer_to(wallet, bank, 5, title="")
            return (
                await app.ledger.get_transaction(from_id),
                await app.ledger.get_transaction(to_id),
            )

        outgoing, incoming = asyncio.run(run())
        assert outgoing.title == ""
        assert incoming.title == ""

    def test_unsaved_target_writes_nothing(self, make_app):
        """Test an unsaved target is rejected before the source is touched."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            with pytest.raises(ValueError):
                await app.accounts.transfer_to(wallet, Account(name="Ghost", currency="USD"), 5)
            return await app.ledger.find_transactions(TransactionFilter(accounts=[wallet.id]))

        assert asyncio.run(run()) == []

    def test_failed_side_rolls_back_pair(self, make_app, monkeypatch):
        """Test a failing incoming side leaves no orphaned outgoing side."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            other = await add_account(app, "Other")
            existing_id = await app.accounts.create_and_save_transaction(other, 1)
            existing = await app.ledger.get_transaction(existing_id)

            uuids = iter(["22222222-2222-2222-2222-222222222222", existing.uuid])
            monkeypatch.setattr("flow_finance.actions.accounts.new_uuid", lambda: next(uuids))

            with pytest.raises(DuplicateError):
                await app.accounts.transfer_to(wallet, bank, 5)

            return (
                await app.ledger.find_transactions(TransactionFilter(accounts=[wallet.id])),
                await app.ledger.find_transactions(TransactionFilter(accounts=[bank.id])),
                await app.accounts.balance(wallet),
            )

        wallet_rows, bank_rows, wallet_balance = asyncio.run(run())
        assert wallet_rows == []
        assert bank_rows == []
        assert wallet_balance.amount == 0


class TestTransferConsistency:
    """Tests for keeping both sides of a transfer in sync."""

    async def _pair(self, app, pending=None):
        wallet = await add_account(app, "Wallet")
        bank = await add_account(app, "Bank")
        from_id, to_id = await app.accounts.transfer_to(wallet, bank, 25, is_pending=pending)
        return (
            await app.ledger.get_transaction(from_id),
            await app.ledger.get_transaction(to_id),
        )

    def test_find_original(self, make_app):
        """Test the outgoing side is the original."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app)
            return (
                outgoing,
                await app.transactions.find_transfer_original_or_this(incoming),
                await app.transactions.find_transfer_original_or_this(outgoing),
            )

        outgoing, from_incoming, from_outgoing = asyncio.run(run())
        assert from_incoming.uuid == outgoing.uuid
        assert from_outgoing.uuid == outgoing.uuid

    def test_find_original_falls_back_to_this(self, make_app):
        """Test a missing counterpart returns the transaction itself."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app)
            await app.ledger.delete_transaction(outgoing.id)
            return incoming, await app.transactions.find_transfer_original_or_this(incoming)

        incoming, found = asyncio.run(run())
        assert found.uuid == incoming.uuid

    def test_delete_removes_both_sides(self, make_app):
        """Test deleting either side removes the pair."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app)
            removed = await app.transactions.delete(incoming)
            return removed, await app.ledger.find_transactions()

        removed, remaining = asyncio.run(run())
        assert removed is True
        assert remaining == []

    def test_delete_with_missing_counterpart(self, make_app):
        """Test the remaining side is still deleted, and the gap is audited."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app)
            await app.ledger.delete_transaction(incoming.id)
            removed = await app.transactions.delete(outgoing)
            events = await app.audit_logger._storage.get_recent_events()
            return removed, await app.ledger.find_transactions(), events

        removed, remaining, events = asyncio.run(run())
        assert removed is True
        assert remaining == []
        assert any(e.event_type == AuditEventType.TRANSFER_INCONSISTENT for e in events)

    def test_confirm_updates_both_sides(self, make_app):
        """Test confirming a pending transfer settles both sides."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app, pending=True)
            before = datetime.now()
            ok = await app.transactions.confirm(incoming)
            return (
                ok,
                before,
                await app.ledger.get_transaction(outgoing.id),
                await app.ledger.get_transaction(incoming.id),
            )

        ok, before, outgoing, incoming = asyncio.run(run())
        assert ok is True
        assert outgoing.is_pending is False
        assert incoming.is_pending is False
        assert outgoing.transaction_date >= before
        assert incoming.transaction_date >= before

    def test_unconfirm_keeps_dates(self, make_app):
        """Test marking as pending doesn't move the date."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app)
            ok = await app.transactions.confirm(outgoing, confirm=False)
            return ok, outgoing, incoming, await app.ledger.get_transaction(incoming.id)

        ok, outgoing, before, incoming = asyncio.run(run())
        assert ok is True
        assert outgoing.is_pending is True
        assert incoming.is_pending is True
        assert incoming.transaction_date == before.transaction_date

    def test_update_mirrors_shared_fields(self, make_app):
        """Test edits are copied to the counterpart with the amount negated."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app)
            await app.transactions.update(
                outgoing,
                title="Savings",
                amount=Decimal("-40"),
                transaction_date=datetime(2024, 5, 1, 9),
            )
            return await app.ledger.get_transaction(incoming.id)

        incoming = asyncio.run(run())
        assert incoming.title == "Savings"
        assert incoming.amount == Decimal("40")
        assert incoming.transaction_date == datetime(2024, 5, 1, 9)

    def test_update_keeps_transfer_direction(self, make_app):
        """Test a positive amount on the outgoing side doesn't flip the transfer."""
        async def run():
            app = await started(make_app)
            outgoing, incoming = await self._pair(app)
            await app.transactions.update(outgoing, amount=Decimal("30"))
            wallet = await app.ledger.get_account(outgoing.account_id)
            bank = await app.ledger.get_account(incoming.account_id)
            return (
                await app.ledger.get_transaction(outgoing.id),
                await app.ledger.get_transaction(incoming.id),
                await app.accounts.balance(wallet),
                await app.accounts.balance(bank),
            )

        outgoing, incoming, wallet_balance, bank_balance = asyncio.run(run())
        assert outgoing.amount == Decimal("-30")
        assert incoming.amount == Decimal("30")
        assert wallet_balance.amount == Decimal("-30")
        assert bank_balance.amount == Decimal("30")

    def test_invalid_update_changes_nothing(self, make_app):
        """Test a bad value leaves earlier fields in the call unapplied."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            transaction_id = await app.accounts.create_and_save_transaction(wallet, -5, title="Tea")
            t = await app.ledger.get_transaction(transaction_id)
            with pytest.raises(ValidationError):
                await app.transactions.update(t, title="Green tea", amount="lots")
            return t, await app.ledger.get_transaction(transaction_id)

        t, stored = asyncio.run(run())
        assert t.title == "Tea"
        assert t.amount == Decimal("-5")
        assert stored.title == "Tea"

    def test_update_rejects_account_change(self, make_app):
        """Test a transfer side can't be moved to another account."""
        async def run():
            app = await started(make_app)
            outgoing, _ = await self._pair(app)
            other = await add_account(app, "Other")
            await app.transactions.update(outgoing, account_id=other.id)

        with pytest.raises(TransferError):
            asyncio.run(run())

    def test_update_rejects_unknown_fields(self, make_app):
        """Test only known fields can be updated."""
        async def run():
            app = await started(make_app)
            outgoing, _ = await self._pair(app)
            await app.transactions.update(outgoing, uuid="new")

        with pytest.raises(ValueError):
            asyncio.run(run())

    def test_update_plain_transaction(self, make_app):
        """Test non-transfers are simply saved."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            transaction_id = await app.accounts.create_and_save_transaction(wallet, -5, title="Tea")
            t = await app.ledger.get_transaction(transaction_id)
            await app.transactions.update(t, title="Green tea", amount=-6)
            return await app.ledger.get_transaction(transaction_id)

        t = asyncio.run(run())
        assert t.title == "Green tea"
        assert t.amount == Decimal("-6")

    def test_duplicate(self, make_app):
        """Test a duplicate gets a new identity and its own extensions."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            transaction_id = await app.accounts.create_and_save_transaction(
                wallet, -5, title="Tea", extensions=[Geo(latitude=1, longitude=2)]
            )
            original = await app.ledger.get_transaction(transaction_id)
            copy_id = await app.transactions.duplicate(original)
            return original, await app.ledger.get_transaction(copy_id)

        original, copy = asyncio.run(run())
        assert copy.id != original.id
        assert copy.uuid != original.uuid
        assert copy.title == "Tea"
        assert copy.amount == original.amount
        assert copy.extensions[0].related_transaction_uuid == copy.uuid
        assert copy.extensions[0].uuid != original.extensions[0].uuid

    def test_duplicate_transfer_rejected(self, make_app):
        """Test transfers can't be duplicated."""
        async def run():
            app = await started(make_app)
            outgoing, _ = await self._pair(app)
            await app.transactions.duplicate(outgoing)

        with pytest.raises(TransferError):
            asyncio.run(run())


class TestAccountListing:
    """Tests for account listing, names and ordering."""

    def test_get_accounts_by_frecency(self, make_app):
        """Test most used accounts come first and archived ones are hidden."""
        async def run():
            app = await started(make_app)
            rarely = await add_account(app, "Rarely")
            often = await add_account(app, "Often")
            await add_account(app, "Never")
            await add_account(app, "Old", archived=True)

            await app.accounts.create_and_save_transaction(rarely, -1)
            for _ in range(3):
                await app.accounts.create_and_save_transaction(often, -1)

            return (
                await app.accounts.get_accounts(),
                await app.accounts.get_accounts(sort_by_frecency=False),
            )

        ranked, unranked = asyncio.run(run())
        assert [a.name for a in ranked] == ["Often", "Rarely", "Never"]
        assert [a.name for a in unranked] == ["Rarely", "Often", "Never"]

    def test_get_categories_by_frecency(self, make_app):
        """Test categories are ranked too."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            await add_category(app, "Food")
            fun = await add_category(app, "Fun")
            await app.accounts.create_and_save_transaction(wallet, -1, category=fun)
            return await app.accounts.get_categories()

        assert [c.name for c in asyncio.run(run())] == ["Fun", "Food"]

    def test_actives_and_inactives(self):
        """Test archived split."""
        accounts = [
            Account(name="A", currency="USD"),
            Account(name="B", currency="USD", archived=True),
        ]
        assert [a.name for a in actives(accounts)] == ["A"]
        assert [a.name for a in inactives(accounts)] == ["B"]

    def test_name_by_uuid(self, make_app):
        """Test lookups, and the placeholder for unknown accounts."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            return (
                await app.accounts.name_by_uuid(wallet.uuid),
                await app.accounts.name_by_uuid("missing"),
                await app.accounts.name_by_uuid(None),
            )

        known, unknown, empty = asyncio.run(run())
        assert known == "Wallet"
        assert unknown == "???"
        assert empty == "???"

    def test_save_account_refreshes_name(self, make_app):
        """Test a renamed account isn't served from the name cache."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            before = await app.accounts.name_by_uuid(wallet.uuid)
            wallet.name = "Pocket"
            await app.accounts.save_account(wallet)
            return before, await app.accounts.name_by_uuid(wallet.uuid)

        assert asyncio.run(run()) == ("Wallet", "Pocket")

    def test_update_account_order_list(self, make_app):
        """Test positions are persisted as sort_order."""
        async def run():
            app = await started(make_app)
            a = await add_account(app, "A")
            b = await add_account(app, "B")
            await app.accounts.update_account_order_list([b, a])
            return await app.ledger.list_accounts()

        accounts = asyncio.run(run())
        assert [(a.name, a.sort_order) for a in accounts] == [("B", 0), ("A", 1)]

    def test_order_list_skipped_when_all_set(self, make_app):
        """Test the ignore flag leaves fully ordered lists alone."""
        async def run():
            app = await started(make_app)
            a = await add_account(app, "A", sort_order=5)
            await app.accounts.update_account_order_list(ignore_if_no_unset_value=True)
            return await app.ledger.get_account(a.id)

        assert asyncio.run(run()).sort_order == 5

    def test_start_assigns_missing_sort_order(self, make_app):
        """Test startup orders accounts that were never ordered."""
        async def run():
            app = make_app()
            app.database.connect()
            await add_account(app, "A")
            await add_account(app, "B")
            await app.start()
            return await app.ledger.list_accounts()

        assert [a.sort_order for a in asyncio.run(run())] == [0, 1]


class TestTitleSuggestions:
    """Tests for title suggestions against stored transactions."""

    def test_suggestions_ranked_and_merged(self, make_app):
        """Test repeated titles outrank single ones."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            for title in ["Coffee", "Coffee", "Coffee", "Coffee beans", "Rent", "  "]:
                await app.accounts.create_and_save_transaction(wallet, -1, title=title)

            return (
                await app.suggestions.transaction_title_suggestions("cof"),
                await app.suggestions.transaction_title_suggestions("cof", limit=1),
            )

        suggestions, limited = asyncio.run(run())
        assert [s.title for s in suggestions] == ["Coffee", "Coffee beans"]
        assert suggestions[0].relevancy > suggestions[1].relevancy
        assert [s.title for s in limited] == ["Coffee"]

    def test_transfers_only_for_transfer_type(self, make_app):
        """Test transfer titles are hidden unless suggesting a transfer."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            bank = await add_account(app, "Bank")
            await app.accounts.transfer_to(wallet, bank, 5, title="Savings")
            return (
                await app.suggestions.transaction_title_suggestions(),
                await app.suggestions.transaction_title_suggestions(type=TransactionType.TRANSFER),
            )

        default, for_transfer = asyncio.run(run())
        assert default == []
        assert [s.title for s in for_transfer] == ["Savings"]


class TestStorageFailures:
    """Tests for actions when the ledger can't be read or written."""

    def test_confirm_reports_failure(self, make_app):
        """Test confirm returns False instead of raising."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            t = Transaction(amount=-5, currency="USD", account_id=wallet.id, is_pending=True)
            actions = TransactionActions(BrokenLedger(app.database), app.audit_logger)
            return await actions.confirm(t)

        assert asyncio.run(run()) is False

    def test_suggestions_empty_on_failure(self, make_app):
        """Test a failed lookup yields no suggestions."""
        async def run():
            app = await started(make_app)
            wallet = await add_account(app, "Wallet")
            await app.accounts.create_and_save_transaction(wallet, -1, title="Coffee")
            return await TitleSuggestions(BrokenLedger(app.database)).transaction_title_suggestions("cof")

        assert asyncio.run(run()) == []


class TestBackups:
    """Tests for backup deletion."""

    def test_delete_backup_removes_file_and_entry(self, make_app, tmp_path):
        """Test file and record are both removed."""
        backup_file = tmp_path / "backup.zip"
        backup_file.write_bytes(b"data")

        async def run():
            app = await started(make_app)
            entry = BackupEntry(file_path=str(backup_file))
            await app.ledger.put_backup_entry(entry)
            removed = await app.backups.delete_backup(entry)
            return removed, await app.backups.list_backups()

        removed, remaining = asyncio.run(run())
        assert removed is True
        assert remaining == []
        assert not backup_file.exists()

    def test_delete_backup_with_missing_file(self, make_app, tmp_path):
        """Test a missing file doesn't block removing the record."""
        async def run():
            app = await started(make_app)
            entry = BackupEntry(file_path=str(tmp_path / "gone.zip"))
            await app.ledger.put_backup_entry(entry)
            return await app.backups.delete_backup(entry)

        assert asyncio.run(run()) is True

    def test_delete_unknown_backup(self, make_app, tmp_path):
        """Test deleting an unknown record reports failure."""
        async def run():
            app = await started(make_app)
            return await app.backups.delete_backup(
                BackupEntry(id=999, file_path=str(tmp_path / "nope.zip"))
            )

        assert asyncio.run(run()) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
