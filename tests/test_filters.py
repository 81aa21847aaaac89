"""
Tests for transaction filters, keyword search and frecency ranking.
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from flow_finance.models import (
    DayTimeRange,
    FrecencyData,
    FrecencyGroup,
    Transaction,
    TransactionFilter,
    TransactionSearchData,
    TransactionSearchMode,
    TransactionType,
    Transfer,
)


def make_transaction(title, amount="-10", description=None, **kwargs) -> Transaction:
    return Transaction(
        title=title,
        description=description,
        amount=Decimal(amount),
        currency="USD",
        account_id=kwargs.pop("account_id", 1),
        **kwargs,
    )


class TestSearchData:
    """Tests for keyword search modes."""

    def test_blank_keyword_matches_everything(self):
        """Test whitespace-only keywords don't filter."""
        data = TransactionSearchData(keyword="   ")
        assert data.normalized_keyword is None
        assert data.predicate(make_transaction("anything"))

    def test_exact_mode(self):
        """Test exact matching ignores case and surrounding spaces."""
        data = TransactionSearchData(keyword="Weekly Groceries", mode=TransactionSearchMode.EXACT)
        assert data.predicate(make_transaction("  weekly groceries "))
        assert not data.predicate(make_transaction("weekly groceries run"))

    def test_substring_mode(self):
        """Test containment."""
        data = TransactionSearchData(keyword="groc", mode=TransactionSearchMode.SUBSTRING)
        assert data.predicate(make_transaction("Weekly groceries"))
        assert not data.predicate(make_transaction("Rent"))

    def test_smart_mode_tolerates_typos(self):
        """Test fuzzy matching catches a misspelled keyword."""
        data = TransactionSearchData(keyword="groceriez")
        assert data.predicate(make_transaction("Weekly groceries"))
        assert not data.predicate(make_transaction("Rent"))

    def test_substring_mode_rejects_typos(self):
        """Test substring mode is strict."""
        data = TransactionSearchData(keyword="groceriez", mode=TransactionSearchMode.SUBSTRING)
        assert not data.predicate(make_transaction("Weekly groceries"))

    def test_description_is_searched(self):
        """Test description matching can be turned off."""
        t = make_transaction("Lunch", description="with the team")
        assert TransactionSearchData(keyword="team").predicate(t)
        assert not TransactionSearchData(keyword="team", include_description=False).predicate(t)

    def test_untitled_transactions_do_not_match(self):
        """Test a missing title is not an error."""
        assert not TransactionSearchData(keyword="x").predicate(make_transaction(None))

    def test_copy_with_optional(self):
        """Test only given fields are replaced."""
        data = TransactionSearchData(keyword="coffee", include_description=False)
        copy = data.copy_with_optional(mode=TransactionSearchMode.SUBSTRING)

        assert copy.mode == TransactionSearchMode.SUBSTRING
        assert copy.keyword == "coffee"
        assert copy.include_description is False
        assert data.mode == TransactionSearchMode.SMART

    def test_apply_keeps_order(self):
        """Test apply filters without reordering."""
        ts = [make_transaction("Coffee"), make_transaction("Rent"), make_transaction("Coffee beans")]
        result = TransactionSearchData(keyword="coffee").apply(ts)
        assert [t.title for t in result] == ["Coffee", "Coffee beans"]


class TestTransactionFilter:
    """Tests for TransactionFilter predicates."""

    def test_empty_filter_matches_all(self):
        """Test an empty filter has no predicates."""
        f = TransactionFilter()
        assert f.predicates() == []
        assert f.matches(make_transaction("x"))

    def test_pending_false_matches_unset(self):
        """Test an unset pending flag counts as settled."""
        f = TransactionFilter(is_pending=False)
        assert f.matches(make_transaction("a", is_pending=None))
        assert f.matches(make_transaction("b", is_pending=False))
        assert not f.matches(make_transaction("c", is_pending=True))

    def test_pending_true(self):
        """Test only explicitly pending records match."""
        f = TransactionFilter(is_pending=True)
        assert f.matches(make_transaction("a", is_pending=True))
        assert not f.matches(make_transaction("b", is_pending=None))

    def test_range(self):
        """Test range filtering is half-open."""
        day = DayTimeRange.from_datetime(datetime(2024, 5, 10))
        f = TransactionFilter(range=day)
        assert f.matches(make_transaction("a", transaction_date=datetime(2024, 5, 10, 9)))
        assert not f.matches(make_transaction("b", transaction_date=datetime(2024, 5, 11)))

    def test_accounts_categories_and_types(self):
        """Test id and type predicates combine."""
        transfer = make_transaction(
            "move",
            account_id=2,
            extensions=[Transfer(from_account_uuid="a", to_account_uuid="b")],
        )
        expense = make_transaction("lunch", account_id=2, category_id=7)

        f = TransactionFilter(accounts=[2], types=[TransactionType.EXPENSE])
        assert f.matches(expense)
        assert not f.matches(transfer)

        assert TransactionFilter(categories=[7]).matches(expense)
        assert not TransactionFilter(categories=[7]).matches(transfer)

    def test_apply_runs_search_after_predicates(self):
        """Test keyword search only sees records passing the predicates."""
        ts = [
            make_transaction("Coffee", account_id=1),
            make_transaction("Coffee", account_id=2),
            make_transaction("Rent", account_id=1),
        ]
        f = TransactionFilter(
            accounts=[1],
            search_data=TransactionSearchData(keyword="coffee"),
        )
        result = f.apply(ts)
        assert len(result) == 1
        assert result[0].account_id == 1


class TestFrecency:
    """Tests for frecency scoring."""

    def test_used_increments(self):
        """Test recording a use."""
        now = datetime(2024, 5, 10)
        data = FrecencyData(type="account", uuid="a", use_count=2).used(now)
        assert data.use_count == 3
        assert data.last_used == now

    def test_unknown_uuid_scores_zero(self):
        """Test unseen entities rank last."""
        group = FrecencyGroup([FrecencyData(type="account", uuid="a", use_count=1)])
        assert group.get_score("missing") == 0.0

    def test_frequency_and_recency_are_weighted_equally(self):
        """Test the score formula."""
        now = datetime(2024, 5, 10)
        group = FrecencyGroup(
            [
                FrecencyData(type="account", uuid="a", use_count=4, last_used=now),
                FrecencyData(
                    type="account",
                    uuid="b",
                    use_count=2,
                    last_used=now - timedelta(days=14),
                ),
            ],
            half_life_days=14,
        )

        assert group.get_score("a", now) == pytest.approx(1.0)
        assert group.get_score("b", now) == pytest.approx(0.5)

    def test_recent_beats_stale_at_equal_count(self):
        """Test recency breaks ties."""
        now = datetime(2024, 5, 10)
        group = FrecencyGroup([
            FrecencyData(type="category", uuid="old", use_count=3, last_used=now - timedelta(days=60)),
            FrecencyData(type="category", uuid="new", use_count=3, last_used=now),
        ])
        assert group.get_score("new", now) > group.get_score("old", now)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
