"""
Transaction Filters and Search

A TransactionFilter is a set of independent predicates. Storage narrows
what it can natively and applies the rest in Python.

Search has three modes:
- EXACT: normalized title equals the keyword
- SUBSTRING: keyword appears in the normalized title
- SMART: substring OR fuzzy partial match above a threshold

SMART falls back to SUBSTRING when it finds nothing at all.
"""

from enum import Enum
from typing import Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field
from rapidfuzz import fuzz

from flow_finance.config import get_settings
from flow_finance.models.entities import Transaction, TransactionType
from flow_finance.models.time_range import TimeRange


TransactionPredicate = Callable[[Transaction], bool]


class TransactionSearchMode(str, Enum):
    SMART = "smart"
    SUBSTRING = "substring"
    EXACT = "exact"


class TransactionSearchData(BaseModel):
    """Keyword search over transaction titles (and optionally descriptions)."""

    model_config = ConfigDict(frozen=True)

    keyword: Optional[str] = None
    mode: TransactionSearchMode = TransactionSearchMode.SMART
    include_description: bool = True
    smart_threshold: int = Field(
        default_factory=lambda: get_settings().app.smart_search_threshold,
        ge=0,
        le=100,
    )

    @property
    def normalized_keyword(self) -> Optional[str]:
        """Trimmed, lowercased keyword, or None if there's nothing to search."""
        if self.keyword is None:
            return None
        normalized = self.keyword.strip().lower()
        return normalized or None

    def _text_matches(self, text: Optional[str], keyword: str) -> bool:
        if not text:
            return False
        normalized = text.strip().lower()

        if self.mode == TransactionSearchMode.EXACT:
            return normalized == keyword
        if keyword in normalized:
            return True
        if self.mode == TransactionSearchMode.SMART:
            return fuzz.partial_ratio(keyword, normalized) >= self.smart_threshold
        return False

    def predicate(self, transaction: Transaction) -> bool:
        keyword = self.normalized_keyword
        if keyword is None:
            return True

        if self._text_matches(transaction.title, keyword):
            return True

        return self.include_description and self._text_matches(
            transaction.description, keyword
        )

    def copy_with_optional(
        self,
        keyword: Optional[str] = None,
        mode: Optional[TransactionSearchMode] = None,
        include_description: Optional[bool] = None,
    ) -> "TransactionSearchData":
        """Copy, replacing only the arguments that were given."""
        update = {}
        if keyword is not None:
            update["keyword"] = keyword
        if mode is not None:
            update["mode"] = mode
        if include_description is not None:
            update["include_description"] = include_description
        return self.model_copy(update=update)

    def apply(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        """Filter transactions, retrying as SUBSTRING if SMART finds nothing."""
        transactions = list(transactions)
        if self.normalized_keyword is None:
            return transactions

        matches = [t for t in transactions if self.predicate(t)]

        if self.mode == TransactionSearchMode.SMART and not matches:
            return self.copy_with_optional(
                mode=TransactionSearchMode.SUBSTRING
            ).apply(transactions)

        return matches


class TransactionFilter(BaseModel):
    """
    Criteria for finding transactions.

    Every field is optional; an unset field doesn't restrict anything.
    """

    range: Optional[TimeRange] = None
    is_pending: Optional[bool] = None
    uuids: Optional[list[str]] = None
    accounts: Optional[list[int]] = None
    categories: Optional[list[int]] = None
    types: Optional[list[TransactionType]] = None
    search_data: Optional[TransactionSearchData] = None

    def predicates(self) -> list[TransactionPredicate]:
        """Per-field predicates, excluding keyword search."""
        predicates: list[TransactionPredicate] = []

        if self.range is not None:
            time_range = self.range
            predicates.append(lambda t: time_range.contains(t.transaction_date))

        if self.is_pending is not None:
            # An unset flag counts as "not pending"
            wanted = self.is_pending
            predicates.append(lambda t: (t.is_pending is True) == wanted)

        if self.uuids is not None:
            uuids = set(self.uuids)
            predicates.append(lambda t: t.uuid in uuids)

        if self.accounts is not None:
            accounts = set(self.accounts)
            predicates.append(lambda t: t.account_id in accounts)

        if self.categories is not None:
            categories = set(self.categories)
            predicates.append(lambda t: t.category_id in categories)

        if self.types is not None:
            types = set(self.types)
            predicates.append(lambda t: t.type in types)

        return predicates

    def matches(self, transaction: Transaction) -> bool:
        return all(predicate(transaction) for predicate in self.predicates())

    def apply(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        """Apply field predicates, then keyword search."""
        predicates = self.predicates()
        matched = [t for t in transactions if all(p(t) for p in predicates)]

        if self.search_data is None:
            return matched
        return self.search_data.apply(matched)
