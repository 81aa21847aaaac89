"""
Title Suggestions

Suggests transaction titles while the user types, ranked by how well a
past transaction matches the current input and the form's context.

Scoring (per past transaction):
    score = (10 + fuzzy match of query vs title [0..100]) * multiplier
    multiplier = 1 + 0.25 (same account) + 0.75 (same type) + 2.75 (same category)

Max score is 522.5 (110 * 4.75); query-only max is 110.

Identical titles are then merged: the merged relevancy is the average
score, boosted by 2.5% per occurrence, so frequently used titles rank
higher.
"""

from collections import defaultdict
from typing import Iterable, NamedTuple, Optional

import structlog
from rapidfuzz import fuzz

from flow_finance.models.entities import Transaction, TransactionType
from flow_finance.models.filters import TransactionFilter, TransactionSearchData
from flow_finance.services.storage import LedgerStorageInterface, StorageError


logger = structlog.get_logger(__name__)

BASE_SCORE = 10.0
ACCOUNT_WEIGHT = 0.25
TYPE_WEIGHT = 0.75
CATEGORY_WEIGHT = 2.75
OCCURRENCE_BOOST = 0.025


class RelevanceScoredTitle(NamedTuple):
    title: str
    relevancy: float


def title_suggestion_score(
    transaction: Transaction,
    query: Optional[str] = None,
    account_id: Optional[int] = None,
    category_id: Optional[int] = None,
    transaction_type: Optional[TransactionType] = None,
    fuzzy_partial: bool = True,
    case_sensitive: bool = False,
) -> float:
    """
    Relevance of a transaction's title for the given input and context.

    Use fuzzy_partial=False when scoring for filtering rather than
    suggesting; a partial ratio rewards any title containing the query.
    """
    score = BASE_SCORE

    title = transaction.title.strip() if transaction.title is not None else None
    if title is not None and not case_sensitive:
        title = title.lower()

    if query is not None and query.strip() and title is not None:
        query = query.strip() if case_sensitive else query.strip().lower()
        scorer = fuzz.partial_ratio if fuzzy_partial else fuzz.ratio
        score += scorer(query, title)

    multiplier = 1.0

    if account_id is not None and transaction.account_id == account_id:
        multiplier += ACCOUNT_WEIGHT

    if transaction_type is not None and transaction.type == transaction_type:
        multiplier += TYPE_WEIGHT

    if category_id is not None and transaction.category_id == category_id:
        multiplier += CATEGORY_WEIGHT

    return score * multiplier


def merge_title_relevancy(
    scores: Iterable[RelevanceScoredTitle],
) -> list[RelevanceScoredTitle]:
    """Collapse identical titles into one entry each, first-seen order."""
    grouped: dict[str, list[float]] = defaultdict(list)
    for item in scores:
        grouped[item.title].append(item.relevancy)

    merged = []
    for title, values in grouped.items():
        average = sum(values) / len(values)
        weight = 1 + len(values) * OCCURRENCE_BOOST
        merged.append(RelevanceScoredTitle(title, average * weight))
    return merged


class TitleSuggestions:
    """Title suggestions backed by the ledger."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def transaction_title_suggestions(
        self,
        current_input: Optional[str] = None,
        account_id: Optional[int] = None,
        category_id: Optional[int] = None,
        type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> list[RelevanceScoredTitle]:
        """
        Ranked, de-duplicated titles for the current input.

        Transfers only contribute when suggesting for a transfer.
        Storage failures yield no suggestions rather than an error.
        """
        query = current_input.strip() if current_input else ""
        filter = TransactionFilter(
            search_data=TransactionSearchData(keyword=query, include_description=False)
        )

        try:
            transactions = await self._storage.find_transactions(filter)
        except StorageError as e:
            logger.warning("title_suggestions_fetch_failed", error=str(e))
            return []

        candidates = [
            t for t in transactions
            if t.title and t.title.strip()
            and (type == TransactionType.TRANSFER or not t.is_transfer)
        ]

        scored = [
            RelevanceScoredTitle(
                t.title,
                title_suggestion_score(
                    t,
                    query=query or None,
                    account_id=account_id,
                    category_id=category_id,
                    transaction_type=type,
                ),
            )
            for t in candidates
        ]
        scored.sort(key=lambda item: item.relevancy, reverse=True)

        merged = merge_title_relevancy(scored)
        merged.sort(key=lambda item: item.relevancy, reverse=True)

        return merged if limit is None else merged[:limit]
