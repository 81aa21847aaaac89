"""Ledger actions package."""

from flow_finance.actions.accounts import AccountActions, actives, inactives
from flow_finance.actions.backups import BackupActions
from flow_finance.actions.suggestions import (
    RelevanceScoredTitle,
    TitleSuggestions,
    merge_title_relevancy,
    title_suggestion_score,
)
from flow_finance.actions.transactions import TransactionActions, TransferError

__all__ = [
    "AccountActions",
    "BackupActions",
    "RelevanceScoredTitle",
    "TitleSuggestions",
    "TransactionActions",
    "TransferError",
    "actives",
    "inactives",
    "merge_title_relevancy",
    "title_suggestion_score",
]
