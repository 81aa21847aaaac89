"""Small shared helpers."""

from flow_finance.utils.memo import Memoizer

__all__ = ["Memoizer"]
