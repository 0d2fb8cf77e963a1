"""Reconciliation of multi-source long format tables."""

from .conflicts import conflict_rates, detect_conflicts
from .pivot import ordered_sources, pivot_wide_by_source, unpivot_wide_by_source
from .priority import find_ambiguous_priorities, resolve_highest_priority
from .summary import summarize_long_format

__all__ = [
    "conflict_rates",
    "detect_conflicts",
    "find_ambiguous_priorities",
    "ordered_sources",
    "pivot_wide_by_source",
    "resolve_highest_priority",
    "summarize_long_format",
    "unpivot_wide_by_source",
]
