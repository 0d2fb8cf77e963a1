"""Reporting helpers (summaries, batch reports, and CLI output)."""

from .batch import BatchItemResult, BatchReport, ItemStatus, run_batch
from .cli_reporting import (
    print_asset_summary,
    print_batch_report,
    print_cohort_summary,
    print_feature_summary,
    print_table_summary,
)
from .quality import get_feature_quality_report, get_feature_summary

__all__ = [
    "BatchItemResult",
    "BatchReport",
    "ItemStatus",
    "get_feature_quality_report",
    "get_feature_summary",
    "print_asset_summary",
    "print_batch_report",
    "print_cohort_summary",
    "print_feature_summary",
    "print_table_summary",
    "run_batch",
]
