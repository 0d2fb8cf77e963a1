"""Reporting helpers for CLI output."""

from typing import Any

import polars as pl

from curation.reporting.batch import BatchReport
from curation.reporting.quality import get_feature_summary


def print_asset_summary(asset: str, summary: dict[str, Any], conflicts: dict[str, int]) -> None:
    """Print source coverage and conflict counts of one reconciled asset."""
    print()
    print(f"Asset {asset}: {summary['n_patients']} patients, {summary['n_rows']} rows from {summary['n_sources']} sources")
    for row in summary["source_summary"].iter_rows(named=True):
        print(f"  {row['source_id']} (priority {row['priority']}): {row['n_patients']} patients, {row['n_rows']} rows")
    for row in summary["coverage"].iter_rows(named=True):
        print(f"  in {row['n_sources']} source(s): {row['n_patients']} patients")
    for column, count in conflicts.items():
        pct = (count / summary["n_patients"] * 100) if summary["n_patients"] else 0
        print(f"  conflicts in {column}: {count} ({pct:.0f}%)")


def print_cohort_summary(report: dict[str, Any]) -> None:
    """Print the exclusion report of the cohort step."""
    print()
    print("Cohort:")
    print(f"  Eligible: {report['included_patients']}")
    print(f"  Excluded: {report['excluded_patients']}")
    print(f"  Inclusion rate: {report['inclusion_rate']:.1%}")
    if report["excluded_by_rule"]:
        print("  Excluded by rule:")
        for rule, count in report["excluded_by_rule"].items():
            print(f"    {rule}: {count}")


def print_feature_summary(title: str, features: pl.DataFrame) -> None:
    """Print how many patients have each flag set."""
    summary = get_feature_summary(features)
    total = summary.pop("total_patients")
    print()
    print(f"{title} ({total} patients):")
    for column, count in summary.items():
        pct = (count / total * 100) if total else 0
        print(f"  {column}: {count} ({pct:.0f}%)")


def print_batch_report(title: str, report: BatchReport) -> None:
    summary = report.summary()
    print()
    print(f"{title}: {summary['ok_items']} ok, {summary['empty_items']} empty, {summary['failed_items']} failed")
    for name, error in summary["errors"].items():
        print(f"  {name}: {error}")


def print_table_summary(summary: dict[str, int]) -> None:
    """Print row counts of written tables."""
    print()
    print("Tables:")
    for table_name, count in summary.items():
        print(f"  {table_name}: {count}")
