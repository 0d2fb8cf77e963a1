"""Reconcile multi-source patient assets in DuckDB and generate cohort features."""

from __future__ import annotations

import argparse
import os
from pathlib import Path

from curation.common.cancellation import CancellationToken
from curation.config import load_config
from curation.constants import Schema
from curation.db.duckdb_io import connect_db, get_table_summary
from curation.errors import CurationError
from curation.etl import run_pipeline
from curation.reporting import (
    print_asset_summary,
    print_batch_report,
    print_cohort_summary,
    print_feature_summary,
    print_table_summary,
)
from tabular.logger.logger import log_info

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "pipeline.yaml"
DEFAULT_DB_PATH = Path(__file__).resolve().parent / "curation.duckdb"


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Reconcile multi-source patient assets and generate cohort features."
    )
    parser.add_argument(
        "config",
        nargs="?",
        default=DEFAULT_CONFIG_PATH,
        type=Path,
        help=f"Pipeline YAML configuration. Default: {DEFAULT_CONFIG_PATH}",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=DEFAULT_DB_PATH,
        help=f"Path to DuckDB database file holding the source tables. Default: {DEFAULT_DB_PATH}",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Cancel the run after this many seconds (checked between assets, windows and features)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level name or number. Default: LOG_LEVEL environment variable or INFO",
    )
    args = parser.parse_args()

    if args.log_level is not None:
        os.environ["LOG_LEVEL"] = args.log_level

    if not args.db.exists():
        raise SystemExit(f"Database file does not exist: {args.db}")

    try:
        config = load_config(args.config)
    except CurationError as e:
        raise SystemExit(f"Invalid configuration: {e}") from e
    log_info(f"config {args.config}, database {args.db}")

    con = connect_db(args.db)
    token = CancellationToken(timeout=args.timeout) if args.timeout else None
    try:
        result = run_pipeline(con, config, cancel_token=token)
    except CurationError as e:
        con.close()
        raise SystemExit(f"Pipeline failed: {e}") from e

    for asset, summary in result.asset_summaries.items():
        print_asset_summary(asset, summary, result.asset_conflicts.get(asset, {}))

    if result.exclusion_report is not None:
        print_cohort_summary(result.exclusion_report.to_dict())

    for title, report in result.reports.items():
        print_batch_report(title.capitalize(), report)

    for title, features in result.features.items():
        print_feature_summary(title.capitalize(), features)

    print_table_summary(
        {
            **get_table_summary(con, Schema.CURATED),
            **get_table_summary(con, Schema.FEATURES),
        }
    )
    con.close()

    print()
    print(f"Database saved to: {args.db}")


if __name__ == "__main__":
    main()
