"""Summary statistics for long format tables."""

from collections.abc import Sequence
from typing import Any

import polars as pl

from curation.common.constants import LONG_FORMAT_METADATA_COLUMNS, Column
from curation.common.frames import require_columns, value_columns as schema_value_columns
from curation.common.models import LongFormatTable, as_long_format_table


def summarize_long_format(
    table: LongFormatTable | pl.LazyFrame | pl.DataFrame,
    value_columns: Sequence[str] | None = None,
) -> dict[str, Any]:
    """
    Summarize a long format table per source and by source coverage.

    Null values are counted per source and value column rather than dropped.

    Returns:
        Dictionary with:
        - n_patients, n_sources, n_rows: totals
        - source_summary: DataFrame with source_id, priority, n_rows, n_patients
          and `{column}_nulls` per value column
        - coverage: DataFrame with n_sources and n_patients, the number of patients
          having data from exactly that many sources
    """
    lf = as_long_format_table(table)
    schema = lf.collect_schema()
    if value_columns is None:
        value_columns = schema_value_columns(schema, LONG_FORMAT_METADATA_COLUMNS)
    else:
        require_columns(lf, value_columns, "summarize_long_format")

    if Column.PRIORITY not in schema:
        lf = lf.with_columns(pl.lit(None, dtype=pl.Int64).alias(Column.PRIORITY))

    source_summary = (
        lf.group_by(Column.SOURCE_ID)
        .agg(
            pl.col(Column.PRIORITY).min(),
            pl.len().cast(pl.Int64).alias("n_rows"),
            pl.col(Column.PATIENT_ID).n_unique().cast(pl.Int64).alias("n_patients"),
            *[
                pl.col(column).null_count().cast(pl.Int64).alias(f"{column}_nulls")
                for column in value_columns
            ],
        )
        .sort([Column.PRIORITY, Column.SOURCE_ID], nulls_last=True)
        .collect()
    )

    coverage = (
        lf.group_by(Column.PATIENT_ID)
        .agg(pl.col(Column.SOURCE_ID).n_unique().cast(pl.Int64).alias("n_sources"))
        .group_by("n_sources")
        .agg(pl.len().cast(pl.Int64).alias("n_patients"))
        .sort("n_sources")
        .collect()
    )

    return {
        "n_patients": int(coverage["n_patients"].sum()) if coverage.height else 0,
        "n_sources": source_summary.height,
        "n_rows": int(source_summary["n_rows"].sum()) if source_summary.height else 0,
        "source_summary": source_summary,
        "coverage": coverage,
    }
