"""Conflict detection across sources of one asset."""

from collections.abc import Sequence

import polars as pl

from curation.common.constants import Column
from curation.common.frames import require_columns
from curation.common.models import Conflicts, LongFormatTable, as_long_format_table
from curation.errors import ConfigurationError
from tabular.logger.logger import log_debug

_VALUE = "_value"


def _candidates(table: LongFormatTable, key_column: str, has_priority: bool) -> pl.LazyFrame:
    """Non-null (patient, source, priority, value) rows ordered by (priority, source_id)."""
    priority = pl.col(Column.PRIORITY) if has_priority else pl.lit(None, dtype=pl.Int64)
    return (
        table.select(
            pl.col(Column.PATIENT_ID),
            pl.col(Column.SOURCE_ID),
            priority.alias(Column.PRIORITY),
            pl.col(key_column).alias(_VALUE),
        )
        .filter(pl.col(_VALUE).is_not_null())
        .sort([Column.PATIENT_ID, Column.PRIORITY, Column.SOURCE_ID], nulls_last=True)
    )


def detect_conflicts(
    table: LongFormatTable | pl.LazyFrame | pl.DataFrame,
    key_column: str,
    asset_name: str | None = None,
) -> Conflicts:
    """
    Find patients whose sources report two or more distinct non-null values.

    Null values never take part in a conflict. Distinct values are listed in the
    order of the first source reporting them, sources ordered by ascending
    priority and then source_id. A table without a priority column is ordered by
    source_id only.

    Returns a Conflicts frame with columns:
    - patient_id
    - values: list of distinct values
    - n_values: number of distinct values (always >= 2)
    - n_sources: number of sources reporting a non-null value
    - values_label: values joined as "A vs B"
    - provenance: list of {source_id, value, priority} structs
    """
    context = f"detect_conflicts({asset_name or key_column})"
    lf = as_long_format_table(table)
    schema = require_columns(lf, [key_column], context)
    if key_column in (Column.PATIENT_ID, Column.SOURCE_ID, Column.PRIORITY):
        raise ConfigurationError(f"{context}: {key_column} is not a value column")

    log_debug(f"{context}: grouping sources by {Column.PATIENT_ID}")

    conflicts = (
        _candidates(lf, key_column, Column.PRIORITY in schema)
        .group_by(Column.PATIENT_ID, maintain_order=True)
        .agg(
            pl.col(_VALUE).unique(maintain_order=True).alias("values"),
            pl.col(Column.SOURCE_ID).n_unique().cast(pl.Int64).alias("n_sources"),
            pl.struct(
                pl.col(Column.SOURCE_ID),
                pl.col(_VALUE).alias("value"),
                pl.col(Column.PRIORITY),
            ).alias("provenance"),
        )
        .with_columns(pl.col("values").list.len().cast(pl.Int64).alias("n_values"))
        .filter(pl.col("n_values") >= 2)
        .with_columns(
            pl.col("values")
            .list.eval(pl.element().cast(pl.String))
            .list.join(" vs ")
            .alias("values_label")
        )
        .select(
            Column.PATIENT_ID,
            "values",
            "n_values",
            "n_sources",
            "values_label",
            "provenance",
        )
        .sort(Column.PATIENT_ID)
    )
    return Conflicts.from_df(conflicts)


def conflict_rates(
    table: LongFormatTable | pl.LazyFrame | pl.DataFrame,
    key_columns: Sequence[str],
) -> pl.DataFrame:
    """
    Count conflicting patients per value column.

    Returns one row per column with n_conflicts, n_patients and conflict_rate.
    """
    if not key_columns:
        raise ConfigurationError("conflict_rates: at least one column is required")
    lf = as_long_format_table(table)
    require_columns(lf, key_columns, "conflict_rates")

    per_column = [
        detect_conflicts(lf, column).select(
            pl.lit(column).alias("column"),
            pl.len().cast(pl.Int64).alias("n_conflicts"),
        )
        for column in key_columns
    ]
    totals = lf.select(pl.col(Column.PATIENT_ID).n_unique().cast(pl.Int64).alias("n_patients"))

    return (
        pl.concat(per_column)
        .join(totals, how="cross")
        .with_columns(
            pl.when(pl.col("n_patients") > 0)
            .then(pl.col("n_conflicts") / pl.col("n_patients"))
            .otherwise(pl.lit(0.0))
            .alias("conflict_rate")
        )
        .collect()
    )
