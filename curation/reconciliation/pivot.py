"""Wide source comparison tables and their inverse."""

from collections.abc import Sequence

import polars as pl

from curation.common.constants import Column
from curation.common.frames import require_columns, schema_of
from curation.common.models import LongFormatTable, as_long_format_table
from curation.errors import ConfigurationError


def source_column(source_id: str, value_column: str) -> str:
    return f"{source_id}_{value_column}"


def _as_list(value_columns: str | Sequence[str]) -> list[str]:
    columns = [value_columns] if isinstance(value_columns, str) else list(value_columns)
    if not columns:
        raise ConfigurationError("at least one value column is required")
    return columns


def ordered_sources(table: LongFormatTable | pl.LazyFrame | pl.DataFrame) -> list[str]:
    """Distinct source_ids ordered by their lowest priority and then by name."""
    lf = as_long_format_table(table)
    if Column.PRIORITY not in lf.collect_schema():
        lf = lf.with_columns(pl.lit(None, dtype=pl.Int64).alias(Column.PRIORITY))
    return (
        lf.filter(pl.col(Column.SOURCE_ID).is_not_null())
        .group_by(Column.SOURCE_ID)
        .agg(pl.col(Column.PRIORITY).min())
        .sort([Column.PRIORITY, Column.SOURCE_ID], nulls_last=True)
        .collect()[Column.SOURCE_ID]
        .to_list()
    )


def pivot_wide_by_source(
    table: LongFormatTable | pl.LazyFrame | pl.DataFrame,
    value_columns: str | Sequence[str],
) -> pl.LazyFrame:
    """
    One row per patient with one column per (source_id, value column) pair.

    Columns are named `{source_id}_{value_column}`. Every pair present anywhere in
    the table gets a column, so patients without data from a source hold nulls
    there. The set of sources is resolved from the data before the pivot is built.
    """
    columns = _as_list(value_columns)
    lf = as_long_format_table(table)
    require_columns(lf, columns, "pivot_wide_by_source")

    sources = ordered_sources(lf)
    exprs = [
        pl.col(column)
        .filter(pl.col(Column.SOURCE_ID) == source)
        .first()
        .alias(source_column(source, column))
        for source in sources
        for column in columns
    ]
    return lf.group_by(Column.PATIENT_ID).agg(exprs).sort(Column.PATIENT_ID)


def unpivot_wide_by_source(
    wide: pl.LazyFrame | pl.DataFrame,
    value_columns: str | Sequence[str],
    source_ids: Sequence[str] | None = None,
) -> pl.LazyFrame:
    """
    Rebuild (patient_id, source_id, values...) rows from a wide source comparison.

    Rows where every value of a source is null are dropped, so unpivoting a pivot
    gives back the distinct non-null records of the long table. Without
    `source_ids`, sources are read from the `{source_id}_{first value column}` names.
    """
    columns = _as_list(value_columns)
    lf = wide.lazy() if isinstance(wide, pl.DataFrame) else wide
    if source_ids is None:
        suffix = f"_{columns[0]}"
        source_ids = [
            name[: -len(suffix)]
            for name in schema_of(lf).names()
            if name.endswith(suffix) and name != suffix
        ]
    if not source_ids:
        raise ConfigurationError("unpivot_wide_by_source: no source columns found")

    required = [Column.PATIENT_ID] + [
        source_column(source, column) for source in source_ids for column in columns
    ]
    require_columns(lf, required, "unpivot_wide_by_source")

    frames = [
        lf.select(
            pl.col(Column.PATIENT_ID),
            pl.lit(source, dtype=pl.String).alias(Column.SOURCE_ID),
            *[pl.col(source_column(source, column)).alias(column) for column in columns],
        ).filter(pl.any_horizontal([pl.col(column).is_not_null() for column in columns]))
        for source in source_ids
    ]
    return pl.concat(frames).sort([Column.PATIENT_ID, Column.SOURCE_ID])
