"""Priority based resolution of multi-source records."""

import warnings

import polars as pl

from curation.common.constants import LONG_FORMAT_METADATA_COLUMNS, Column
from curation.common.frames import require_columns, value_columns
from curation.common.models import LongFormatTable, as_long_format_table
from curation.errors import AmbiguousPriorityWarning
from tabular.logger.logger import log_info, log_warning

# Secondary key after priority. Event dates never break ties.
TIE_BREAK_ORDER = [Column.PRIORITY, Column.SOURCE_ID]


def find_ambiguous_priorities(
    table: LongFormatTable | pl.LazyFrame | pl.DataFrame,
) -> pl.LazyFrame:
    """
    Patients where two or more sources share the winning priority and disagree on the values.

    Returns columns patient_id, n_sources (sources at the top priority) and n_distinct
    (distinct value combinations among them).
    """
    lf = as_long_format_table(table)
    schema = require_columns(lf, [Column.PRIORITY], "find_ambiguous_priorities")
    values = value_columns(schema, LONG_FORMAT_METADATA_COLUMNS)
    if not values:
        return pl.LazyFrame(
            schema={Column.PATIENT_ID: pl.String, "n_sources": pl.Int64, "n_distinct": pl.Int64}
        )

    top_priority = pl.col(Column.PRIORITY) == pl.col(Column.PRIORITY).min().over(
        Column.PATIENT_ID
    )
    return (
        lf.filter(top_priority)
        .group_by(Column.PATIENT_ID)
        .agg(
            pl.col(Column.SOURCE_ID).n_unique().cast(pl.Int64).alias("n_sources"),
            pl.struct(values).n_unique().cast(pl.Int64).alias("n_distinct"),
        )
        .filter((pl.col("n_sources") >= 2) & (pl.col("n_distinct") > 1))
        .sort(Column.PATIENT_ID)
    )


def _warn_ambiguous(lf: LongFormatTable, context: str) -> None:
    ambiguous = find_ambiguous_priorities(lf).collect()
    if ambiguous.is_empty():
        return
    patients = ambiguous[Column.PATIENT_ID].to_list()
    shown = ", ".join(patients[:5]) + (", ..." if len(patients) > 5 else "")
    message = (
        f"{context}: {len(patients)} patient(s) have sources sharing the top priority "
        f"with differing values ({shown}); resolved by {Column.SOURCE_ID} ascending"
    )
    log_warning(message)
    warnings.warn(message, AmbiguousPriorityWarning, stacklevel=3)


def resolve_highest_priority(
    table: LongFormatTable | pl.LazyFrame | pl.DataFrame,
    asset_name: str | None = None,
    warn_ambiguous: bool = True,
) -> LongFormatTable:
    """
    Keep one record per patient: the one with the lowest priority value.

    Candidates are ordered by (priority, source_id) ascending with null priorities
    last, and the first candidate wins. Column order of the input is preserved and
    the output holds exactly one row per distinct patient_id, sorted by patient_id.

    With `warn_ambiguous`, patients whose top-priority sources disagree are reported
    through an AmbiguousPriorityWarning. This scans the top-priority rows once.

    Raises:
        ConfigurationError: if the priority column is absent.
    """
    context = f"resolve_highest_priority({asset_name})" if asset_name else "resolve_highest_priority"
    lf = as_long_format_table(table)
    schema = require_columns(lf, [Column.PRIORITY], context)

    if warn_ambiguous:
        _warn_ambiguous(lf, context)

    log_info(f"{context}: selecting by {', '.join(TIE_BREAK_ORDER)}")

    resolved = (
        lf.sort(TIE_BREAK_ORDER, nulls_last=True)
        .unique(subset=[Column.PATIENT_ID], keep="first", maintain_order=True)
        .select(schema.names())
        .sort(Column.PATIENT_ID)
    )
    return LongFormatTable.from_df(resolved, validate=False)
