"""Code lookup handling: validation, code sets per name and name attachment."""

from datetime import date

import polars as pl

from curation.common.constants import LOOKUP_COLUMNS, Column
from curation.common.frames import require_columns
from curation.common.models import (
    CodeLookup,
    EventTable,
    NamedEventTable,
    as_code_lookup,
    as_event_table,
)
from curation.errors import ConfigurationError
from tabular.logger.logger import log_info, log_warning


def _stripped(col: pl.Expr) -> pl.Expr:
    return col.cast(pl.String).str.strip_chars()


def validate_lookup(lookup: CodeLookup | pl.LazyFrame | pl.DataFrame) -> CodeLookup:
    """
    Check the lookup has code, name, description and terminology columns.

    Codes and names are stripped of surrounding whitespace. Codes keep their case,
    since some terminologies are case sensitive.
    """
    lookup_lf = as_code_lookup(lookup).with_columns(
        _stripped(pl.col(Column.CODE)).alias(Column.CODE),
        _stripped(pl.col(Column.NAME)).alias(Column.NAME),
    )
    return CodeLookup.from_df(lookup_lf)


def lookup_names(lookup: CodeLookup | pl.LazyFrame | pl.DataFrame) -> list[str]:
    """Sorted distinct names of the lookup."""
    return (
        validate_lookup(lookup)
        .select(pl.col(Column.NAME).drop_nulls().unique().sort())
        .collect()[Column.NAME]
        .to_list()
    )


def codes_for_name(lookup: CodeLookup | pl.LazyFrame | pl.DataFrame, name: str) -> list[str]:
    """
    Distinct codes mapped to `name`.

    Raises:
        ConfigurationError: if no code is mapped to `name`.
    """
    codes = (
        validate_lookup(lookup)
        .filter(pl.col(Column.NAME) == name.strip())
        .select(pl.col(Column.CODE).drop_nulls().unique().sort())
        .collect()[Column.CODE]
        .to_list()
    )
    if not codes:
        raise ConfigurationError(f"No codes found for name '{name}'")
    log_info(f"{len(codes)} code(s) for '{name}'")
    return codes


def attach_names(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    lookup: CodeLookup | pl.LazyFrame | pl.DataFrame,
    code_column: str = Column.CODE,
    keep_unmatched: bool = False,
    event_date_range: tuple[date | None, date | None] | None = None,
) -> NamedEventTable:
    """
    Join lookup name, description and terminology onto events by code.

    Args:
        events: Event table with patient_id, event_date and a code column.
        lookup: Code lookup table.
        code_column: Name of the code column in `events`; renamed to `code`.
        keep_unmatched: Keep events whose code is not in the lookup, with null name.
        event_date_range: Optional inclusive (start, end) bounds on event_date.
            Either bound may be None.

    A code mapped to several names yields one event row per name. An empty lookup
    gives an empty result (or all-null names with `keep_unmatched`).
    """
    lookup_lf = validate_lookup(lookup)
    events_lf = as_event_table(events, code_column=code_column)
    require_columns(events_lf, [Column.CODE], "attach_names")

    if lookup_lf.select(pl.len()).collect().item() == 0:
        log_warning("Code lookup table is empty; no event will be matched")

    if event_date_range is not None:
        start, end = event_date_range
        if start is not None and end is not None and start > end:
            raise ConfigurationError(f"event_date_range start {start} is after end {end}")
        if start is not None:
            events_lf = events_lf.filter(pl.col(Column.EVENT_DATE) >= start)
        if end is not None:
            events_lf = events_lf.filter(pl.col(Column.EVENT_DATE) <= end)

    existing = set(events_lf.collect_schema().names())
    lookup_columns = [column for column in LOOKUP_COLUMNS if column == Column.CODE or column not in existing]

    named = events_lf.with_columns(_stripped(pl.col(Column.CODE)).alias(Column.CODE)).join(
        lookup_lf.select(lookup_columns).unique(),
        on=Column.CODE,
        how="left" if keep_unmatched else "inner",
    )
    return NamedEventTable.from_df(named)
