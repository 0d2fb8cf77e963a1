"""Covariates and outcomes by lookup name."""

from collections.abc import Sequence
from functools import partial

import polars as pl

from curation.common.cancellation import CancellationToken
from curation.common.constants import Column, Direction, SelectionMethod
from curation.common.frames import require_columns
from curation.common.models import CodeLookup, EventTable, IndexDates, as_event_table, as_index_dates
from curation.errors import ConfigurationError
from curation.preprocessing.lookup import codes_for_name
from curation.reporting.batch import BatchReport, run_batch
from curation.windows.filtering import filter_to_window
from curation.windows.time_window import TimeWindow
from tabular.engine.polars.functions.datetime import datediff
from tabular.logger.logger import log_info

COVARIATE_COLUMNS = ("covariate_flag", "covariate_date", "days_to_index")
OUTCOME_COLUMNS = ("outcome_flag", "outcome_date", "days_from_index")


def _event_feature(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    lookup: CodeLookup | pl.LazyFrame | pl.DataFrame,
    name: str,
    window: TimeWindow,
    selection_method: SelectionMethod | str,
    calculate_days: bool,
    columns: tuple[str, str, str],
) -> pl.LazyFrame:
    flag_column, date_column, days_column = columns
    try:
        selection_method = SelectionMethod(selection_method)
    except ValueError as e:
        raise ConfigurationError(
            f"selection_method must be 'min' or 'max', got {selection_method!r}"
        ) from e

    codes = codes_for_name(lookup, name)
    events_lf = as_event_table(events)
    require_columns(events_lf, [Column.CODE], f"{name} events")
    index_lf = as_index_dates(index_dates)

    matched = events_lf.filter(pl.col(Column.CODE).str.strip_chars().is_in(codes))
    windowed = filter_to_window(matched, index_lf, window)

    event_date = pl.col(Column.EVENT_DATE)
    selected = windowed.group_by(Column.PATIENT_ID).agg(
        (event_date.min() if selection_method == SelectionMethod.MIN else event_date.max()).alias(
            date_column
        )
    )

    result = index_lf.join(selected, on=Column.PATIENT_ID, how="left").with_columns(
        pl.col(date_column).is_not_null().alias(flag_column)
    )
    output = [Column.PATIENT_ID, Column.INDEX_DATE, flag_column, date_column]
    if calculate_days:
        result = result.with_columns(
            datediff(pl.col(Column.INDEX_DATE), pl.col(date_column)).alias(days_column)
        )
        output.append(days_column)
    return result.select(output).sort(Column.PATIENT_ID)


def generate_covariate(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    lookup: CodeLookup | pl.LazyFrame | pl.DataFrame,
    name: str,
    window: TimeWindow | None = None,
    selection_method: SelectionMethod | str = SelectionMethod.MIN,
    calculate_days_to_index: bool = True,
) -> pl.LazyFrame:
    """
    Flag patients with an event coded as `name` before their index date.

    Args:
        events: Coded events (patient_id, event_date, code).
        index_dates: Cohort with patient_id and index_date.
        lookup: Code lookup mapping codes to names.
        name: Lookup name of the covariate, e.g. "Diabetes".
        window: A before window. Defaults to any time strictly before the index date.
        selection_method: "min" keeps the earliest in-window event, "max" the latest.
        calculate_days_to_index: Add the signed days_to_index column (negative).

    Returns:
        LazyFrame with patient_id, index_date, covariate_flag, covariate_date and
        days_to_index, one row per index_dates entry.

    Raises:
        ConfigurationError: no codes for `name`, or `window` is not a before window.
    """
    window = window or TimeWindow.before(name)
    if window.direction != Direction.BEFORE:
        raise ConfigurationError(f"covariate '{name}' needs a before window, got {window.direction}")
    return _event_feature(
        events,
        index_dates,
        lookup,
        name,
        window,
        selection_method,
        calculate_days_to_index,
        COVARIATE_COLUMNS,
    )


def generate_outcome(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    lookup: CodeLookup | pl.LazyFrame | pl.DataFrame,
    name: str,
    window: TimeWindow | None = None,
    selection_method: SelectionMethod | str = SelectionMethod.MIN,
    calculate_days_from_index: bool = True,
) -> pl.LazyFrame:
    """
    Flag patients with an event coded as `name` on or after their index date.

    Same as `generate_covariate` with an after window (default: index day onwards)
    and the columns outcome_flag, outcome_date and days_from_index (positive).
    """
    window = window or TimeWindow.after(name)
    if window.direction != Direction.AFTER:
        raise ConfigurationError(f"outcome '{name}' needs an after window, got {window.direction}")
    return _event_feature(
        events,
        index_dates,
        lookup,
        name,
        window,
        selection_method,
        calculate_days_from_index,
        OUTCOME_COLUMNS,
    )


def _prefixed(build, name: str) -> pl.LazyFrame:
    lf = build().drop(Column.INDEX_DATE)
    return lf.rename({column: f"{name}_{column}" for column in lf.collect_schema().names() if column != Column.PATIENT_ID})


def _generate_multiple(
    generate,
    events,
    index_dates,
    lookup,
    names: Sequence[str],
    cancel_token: CancellationToken | None,
    **kwargs,
) -> tuple[pl.DataFrame, BatchReport]:
    if not names:
        raise ConfigurationError("At least one name is required")
    index_lf = as_index_dates(index_dates)
    log_info(f"{len(names)} feature(s): {', '.join(names)}")

    items = [
        (name, partial(_prefixed, partial(generate, events, index_lf, lookup, name, **kwargs), name))
        for name in names
    ]
    frames, report = run_batch(items, cancel_token=cancel_token)

    result = index_lf.select(Column.PATIENT_ID, Column.INDEX_DATE).collect()
    for name in names:
        if name in frames:
            result = result.join(frames[name], on=Column.PATIENT_ID, how="left")
    return result.sort(Column.PATIENT_ID), report


def generate_multiple_covariates(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    lookup: CodeLookup | pl.LazyFrame | pl.DataFrame,
    names: Sequence[str],
    window: TimeWindow | None = None,
    selection_method: SelectionMethod | str = SelectionMethod.MIN,
    calculate_days_to_index: bool = True,
    cancel_token: CancellationToken | None = None,
) -> tuple[pl.DataFrame, BatchReport]:
    """
    Generate one covariate per name and join them onto the index dates.

    Columns of each covariate are prefixed with `{name}_`. A failing covariate
    (e.g. a name without codes) is left out and recorded in the BatchReport.
    """
    return _generate_multiple(
        generate_covariate,
        events,
        index_dates,
        lookup,
        names,
        cancel_token,
        window=window,
        selection_method=selection_method,
        calculate_days_to_index=calculate_days_to_index,
    )


def generate_multiple_outcomes(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    lookup: CodeLookup | pl.LazyFrame | pl.DataFrame,
    names: Sequence[str],
    window: TimeWindow | None = None,
    selection_method: SelectionMethod | str = SelectionMethod.MIN,
    calculate_days_from_index: bool = True,
    cancel_token: CancellationToken | None = None,
) -> tuple[pl.DataFrame, BatchReport]:
    """Outcome counterpart of `generate_multiple_covariates`."""
    return _generate_multiple(
        generate_outcome,
        events,
        index_dates,
        lookup,
        names,
        cancel_token,
        window=window,
        selection_method=selection_method,
        calculate_days_from_index=calculate_days_from_index,
    )
