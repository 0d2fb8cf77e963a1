"""Window features per lookup name (the `name` attached by code matching)."""

from collections.abc import Iterable, Sequence

import polars as pl

from curation.common.constants import Column, DateColumns, Direction, SelectionMethod
from curation.common.frames import require_columns
from curation.common.models import (
    IndexDates,
    NamedEventTable,
    as_index_dates,
    as_named_event_table,
)
from curation.errors import ConfigurationError
from curation.windows.aggregation import (
    aggregate_per_patient,
    multi_window,
    prefix_columns,
)
from curation.windows.filtering import filter_to_window, window_filter
from curation.windows.reducers import (
    DEFAULT_AGGREGATION,
    DEFAULT_REGISTRY,
    Reducer,
    ReducerRegistry,
)
from curation.windows.time_window import TimeWindow
from tabular.logger.logger import log_warning


def distinct_names(events: NamedEventTable | pl.LazyFrame) -> list[str]:
    """Sorted distinct non-null names of the event table."""
    return (
        events.select(pl.col(Column.NAME).drop_nulls().unique().sort())
        .collect()[Column.NAME]
        .to_list()
    )


def _resolve_names(events: NamedEventTable, names: Iterable[str] | None) -> list[str]:
    if names is None:
        resolved = distinct_names(events)
        if not resolved:
            log_warning("No names found in events; result has no feature columns")
        return resolved
    if isinstance(names, str):
        return [names]
    resolved = list(dict.fromkeys(names))
    if not resolved:
        raise ConfigurationError("names must not be empty; pass None for all names")
    return resolved


def flag_by_name(
    events_with_name: NamedEventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    names: Iterable[str] | None = None,
    direction: Direction | str = Direction.BEFORE,
    window: TimeWindow | None = None,
    include_dates: DateColumns | str = DateColumns.NONE,
    include_days_between: bool = False,
    selection: SelectionMethod | str = SelectionMethod.MIN,
) -> pl.LazyFrame:
    """
    One boolean column per name telling whether the patient has a matching event.

    Without `window`, events on the `direction` side of the index date count
    (strictly before, or on/after). With `window`, only events inside it count
    and every column is prefixed with `{label}_`.

    Columns per name:
    - `{name}_flag`: False for patients without a matching event
    - `{name}_earliest_date` / `{name}_latest_date`: per `include_dates`
    - `{name}_days_between`: signed days from index to the event chosen by
      `selection` (min = earliest, max = latest)

    Names listed in `names` but absent from the events still get a full column set.
    """
    include_dates = DateColumns(include_dates)
    selection = SelectionMethod(selection)
    events_lf = as_named_event_table(events_with_name)
    index_lf = as_index_dates(index_dates)
    resolved = _resolve_names(events_lf, names)

    if window is not None:
        windowed = filter_to_window(events_lf, index_lf, window)
        prefix = f"{window.label}_"
    else:
        windowed = window_filter(events_lf, index_lf, direction)
        prefix = ""

    exprs = []
    for name in resolved:
        is_name = pl.col(Column.NAME) == name
        exprs.append(is_name.any().alias(f"{name}_flag"))
        if include_dates in (DateColumns.EARLIEST, DateColumns.BOTH):
            exprs.append(pl.col(Column.EVENT_DATE).filter(is_name).min().alias(f"{name}_earliest_date"))
        if include_dates in (DateColumns.LATEST, DateColumns.BOTH):
            exprs.append(pl.col(Column.EVENT_DATE).filter(is_name).max().alias(f"{name}_latest_date"))
        if include_days_between:
            days = pl.col(Column.DAYS_FROM_INDEX).filter(is_name)
            days = days.min() if selection == SelectionMethod.MIN else days.max()
            exprs.append(days.alias(f"{name}_days_between"))

    patients = index_lf.select(Column.PATIENT_ID).unique()
    if not exprs:
        return patients.sort(Column.PATIENT_ID)

    aggregated = windowed.filter(pl.col(Column.NAME).is_in(resolved)).group_by(Column.PATIENT_ID).agg(exprs)
    result = patients.join(aggregated, on=Column.PATIENT_ID, how="left").with_columns(
        [pl.col(f"{name}_flag").fill_null(False) for name in resolved]
    )
    return prefix_columns(result, prefix).sort(Column.PATIENT_ID)


def extract_value_by_name(
    events_with_name: NamedEventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    value_column: str,
    function: SelectionMethod | str,
    window: TimeWindow,
    names: Iterable[str] | None = None,
) -> pl.LazyFrame:
    """
    Minimum or maximum of `value_column` per name among the events inside `window`.

    Null values are ignored; patients without a non-null in-window value get null.
    Columns are named `{label}_{name}_{function}_{value_column}`.
    """
    if window is None:
        raise ConfigurationError("extract_value_by_name requires a time window")
    try:
        function = SelectionMethod(function)
    except ValueError as e:
        raise ConfigurationError(f"function must be 'min' or 'max', got {function!r}") from e

    events_lf = as_named_event_table(events_with_name)
    require_columns(events_lf, [value_column], "extract_value_by_name")
    index_lf = as_index_dates(index_dates)
    resolved = _resolve_names(events_lf, names)

    windowed = filter_to_window(events_lf, index_lf, window)
    exprs = []
    for name in resolved:
        values = pl.col(value_column).filter(pl.col(Column.NAME) == name).drop_nulls()
        values = values.min() if function == SelectionMethod.MIN else values.max()
        exprs.append(values.alias(f"{window.label}_{name}_{function}_{value_column}"))

    patients = index_lf.select(Column.PATIENT_ID).unique()
    if not exprs:
        return patients.sort(Column.PATIENT_ID)

    aggregated = windowed.group_by(Column.PATIENT_ID).agg(exprs)
    return patients.join(aggregated, on=Column.PATIENT_ID, how="left").sort(Column.PATIENT_ID)


def covariates_by_name_window(
    events_with_name: NamedEventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    window: TimeWindow,
    separate_by_name: bool = True,
    aggregation_spec: Sequence[str | Reducer] = DEFAULT_AGGREGATION,
    names: Iterable[str] | None = None,
    registry: ReducerRegistry = DEFAULT_REGISTRY,
) -> pl.LazyFrame:
    """
    Window aggregation either per name or pooled over all names.

    Per name, columns are `{name}_{label}_{reducer}`; pooled, `{label}_{reducer}`
    (restricted to `names` when given).
    """
    events_lf = as_named_event_table(events_with_name)
    index_lf = as_index_dates(index_dates)
    reducers = registry.resolve(aggregation_spec)

    if not separate_by_name:
        if names is not None:
            events_lf = events_lf.filter(pl.col(Column.NAME).is_in(_resolve_names(events_lf, names)))
        return multi_window(events_lf, index_lf, [window], reducers, registry=registry)

    result = index_lf.select(Column.PATIENT_ID).unique()
    windowed = filter_to_window(events_lf, index_lf, window)
    for name in _resolve_names(events_lf, names):
        aggregated = aggregate_per_patient(
            windowed.filter(pl.col(Column.NAME) == name),
            index_lf,
            reducers,
            fill_missing=True,
            registry=registry,
        )
        result = result.join(
            prefix_columns(aggregated, f"{name}_{window.label}_"),
            on=Column.PATIENT_ID,
            how="left",
        )
    return result.sort(Column.PATIENT_ID)
