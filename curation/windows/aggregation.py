"""Per-patient aggregation of windowed events."""

from collections.abc import Iterable, Sequence

import polars as pl

from curation.common.cancellation import CancellationToken, check_cancelled
from curation.common.constants import Column
from curation.common.frames import require_columns
from curation.common.models import EventTable, IndexDates, as_event_table, as_index_dates
from curation.errors import ConfigurationError
from curation.windows.filtering import filter_to_window, with_days_from_index
from curation.windows.reducers import (
    DEFAULT_AGGREGATION,
    DEFAULT_REGISTRY,
    Reducer,
    ReducerRegistry,
)
from curation.windows.time_window import TimeWindow
from tabular.logger.logger import log_debug, log_info

_MATCHED = "_matched"


def _check_reducer_columns(
    events: pl.LazyFrame, reducers: list[Reducer], context: str
) -> None:
    # days_from_index is derived from the index dates when missing
    required = {
        column
        for reducer in reducers
        for column in reducer.required_columns
        if column != Column.DAYS_FROM_INDEX
    }
    require_columns(events, sorted(required), context)


def fill_absent(
    patients: pl.LazyFrame,
    aggregated: pl.LazyFrame,
    reducers: list[Reducer],
    aliases: dict[str, str] | None = None,
) -> pl.LazyFrame:
    """
    Left join aggregates onto `patients` and give absent patients the reducer defaults.

    Only patients without any matched event are filled, so a reducer that yields null
    for a matched patient stays null.
    """
    aliases = aliases or {}
    fills = []
    for reducer in reducers:
        column = aliases.get(reducer.name, reducer.name)
        if reducer.fill_value is None:
            continue
        fills.append(
            pl.when(pl.col(_MATCHED).is_null())
            .then(pl.lit(reducer.fill_value))
            .otherwise(pl.col(column))
            .alias(column)
        )

    joined = patients.join(
        aggregated.with_columns(pl.lit(True).alias(_MATCHED)),
        on=Column.PATIENT_ID,
        how="left",
    )
    if fills:
        joined = joined.with_columns(fills)
    return joined.drop(_MATCHED)


def aggregate_per_patient(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    aggregation_spec: Iterable[str | Reducer] = DEFAULT_AGGREGATION,
    fill_missing: bool = True,
    registry: ReducerRegistry = DEFAULT_REGISTRY,
) -> pl.LazyFrame:
    """
    Reduce (already windowed) events to one row per patient.

    Args:
        events: Events, usually the output of `window_filter`. When
            days_from_index is missing it is derived from `index_dates`.
        index_dates: Patients of the study with their index dates.
        aggregation_spec: Reducer names from `registry` and/or ad hoc Reducers.
        fill_missing: When True every patient of `index_dates` appears, absent
            patients get 0 for numeric, False for boolean and null for date or
            value reducers. When False only patients with events appear.
        registry: Registry used to resolve reducer names.

    Returns:
        LazyFrame with patient_id and one column per reducer, sorted by patient_id.

    Raises:
        ConfigurationError: unknown reducer name or missing required column.
    """
    reducers = registry.resolve(aggregation_spec)
    events_lf = as_event_table(events)
    _check_reducer_columns(events_lf, reducers, "aggregate_per_patient")
    index_lf = as_index_dates(index_dates)

    if Column.DAYS_FROM_INDEX in events_lf.collect_schema():
        events_lf = events_lf.join(
            index_lf.select(Column.PATIENT_ID), on=Column.PATIENT_ID, how="semi"
        )
    else:
        events_lf = with_days_from_index(events_lf, index_lf)

    log_debug(f"reducers: {', '.join(reducer.name for reducer in reducers)}")

    aggregated = events_lf.group_by(Column.PATIENT_ID).agg(
        [reducer.expr() for reducer in reducers]
    )

    if not fill_missing:
        return aggregated.sort(Column.PATIENT_ID)

    patients = index_lf.select(Column.PATIENT_ID).unique()
    return fill_absent(patients, aggregated, reducers).sort(Column.PATIENT_ID)


def prefix_columns(lf: pl.LazyFrame, prefix: str, keep: Sequence[str] = (Column.PATIENT_ID,)) -> pl.LazyFrame:
    """Prefix every column except `keep` with `prefix`."""
    names = lf.collect_schema().names()
    return lf.rename({name: f"{prefix}{name}" for name in names if name not in keep})


def check_unique_labels(windows: Sequence[TimeWindow]) -> None:
    if not windows:
        raise ConfigurationError("At least one time window is required")
    labels = [window.label for window in windows]
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate window labels: {', '.join(duplicates)}")


def multi_window(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    windows: Sequence[TimeWindow],
    aggregation_spec: Iterable[str | Reducer] = DEFAULT_AGGREGATION,
    registry: ReducerRegistry = DEFAULT_REGISTRY,
    cancel_token: CancellationToken | None = None,
) -> pl.LazyFrame:
    """
    Aggregate events once per window and join all windows onto the index dates.

    Every produced column is prefixed with `{label}_`. The result holds exactly one
    row per index_dates entry; patients without events carry the reducer defaults.

    With a `cancel_token`, each window is computed eagerly and the token is
    checked before every window.

    Raises:
        ConfigurationError: duplicate labels, unknown reducers or missing columns.
        OperationCancelledError: the token was cancelled between windows.
    """
    check_unique_labels(windows)
    aggregation_spec = list(aggregation_spec) if not isinstance(aggregation_spec, str) else [aggregation_spec]
    reducers = registry.resolve(aggregation_spec)
    events_lf = as_event_table(events)
    _check_reducer_columns(events_lf, reducers, "multi_window")
    index_lf = as_index_dates(index_dates)

    log_info(
        f"{len(windows)} window(s): {', '.join(window.label for window in windows)}"
    )

    result = index_lf.select(Column.PATIENT_ID)
    for window in windows:
        check_cancelled(cancel_token, f"multi_window({window.label})")
        windowed = filter_to_window(events_lf, index_lf, window)
        aggregated = aggregate_per_patient(
            windowed, index_lf, reducers, fill_missing=True, registry=registry
        )
        aggregated = prefix_columns(aggregated, f"{window.label}_")
        if cancel_token is not None:
            aggregated = aggregated.collect().lazy()
        result = result.join(aggregated, on=Column.PATIENT_ID, how="left")

    return result.sort(Column.PATIENT_ID)
