"""Window membership of events relative to per-patient index dates."""

import polars as pl

from curation.common.constants import Column, Direction
from curation.common.models import (
    EventTable,
    IndexDates,
    as_event_table,
    as_index_dates,
)
from curation.windows.time_window import TimeWindow, window_membership
from tabular.engine.polars.functions.datetime import datediff


def with_days_from_index(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
) -> pl.LazyFrame:
    """
    Attach index_date and the signed day delta `days_from_index` to every event.

    Events of patients without an index date and events without a date are dropped.
    """
    events_lf = as_event_table(events)
    index_lf = as_index_dates(index_dates)

    if Column.INDEX_DATE in events_lf.collect_schema():
        events_lf = events_lf.drop(Column.INDEX_DATE)

    return (
        events_lf.filter(pl.col(Column.EVENT_DATE).is_not_null())
        .join(index_lf, on=Column.PATIENT_ID, how="inner")
        .with_columns(
            datediff(pl.col(Column.INDEX_DATE), pl.col(Column.EVENT_DATE)).alias(
                Column.DAYS_FROM_INDEX
            )
        )
    )


def window_filter(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    direction: Direction | str,
    start_offset: int | None = None,
    end_offset: int | None = None,
) -> pl.LazyFrame:
    """
    Keep the events inside a before or after window of each patient's index date.

    Offsets are validated before the frame is touched. Unset offsets take the
    direction defaults described in `curation.windows.time_window`.

    Returns the kept events with index_date and days_from_index added.
    """
    membership = window_membership(
        pl.col(Column.DAYS_FROM_INDEX), direction, start_offset, end_offset
    )
    return with_days_from_index(events, index_dates).filter(membership)


def filter_to_window(
    events: EventTable | pl.LazyFrame | pl.DataFrame,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame,
    window: TimeWindow,
) -> pl.LazyFrame:
    return window_filter(
        events, index_dates, window.direction, window.start_offset, window.end_offset
    )
