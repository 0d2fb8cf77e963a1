from datetime import date

import polars as pl
import pytest

from curation.common.cancellation import CancellationToken
from curation.errors import ConfigurationError, OperationCancelledError
from curation.windows import (
    DEFAULT_REGISTRY,
    Reducer,
    ReducerKind,
    TimeWindow,
    aggregate_per_patient,
    multi_window,
    value_reducer,
    window_filter,
)


@pytest.fixture
def events() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["p1", "p1", "p1", "p2"],
            "event_date": [date(2023, 12, 2), date(2023, 11, 1), date(2023, 10, 1), date(2023, 12, 31)],
            "code": ["A", "B", "C", "A"],
            "source_id": ["gp", "hes", "gp", "gp"],
            "hba1c": [48.0, None, 52.0, 60.0],
        }
    )


def test_aggregate_fills_absent_patients(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    windowed = window_filter(events, index_dates, "before", 90)
    result = aggregate_per_patient(
        windowed, index_dates, ["n_events", "has_event", "earliest_date", "n_sources"]
    ).collect()

    assert result.to_dicts() == [
        {"patient_id": "p1", "n_events": 2, "has_event": True, "earliest_date": date(2023, 11, 1), "n_sources": 2},
        {"patient_id": "p2", "n_events": 1, "has_event": True, "earliest_date": date(2023, 12, 31), "n_sources": 1},
        {"patient_id": "p3", "n_events": 0, "has_event": False, "earliest_date": None, "n_sources": 0},
    ]


def test_aggregate_without_fill(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    result = aggregate_per_patient(events, index_dates, ["n_events"], fill_missing=False).collect()
    assert result["patient_id"].to_list() == ["p1", "p2"]


def test_days_reducers_derive_delta(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    result = aggregate_per_patient(events, index_dates, ["days_to_earliest", "days_to_latest"]).collect()
    assert result.row(0) == ("p1", -92, -30)
    assert result.row(2) == ("p3", None, None)


def test_value_reducer_ignores_nulls(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    max_hba1c = value_reducer("hba1c", "max")
    result = aggregate_per_patient(events, index_dates, [max_hba1c]).collect()
    assert result["max_hba1c"].to_list() == [52.0, 60.0, None]


def test_unknown_reducer_raises(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    with pytest.raises(ConfigurationError, match="Unknown reducer"):
        aggregate_per_patient(events, index_dates, ["n_evnts"])


def test_reducer_missing_column_raises(index_dates: pl.DataFrame) -> None:
    events = pl.DataFrame({"patient_id": ["p1"], "event_date": [date(2023, 1, 1)]})
    with pytest.raises(ConfigurationError, match="source_id"):
        aggregate_per_patient(events, index_dates, ["n_sources"])


def test_registry_extension() -> None:
    n_codes = Reducer(
        name="n_codes",
        kind=ReducerKind.NUMERIC,
        aggregate=lambda: pl.col("code").n_unique().cast(pl.Int64),
        required_columns=("code",),
    )
    registry = DEFAULT_REGISTRY.with_reducers(n_codes)
    assert "n_codes" in registry
    assert "n_codes" not in DEFAULT_REGISTRY
    with pytest.raises(ConfigurationError, match="Duplicate"):
        registry.resolve(["n_codes", "n_codes"])


def test_multi_window_does_not_double_count() -> None:
    index_dates = pl.DataFrame({"patient_id": ["p1"], "index_date": [date(2024, 1, 1)]})
    events = pl.DataFrame(
        {
            "patient_id": ["p1", "p1", "p1"],
            # 30, 31 and 90 days before the index date
            "event_date": [date(2023, 12, 2), date(2023, 12, 1), date(2023, 10, 3)],
        }
    )
    windows = [TimeWindow.before("last_30d", 30), TimeWindow.before("30to90d", 90, 30)]
    result = multi_window(events, index_dates, windows, ["n_events"]).collect()

    assert result.columns == ["patient_id", "last_30d_n_events", "30to90d_n_events"]
    assert result.row(0) == ("p1", 1, 2)


def test_multi_window_one_row_per_index_entry(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    windows = [TimeWindow.before("year", 365), TimeWindow.after("after", 0, 30)]
    result = multi_window(events, index_dates, windows).collect()

    assert result.height == index_dates.height
    assert result.filter(pl.col("patient_id") == "p3").row(0) == ("p3", 0, False, 0, False)


def test_multi_window_duplicate_labels_raise(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    windows = [TimeWindow.before("w", 30), TimeWindow.after("w", 0, 30)]
    with pytest.raises(ConfigurationError, match="Duplicate window labels"):
        multi_window(events, index_dates, windows)


def test_multi_window_cancelled(events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelledError):
        multi_window(events, index_dates, [TimeWindow.before("year", 365)], cancel_token=token)


def test_duplicate_index_dates_raise(events: pl.DataFrame) -> None:
    index_dates = pl.DataFrame({"patient_id": ["p1", "p1"], "index_date": [date(2024, 1, 1)] * 2})
    with pytest.raises(ConfigurationError, match="one row per patient_id"):
        multi_window(events, index_dates, [TimeWindow.before("w", 365)])
    with pytest.raises(ConfigurationError, match="one row per patient_id"):
        aggregate_per_patient(events, index_dates)
