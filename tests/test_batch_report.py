import polars as pl
import pytest

from curation.common.cancellation import CancellationToken
from curation.errors import ConfigurationError, EmptyInputResult, OperationCancelledError
from curation.reporting import ItemStatus, run_batch


def _frame(n: int) -> pl.LazyFrame:
    return pl.LazyFrame({"patient_id": [f"p{i}" for i in range(n)]})


def _fail() -> pl.LazyFrame:
    raise ConfigurationError("No codes found for name 'Asthma'")


def test_failures_are_isolated() -> None:
    frames, report = run_batch([("a", lambda: _frame(2)), ("b", _fail), ("c", lambda: _frame(1).collect())])

    assert list(frames) == ["a", "c"]
    assert report.names() == ["a", "b", "c"]
    assert report.summary() == {
        "total_items": 3,
        "ok_items": 2,
        "empty_items": 0,
        "failed_items": 1,
        "errors": {"b": "ConfigurationError: No codes found for name 'Asthma'"},
    }
    assert report.to_frame()["status"].to_list() == ["ok", "failed", "ok"]


def test_polars_errors_are_isolated() -> None:
    def bad() -> pl.LazyFrame:
        return pl.LazyFrame({"x": ["a"]}).select(pl.col("missing"))

    frames, report = run_batch([("bad", bad)])
    assert frames == {}
    assert report.failed[0].status == ItemStatus.FAILED


def test_other_errors_propagate() -> None:
    def broken() -> pl.LazyFrame:
        raise KeyError("bug")

    with pytest.raises(KeyError):
        run_batch([("broken", broken)])


def test_empty_result_warns_and_is_kept() -> None:
    with pytest.warns(EmptyInputResult, match="empty_item"):
        frames, report = run_batch([("empty_item", lambda: _frame(0))])
    assert frames["empty_item"].is_empty()
    assert report.names(ItemStatus.EMPTY) == ["empty_item"]
    assert report.ok


def test_cancellation_stops_the_run() -> None:
    token = CancellationToken()
    calls = []

    def first() -> pl.LazyFrame:
        calls.append("first")
        token.cancel()
        return _frame(1)

    def second() -> pl.LazyFrame:
        calls.append("second")
        return _frame(1)

    with pytest.raises(OperationCancelledError, match="second"):
        run_batch([("first", first), ("second", second)], cancel_token=token)
    assert calls == ["first"]


def test_merge_keeps_order() -> None:
    _, first = run_batch([("a", lambda: _frame(1))])
    _, second = run_batch([("b", _fail)])
    merged = first.merge(second)
    assert merged.names() == ["a", "b"]
    assert not merged.ok
