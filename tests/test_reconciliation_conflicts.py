from datetime import date

import polars as pl
import pytest

from curation.errors import ConfigurationError
from curation.reconciliation import conflict_rates, detect_conflicts


@pytest.fixture
def dob_asset() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["P1", "P1"],
            "source_id": ["A", "B"],
            "priority": [1, 2],
            "date_of_birth": [date(1950, 5, 15), date(1950, 5, 15)],
        }
    )


@pytest.fixture
def sex_asset() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["P1", "P1", "P2", "P2", "P3", "P3"],
            "source_id": ["A", "B", "A", "B", "A", "B"],
            "priority": [1, 2, 1, 2, 1, 2],
            "sex_code": ["M", "M", "M", "F", None, "F"],
        }
    )


def test_equal_values_are_not_a_conflict(dob_asset: pl.DataFrame) -> None:
    conflicts = detect_conflicts(dob_asset, "date_of_birth").collect()
    assert conflicts.is_empty()


def test_differing_values_are_reported(sex_asset: pl.DataFrame) -> None:
    conflicts = detect_conflicts(sex_asset, "sex_code").collect()

    assert conflicts["patient_id"].to_list() == ["P2"]
    row = conflicts.row(0, named=True)
    assert row["values"] == ["M", "F"]
    assert row["n_values"] == 2
    assert row["n_sources"] == 2
    assert row["values_label"] == "M vs F"
    assert row["provenance"] == [
        {"source_id": "A", "value": "M", "priority": 1},
        {"source_id": "B", "value": "F", "priority": 2},
    ]


def test_null_values_never_conflict(sex_asset: pl.DataFrame) -> None:
    conflicts = detect_conflicts(sex_asset, "sex_code").collect()
    assert "P3" not in conflicts["patient_id"].to_list()


def test_values_follow_priority_not_row_order() -> None:
    table = pl.DataFrame(
        {
            "patient_id": ["P1", "P1", "P1"],
            "source_id": ["C", "B", "A"],
            "priority": [3, 1, 2],
            "sex_code": ["X", "F", "M"],
        }
    )
    row = detect_conflicts(table, "sex_code").collect().row(0, named=True)
    assert row["values"] == ["F", "M", "X"]
    assert row["values_label"] == "F vs M vs X"
    assert row["n_sources"] == 3


def test_without_priority_orders_by_source_id() -> None:
    table = pl.DataFrame(
        {
            "patient_id": ["P1", "P1"],
            "source_id": ["hes", "gp"],
            "ethnicity_code": ["B", "A"],
        }
    )
    row = detect_conflicts(table, "ethnicity_code").collect().row(0, named=True)
    assert row["values"] == ["A", "B"]


def test_unknown_column_raises(sex_asset: pl.DataFrame) -> None:
    with pytest.raises(ConfigurationError, match="lsoa_code"):
        detect_conflicts(sex_asset, "lsoa_code")


def test_metadata_column_is_not_a_value(sex_asset: pl.DataFrame) -> None:
    with pytest.raises(ConfigurationError):
        detect_conflicts(sex_asset, "source_id")


def test_conflict_rates(sex_asset: pl.DataFrame) -> None:
    rates = conflict_rates(sex_asset, ["sex_code"])
    assert rates.to_dicts() == [
        {"column": "sex_code", "n_conflicts": 1, "n_patients": 3, "conflict_rate": pytest.approx(1 / 3)}
    ]
