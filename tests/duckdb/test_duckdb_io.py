from __future__ import annotations

from datetime import date

import duckdb
import polars as pl
import pytest

from curation.config import parse_config
from curation.constants import Schema
from curation.db.duckdb_io import (
    get_table_summary,
    read_table,
    split_table_name,
    table_exists,
    write_dataframe,
    write_dataframes,
)
from curation.errors import ConfigurationError
from curation.etl import run_pipeline


@pytest.fixture
def con():
    con = duckdb.connect(":memory:")
    yield con
    con.close()


@pytest.fixture
def source_tables() -> dict[str, pl.DataFrame]:
    return {
        "date_of_birth": pl.DataFrame(
            {
                "patient_id": ["P1", "P1", "P2", "P3", "P4"],
                "source_id": ["A", "B", "A", "A", "B"],
                "priority": [1, 2, 1, 1, 2],
                "date_of_birth": [
                    date(1950, 5, 15),
                    date(1950, 5, 15),
                    date(2010, 6, 1),
                    date(1980, 1, 1),
                    date(1975, 3, 3),
                ],
            }
        ),
        "sex": pl.DataFrame(
            {
                "patient_id": ["P1", "P1", "P2", "P3", "P4"],
                "source_id": ["A", "B", "A", "B", "B"],
                "priority": [1, 2, 1, 2, 2],
                "sex_code": ["M", "F", "F", None, "F"],
            }
        ),
        "events": pl.DataFrame(
            {
                "patient_id": ["P1", "P4", "P2"],
                "event_date": [date(2022, 3, 15), date(2024, 3, 1), date(2023, 12, 1)],
                "code": ["E11 ", "I63", "E11"],
                "source_id": ["A", "B", "A"],
            }
        ),
        "code_lookup": pl.DataFrame(
            {
                "code": ["E11", "I63"],
                "name": ["Diabetes", "Stroke"],
                "description": ["Type 2 diabetes mellitus", "Cerebral infarction"],
                "terminology": ["ICD10", "ICD10"],
            }
        ),
    }


def test_write_and_read_table(con) -> None:
    df = pl.DataFrame({"patient_id": ["p1", "p2"], "index_date": [date(2024, 1, 1), None]})
    write_dataframe(con, Schema.CURATED, "index_dates", df)

    assert table_exists(con, "curated", "index_dates")
    assert read_table(con, "curated.index_dates").collect().rows() == [
        ("p1", date(2024, 1, 1)),
        ("p2", None),
    ]
    assert get_table_summary(con, Schema.CURATED) == {"curated.index_dates": 2}


def test_read_missing_table_raises(con) -> None:
    with pytest.raises(ConfigurationError, match="source.events"):
        read_table(con, "source.events")


def test_split_table_name() -> None:
    assert split_table_name("source.events") == ("source", "events")
    assert split_table_name("events") == ("main", "events")


def test_run_pipeline(con, source_tables: dict[str, pl.DataFrame]) -> None:
    write_dataframes(con, Schema.SOURCE, source_tables)
    config = parse_config(
        {
            "assets": {
                "date_of_birth": {"table": "source.date_of_birth", "value_columns": ["date_of_birth"]},
                "sex": {"table": "source.sex", "value_columns": ["sex_code"]},
            },
            "cohort": {
                "index_date": "2024-01-01",
                "min_age": 18,
                "demographics": {"date_of_birth": "date_of_birth", "sex": "sex"},
            },
            "features": {
                "events_table": "source.events",
                "lookup_table": "source.code_lookup",
                "covariates": ["Diabetes"],
                "outcomes": ["Stroke"],
                "windows": [{"label": "last_year", "start_offset": 365}],
            },
            "preprocessing": {
                "clean_codes": {"type": "data_transformation", "column": "code", "transform_type": "string_cleaning"},
            },
        }
    )
    result = run_pipeline(con, config)

    assert result.resolved["sex"].filter(pl.col("patient_id") == "P1")["sex_code"].to_list() == ["M"]
    assert result.asset_conflicts["sex"] == {"sex_code": 1}
    assert result.exclusion_report.excluded_by_rule == {"min_age": 1, "sex_known": 1}

    cohort = con.execute("SELECT patient_id FROM curated.cohort ORDER BY patient_id").fetchall()
    assert cohort == [("P1",), ("P4",)]

    covariates = read_table(con, "features.covariates").collect()
    assert covariates.select("patient_id", "Diabetes_covariate_flag", "Diabetes_days_to_index").rows() == [
        ("P1", True, -657),
        ("P4", False, None),
    ]
    outcomes = result.features["outcomes"]
    assert outcomes["Stroke_outcome_flag"].to_list() == [False, True]
    assert result.features["windows"].columns == ["patient_id", "last_year_n_events", "last_year_has_event"]

    assert set(get_table_summary(con, Schema.FEATURES)) == {
        "features.covariates",
        "features.outcomes",
        "features.windows",
    }
    assert result.reports["preprocessing"].ok


def test_run_pipeline_omits_failed_assets(con, source_tables: dict[str, pl.DataFrame]) -> None:
    write_dataframes(
        con,
        Schema.SOURCE,
        {
            "date_of_birth": source_tables["date_of_birth"],
            "sex": source_tables["sex"].drop("priority"),
        },
    )
    config = parse_config(
        {
            "assets": {
                "date_of_birth": {"table": "source.date_of_birth", "value_columns": ["date_of_birth"]},
                "sex": {"table": "source.sex", "value_columns": ["sex_code"]},
            },
        }
    )
    result = run_pipeline(con, config)

    report = result.reports["assets"]
    assert report.summary()["failed_items"] == 1
    assert "priority" in report.summary()["errors"]["sex"]
    assert list(result.resolved) == ["date_of_birth"]
    assert list(result.asset_summaries) == ["date_of_birth"]
    assert list(result.asset_conflicts) == ["date_of_birth"]
    assert not table_exists(con, "curated", "sex")
    assert table_exists(con, "curated", "date_of_birth")
