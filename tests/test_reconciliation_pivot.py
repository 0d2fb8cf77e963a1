import polars as pl
import pytest

from curation.errors import ConfigurationError
from curation.reconciliation import ordered_sources, pivot_wide_by_source, unpivot_wide_by_source


@pytest.fixture
def sex_asset() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["p1", "p1", "p2", "p3"],
            "source_id": ["hes", "gp", "gp", "hes"],
            "priority": [2, 1, 1, 2],
            "sex_code": ["F", "M", "F", None],
        }
    )


def test_sources_ordered_by_priority(sex_asset: pl.DataFrame) -> None:
    assert ordered_sources(sex_asset) == ["gp", "hes"]


def test_pivot_one_column_per_source(sex_asset: pl.DataFrame) -> None:
    wide = pivot_wide_by_source(sex_asset, "sex_code").collect()
    assert wide.columns == ["patient_id", "gp_sex_code", "hes_sex_code"]
    assert wide.to_dicts() == [
        {"patient_id": "p1", "gp_sex_code": "M", "hes_sex_code": "F"},
        {"patient_id": "p2", "gp_sex_code": "F", "hes_sex_code": None},
        {"patient_id": "p3", "gp_sex_code": None, "hes_sex_code": None},
    ]


def test_unpivot_restores_non_null_records(sex_asset: pl.DataFrame) -> None:
    wide = pivot_wide_by_source(sex_asset, ["sex_code"])
    long = unpivot_wide_by_source(wide, ["sex_code"]).collect()
    assert long.to_dicts() == [
        {"patient_id": "p1", "source_id": "gp", "sex_code": "M"},
        {"patient_id": "p1", "source_id": "hes", "sex_code": "F"},
        {"patient_id": "p2", "source_id": "gp", "sex_code": "F"},
    ]


def test_unpivot_with_explicit_sources(sex_asset: pl.DataFrame) -> None:
    wide = pivot_wide_by_source(sex_asset, "sex_code")
    long = unpivot_wide_by_source(wide, "sex_code", source_ids=["hes"]).collect()
    assert long["source_id"].to_list() == ["hes"]


def test_empty_value_columns_raise(sex_asset: pl.DataFrame) -> None:
    with pytest.raises(ConfigurationError):
        pivot_wide_by_source(sex_asset, [])
