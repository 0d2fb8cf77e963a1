from datetime import date

import polars as pl
import pytest

from curation.errors import ConfigurationError
from curation.preprocessing import (
    CodeMatchStep,
    DataTransformationStep,
    EventFlagStep,
    JoinType,
    TransformType,
    ValidationAction,
    ValueValidationStep,
    apply_preprocessing,
    apply_step,
    attach_names,
    codes_for_name,
    lookup_names,
)
from curation.reporting import ItemStatus


@pytest.fixture
def raw_events() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "patient_id": ["p1", "p1", "p2", "p3"],
            "event_date": ["2023-06-01", "2024-02-01", "2023-12-31", "2024-01-01"],
            "code": [" e11 ", "I63", "E11", "X99"],
            "hba1c": ["48", "abc", "120", " 52 "],
        }
    )


@pytest.fixture
def icd10_lookup() -> pl.DataFrame:
    return pl.DataFrame({"icd_code": ["E11", "I63"], "condition": ["Diabetes", "Stroke"]})


def _sorted(lf: pl.LazyFrame) -> pl.DataFrame:
    return lf.collect().sort("patient_id", "event_date")


def test_string_cleaning(raw_events: pl.DataFrame) -> None:
    step = DataTransformationStep("clean_codes", "code", TransformType.STRING_CLEANING)
    assert apply_step(raw_events, step).collect()["code"].to_list() == ["E11", "I63", "E11", "X99"]


def test_numeric_and_date_conversion(raw_events: pl.DataFrame) -> None:
    numeric = DataTransformationStep("hba1c_numeric", "hba1c", TransformType.NUMERIC_CONVERSION)
    dates = DataTransformationStep("event_dates", "event_date", TransformType.DATE_CONVERSION)
    result = apply_step(apply_step(raw_events, numeric), dates).collect()

    assert result["hba1c"].to_list() == [48.0, None, 120.0, 52.0]
    assert result["event_date"].dtype == pl.Date
    assert result["event_date"][0] == date(2023, 6, 1)


def test_categorical_mapping() -> None:
    data = pl.DataFrame({"sex": ["1", "2", "9"]})
    step = DataTransformationStep("sex", "sex", TransformType.CATEGORICAL_MAPPING, mapping={"1": "M", "2": "F"})
    assert apply_step(data, step).collect()["sex"].to_list() == ["M", "F", None]

    with pytest.raises(ConfigurationError):
        apply_step(data, DataTransformationStep("sex", "sex", TransformType.CATEGORICAL_MAPPING))


@pytest.mark.parametrize(
    "action, column, expected",
    [
        # nulls are always valid
        (ValidationAction.FLAG, "hba1c_valid", [True, True, False]),
        (ValidationAction.FILTER, "hba1c", [10.0, None]),
        (ValidationAction.REPLACE, "hba1c", [10.0, None, None]),
    ],
)
def test_value_validation(action: ValidationAction, column: str, expected: list) -> None:
    data = pl.DataFrame({"hba1c": [10.0, None, 150.0]})
    step = ValueValidationStep("hba1c_range", "hba1c", min_value=0, max_value=100, action=action)
    assert apply_step(data, step).collect()[column].to_list() == expected


def test_allowed_values() -> None:
    data = pl.DataFrame({"sex_code": ["M", "F", "U", None]})
    step = ValueValidationStep("sex", "sex_code", allowed_values=("M", "F"), action=ValidationAction.FILTER)
    assert apply_step(data, step).collect()["sex_code"].to_list() == ["M", "F", None]


def test_code_match(raw_events: pl.DataFrame, icd10_lookup: pl.DataFrame) -> None:
    clean = apply_step(raw_events, DataTransformationStep("clean", "code", TransformType.STRING_CLEANING))
    step = CodeMatchStep("conditions", "icd10", match_column="icd_code")
    result = _sorted(apply_step(clean, step, lookups={"icd10": icd10_lookup}))

    assert result.select("patient_id", "code", "condition").rows() == [
        ("p1", "E11", "Diabetes"),
        ("p1", "I63", "Stroke"),
        ("p2", "E11", "Diabetes"),
        ("p3", "X99", None),
    ]

    inner = CodeMatchStep("conditions", "icd10", match_column="icd_code", join_type=JoinType.INNER)
    assert apply_step(clean, inner, lookups={"icd10": icd10_lookup}).collect().height == 3


def test_code_match_unknown_lookup(raw_events: pl.DataFrame) -> None:
    with pytest.raises(ConfigurationError, match="Unknown lookup table"):
        apply_step(raw_events, CodeMatchStep("conditions", "snomed"), lookups={})


def test_event_flag_rows(raw_events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    step = EventFlagStep("diabetes", "before", codes=("E11",))
    clean = apply_step(raw_events, DataTransformationStep("clean", "code", TransformType.STRING_CLEANING))
    result = _sorted(apply_step(clean, step, index_dates=index_dates))

    assert "index_date" not in result.columns
    assert result["has_diabetes"].to_list() == [True, False, True, False]


def test_event_flag_aggregated(raw_events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    step = EventFlagStep("stroke", "after", codes=("I63",), aggregate_to_patient=True)
    result = apply_step(raw_events, step, index_dates=index_dates).collect()

    assert result.rows() == [
        ("p1", True, date(2024, 2, 1)),
        ("p2", False, None),
        ("p3", False, None),
    ]


def test_event_flag_needs_index_dates(raw_events: pl.DataFrame) -> None:
    with pytest.raises(ConfigurationError, match="index dates"):
        apply_step(raw_events, EventFlagStep("stroke", "after", codes=("I63",)))


def test_apply_preprocessing_skips_failing_step(raw_events: pl.DataFrame, index_dates: pl.DataFrame) -> None:
    steps = [
        DataTransformationStep("clean_codes", "code", TransformType.STRING_CLEANING),
        ValueValidationStep("bmi_range", "bmi", min_value=10, max_value=80),
        EventFlagStep("diabetes", "before", codes=("E11",)),
    ]
    result, report = apply_preprocessing(raw_events, steps, index_dates=index_dates)

    assert report.names(ItemStatus.OK) == ["clean_codes", "diabetes"]
    assert [item.name for item in report.failed] == ["bmi_range"]
    assert "bmi" in report.failed[0].error
    assert result.sort("patient_id", "event_date")["has_diabetes"].to_list() == [True, False, True, False]


def test_lookup_helpers(code_lookup: pl.DataFrame) -> None:
    assert lookup_names(code_lookup) == ["Diabetes", "Stroke"]
    assert codes_for_name(code_lookup, " Stroke ") == ["I63", "I64"]
    with pytest.raises(ConfigurationError, match="missing required column"):
        lookup_names(code_lookup.drop("terminology"))


def test_attach_names_date_range(coded_events: pl.DataFrame, code_lookup: pl.DataFrame) -> None:
    named = attach_names(
        coded_events,
        code_lookup,
        event_date_range=(date(2023, 1, 1), date(2023, 12, 31)),
    ).collect()
    assert sorted(named["code"].to_list()) == ["E11.9", "I64"]

    unmatched = coded_events.with_columns(pl.lit("Z00").alias("code"))
    kept = attach_names(unmatched, code_lookup, keep_unmatched=True).collect()
    assert kept.height == coded_events.height
    assert kept["name"].null_count() == kept.height
