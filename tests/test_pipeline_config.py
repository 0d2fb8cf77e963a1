from datetime import date
from pathlib import Path

import pytest

from curation.common.constants import Direction
from curation.config import load_config, parse_config, parse_step
from curation.errors import ConfigurationError, InvalidWindowError
from curation.preprocessing import (
    CodeMatchStep,
    DataTransformationStep,
    EventFlagStep,
    TransformType,
    ValidationAction,
    ValueValidationStep,
)

PIPELINE_YAML = """
assets:
  date_of_birth: {table: source.date_of_birth, value_columns: [date_of_birth]}
  sex: {table: source.sex, value_columns: sex_code}
cohort:
  index_date: 2024-01-01
  min_age: 18
  demographics: {date_of_birth: date_of_birth, sex: sex}
features:
  events_table: source.events
  lookup_table: source.code_lookup
  covariates: [Diabetes]
  outcomes: [Stroke]
  outcome_window: {end_offset: 365}
  windows:
    - {label: last_30d, start_offset: 30}
    - {label: 30to90d, start_offset: 90, end_offset: 30}
preprocessing:
  clean_codes: {type: data_transformation, column: code, transform_type: string_cleaning}
"""


def test_load_config(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.yaml"
    path.write_text(PIPELINE_YAML, encoding="utf-8")
    config = load_config(path)

    assert [asset.name for asset in config.assets] == ["date_of_birth", "sex"]
    assert config.asset("sex").value_columns == ("sex_code",)
    assert config.asset("sex").table == "source.sex"
    assert config.cohort.index_date == date(2024, 1, 1)
    assert config.cohort.criteria.min_age == 18
    assert config.cohort.criteria.require_known_sex

    features = config.features
    assert features.covariates == ("Diabetes",)
    assert features.covariate_window is None
    assert features.outcome_window.direction == Direction.AFTER
    assert (features.outcome_window.start_offset, features.outcome_window.end_offset) == (0, 365)
    assert [(w.label, w.start_offset, w.end_offset) for w in features.windows] == [
        ("last_30d", 30, 0),
        ("30to90d", 90, 30),
    ]
    assert features.aggregation == ("n_events", "has_event")
    assert config.preprocessing == (
        DataTransformationStep("clean_codes", "code", TransformType.STRING_CLEANING),
    )


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("assets: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_config(path)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="does not exist"):
        load_config(tmp_path / "missing.yaml")


def test_parse_steps() -> None:
    assert parse_step("icd10", {"type": "code_match", "lookup_source": "icd10", "output_columns": "name"}) == (
        CodeMatchStep("icd10", "icd10", output_columns=("name",))
    )

    validation = parse_step("hba1c", {"type": "value_validation", "column": "hba1c", "action": "transform", "max_value": 200})
    assert isinstance(validation, ValueValidationStep)
    assert validation.action == ValidationAction.REPLACE

    flag = parse_step(
        "stroke",
        {"type": "outcome_flag", "outcome_name": "stroke", "event_codes": ["I63", "I64"], "aggregate_to_patient": True},
    )
    assert flag == EventFlagStep("stroke", Direction.AFTER, ("I63", "I64"), aggregate_to_patient=True)
    assert flag.output_flag_column == "has_stroke"


def test_unknown_step_type_raises() -> None:
    with pytest.raises(ConfigurationError, match="unknown step type 'regex'"):
        parse_step("codes", {"type": "regex"})


@pytest.mark.parametrize(
    "raw, message",
    [
        ({}, "no assets"),
        ({"assets": {"sex": {"table": "source.sex"}}}, "value_columns"),
        (
            {
                "assets": {"sex": {"table": "source.sex", "value_columns": ["sex_code"]}},
                "cohort": {"index_date": "2024-01-01", "demographics": {"date_of_birth": "dob", "sex": "sex"}},
            },
            "unknown assets dob",
        ),
        (
            {
                "assets": {"sex": {"table": "source.sex", "value_columns": ["sex_code"]}},
                "features": {"events_table": "source.events", "lookup_table": "source.lookup"},
            },
            "cohort",
        ),
    ],
)
def test_invalid_configs_raise(raw: dict, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        parse_config(raw)


def test_invalid_window_in_config() -> None:
    raw = {
        "assets": [{"name": "sex", "table": "source.sex", "value_columns": ["sex_code"]}],
        "cohort": {"index_date": "2024-01-01", "demographics": {"date_of_birth": "sex", "sex": "sex"}},
        "features": {
            "events_table": "source.events",
            "lookup_table": "source.lookup",
            "windows": [{"label": "bad", "start_offset": 10, "end_offset": 30}],
        },
    }
    with pytest.raises(InvalidWindowError):
        parse_config(raw)
