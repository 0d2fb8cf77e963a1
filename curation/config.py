"""
Pipeline configuration loader.

The YAML file names the long format asset tables to reconcile, the cohort
criteria, the features to generate and the preprocessing steps to apply to the
event table. It is parsed once into frozen dataclasses; everything downstream
works with these typed views, never with the raw dictionaries.

Example:

    assets:
      date_of_birth: {table: source.date_of_birth, value_columns: [date_of_birth]}
      sex: {table: source.sex, value_columns: [sex_code]}
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
        - {label: last_30d, direction: before, start_offset: 30}
    preprocessing:
      clean_codes: {type: data_transformation, column: code, transform_type: string_cleaning}
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from curation.cohort.eligibility import EligibilityCriteria
from curation.common.constants import Column, Direction, SelectionMethod
from curation.errors import ConfigurationError
from curation.preprocessing.steps import (
    CodeMatchStep,
    DataTransformationStep,
    EventFlagStep,
    JoinType,
    PreprocessingStep,
    TransformType,
    ValidationAction,
    ValueValidationStep,
)
from curation.windows.reducers import DEFAULT_AGGREGATION
from curation.windows.time_window import TimeWindow

DEMOGRAPHIC_ROLES = ("date_of_birth", "sex", "ethnicity", "lsoa")


@dataclass(frozen=True)
class AssetConfig:
    """A long format asset table and its value columns."""

    name: str
    table: str
    value_columns: tuple[str, ...]


@dataclass(frozen=True)
class CohortConfig:
    criteria: EligibilityCriteria
    demographics: Mapping[str, str]
    index_date: date | None = None
    index_date_table: str | None = None


@dataclass(frozen=True)
class FeatureConfig:
    events_table: str
    lookup_table: str
    covariates: tuple[str, ...] = ()
    outcomes: tuple[str, ...] = ()
    covariate_window: TimeWindow | None = None
    outcome_window: TimeWindow | None = None
    selection_method: SelectionMethod = SelectionMethod.MIN
    windows: tuple[TimeWindow, ...] = ()
    aggregation: tuple[str, ...] = DEFAULT_AGGREGATION


@dataclass(frozen=True)
class PipelineConfig:
    assets: tuple[AssetConfig, ...]
    cohort: CohortConfig | None = None
    features: FeatureConfig | None = None
    preprocessing: tuple[PreprocessingStep, ...] = ()
    lookups: Mapping[str, str] = field(default_factory=dict)

    def asset(self, name: str) -> AssetConfig:
        for asset in self.assets:
            if asset.name == name:
                return asset
        raise ConfigurationError(f"Unknown asset: {name}")


def _require(raw: Mapping[str, Any], key: str, context: str) -> Any:
    if key not in raw or raw[key] is None:
        raise ConfigurationError(f"{context}: missing required key '{key}'")
    return raw[key]


def _as_tuple(value: Any) -> tuple:
    if value is None:
        return ()
    if isinstance(value, (str, int, float)):
        return (value,)
    return tuple(value)


def _named_entries(raw: Any, context: str) -> list[tuple[str, Mapping[str, Any]]]:
    """Accept both `{name: {...}}` mappings and `[{name: ..., ...}]` lists."""
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        entries = list(raw.items())
    elif isinstance(raw, list):
        entries = [(_require(item, "name", context), item) for item in raw]
    else:
        raise ConfigurationError(f"{context}: expected a mapping or a list")
    for name, item in entries:
        if not isinstance(item, Mapping):
            raise ConfigurationError(f"{context} '{name}': expected a mapping")
    return [(str(name), item) for name, item in entries]


def parse_window(raw: Mapping[str, Any], default_label: str, default_direction: Direction) -> TimeWindow:
    """Parse a window mapping with optional label, direction, start_offset and end_offset."""
    direction = raw.get("direction", default_direction)
    label = raw.get("label", default_label)
    start = raw.get("start_offset")
    end = raw.get("end_offset")
    if direction == Direction.BEFORE:
        return TimeWindow.before(label, start, 0 if end is None else end)
    if direction == Direction.AFTER:
        return TimeWindow.after(label, 0 if start is None else start, end)
    raise ConfigurationError(f"window '{label}': unknown direction {direction!r}")


def _parse_asset(name: str, raw: Mapping[str, Any]) -> AssetConfig:
    value_columns = _as_tuple(raw.get("value_columns"))
    if not value_columns:
        raise ConfigurationError(f"asset '{name}': value_columns must not be empty")
    return AssetConfig(name=name, table=str(_require(raw, "table", f"asset '{name}'")), value_columns=value_columns)


def _parse_cohort(raw: Mapping[str, Any]) -> CohortConfig:
    criteria = EligibilityCriteria(
        min_age=raw.get("min_age"),
        max_age=raw.get("max_age"),
        require_known_sex=bool(raw.get("require_known_sex", True)),
        require_known_ethnicity=bool(raw.get("require_known_ethnicity", False)),
        require_known_lsoa=bool(raw.get("require_known_lsoa", raw.get("require_lsoa", False))),
    )
    demographics = dict(_require(raw, "demographics", "cohort"))
    unknown = sorted(set(demographics) - set(DEMOGRAPHIC_ROLES))
    if unknown:
        raise ConfigurationError(f"cohort: unknown demographic roles {', '.join(unknown)}")
    for role in ("date_of_birth", "sex"):
        _require(demographics, role, "cohort.demographics")

    index_date = raw.get("index_date")
    index_date_table = raw.get("index_date_table")
    if (index_date is None) == (index_date_table is None):
        raise ConfigurationError("cohort: set exactly one of index_date and index_date_table")
    if isinstance(index_date, str):
        try:
            index_date = date.fromisoformat(index_date)
        except ValueError as e:
            raise ConfigurationError(f"cohort: invalid index_date {index_date!r}") from e

    return CohortConfig(
        criteria=criteria,
        demographics=demographics,
        index_date=index_date,
        index_date_table=index_date_table,
    )


def _parse_features(raw: Mapping[str, Any]) -> FeatureConfig:
    covariate_window = raw.get("covariate_window")
    outcome_window = raw.get("outcome_window")
    windows = tuple(
        parse_window(item, _require(item, "label", "features.windows"), Direction.BEFORE)
        for item in raw.get("windows") or ()
    )
    try:
        selection_method = SelectionMethod(raw.get("selection_method", SelectionMethod.MIN))
    except ValueError as e:
        raise ConfigurationError(f"features: invalid selection_method {raw.get('selection_method')!r}") from e

    return FeatureConfig(
        events_table=str(_require(raw, "events_table", "features")),
        lookup_table=str(_require(raw, "lookup_table", "features")),
        covariates=_as_tuple(raw.get("covariates")),
        outcomes=_as_tuple(raw.get("outcomes")),
        covariate_window=parse_window(covariate_window, "covariate", Direction.BEFORE) if covariate_window else None,
        outcome_window=parse_window(outcome_window, "outcome", Direction.AFTER) if outcome_window else None,
        selection_method=selection_method,
        windows=windows,
        aggregation=_as_tuple(raw.get("aggregation")) or DEFAULT_AGGREGATION,
    )


def _enum(enum_type, value: Any, context: str):
    try:
        return enum_type(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_type)
        raise ConfigurationError(f"{context}: {value!r} is not one of {allowed}") from e


def parse_step(name: str, raw: Mapping[str, Any]) -> PreprocessingStep:
    """Map the `type` field of a step to its variant. Unknown types raise ConfigurationError."""
    context = f"preprocessing step '{name}'"
    step_type = _require(raw, "type", context)

    match step_type:
        case "code_match":
            output_columns = raw.get("output_columns")
            return CodeMatchStep(
                name=name,
                lookup_table=str(_require(raw, "lookup_source", context)),
                code_column=raw.get("code_column", Column.CODE),
                match_column=raw.get("match_column", Column.CODE),
                output_columns=_as_tuple(output_columns) if output_columns is not None else None,
                join_type=_enum(JoinType, raw.get("join_type", JoinType.LEFT), context),
            )
        case "value_validation":
            action = raw.get("action", ValidationAction.FLAG)
            # "transform" is the older name of the replace action
            if action == "transform":
                action = ValidationAction.REPLACE
            allowed_values = raw.get("allowed_values")
            return ValueValidationStep(
                name=name,
                column=_require(raw, "column", context),
                min_value=raw.get("min_value"),
                max_value=raw.get("max_value"),
                allowed_values=_as_tuple(allowed_values) if allowed_values is not None else None,
                action=_enum(ValidationAction, action, context),
                replacement=raw.get("replacement", raw.get("transform_value")),
                flag_column=raw.get("flag_column"),
            )
        case "data_transformation":
            return DataTransformationStep(
                name=name,
                column=_require(raw, "column", context),
                transform=_enum(TransformType, _require(raw, "transform_type", context), context),
                date_format=raw.get("date_format", "%Y-%m-%d"),
                mapping=dict(raw.get("mapping") or {}),
            )
        case "covariate_flag" | "outcome_flag":
            direction = Direction.BEFORE if step_type == "covariate_flag" else Direction.AFTER
            feature_name = raw.get("covariate_name") or raw.get("outcome_name") or name
            return EventFlagStep(
                name=str(feature_name),
                direction=direction,
                codes=tuple(str(code) for code in _as_tuple(_require(raw, "event_codes", context))),
                code_column=raw.get("code_column", Column.CODE),
                event_date_column=raw.get("event_date_column", Column.EVENT_DATE),
                flag_column=raw.get("flag_column"),
                date_column=raw.get("date_column"),
                aggregate_to_patient=bool(raw.get("aggregate_to_patient", False)),
                include_date=bool(raw.get("include_date", True)),
            )
        case _:
            raise ConfigurationError(f"{context}: unknown step type {step_type!r}")


def parse_config(raw: Mapping[str, Any]) -> PipelineConfig:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("pipeline configuration must be a mapping")

    assets = tuple(_parse_asset(name, item) for name, item in _named_entries(raw.get("assets"), "asset"))
    if not assets:
        raise ConfigurationError("pipeline configuration has no assets")
    names = [asset.name for asset in assets]
    if len(set(names)) != len(names):
        raise ConfigurationError("asset names must be unique")

    cohort = _parse_cohort(raw["cohort"]) if raw.get("cohort") else None
    if cohort is not None:
        missing = sorted(set(cohort.demographics.values()) - set(names))
        if missing:
            raise ConfigurationError(f"cohort: demographics refer to unknown assets {', '.join(missing)}")

    features = _parse_features(raw["features"]) if raw.get("features") else None
    if features is not None and cohort is None:
        raise ConfigurationError("features need a cohort section for index dates")

    steps = tuple(parse_step(name, item) for name, item in _named_entries(raw.get("preprocessing"), "preprocessing step"))
    return PipelineConfig(
        assets=assets,
        cohort=cohort,
        features=features,
        preprocessing=steps,
        lookups={str(key): str(value) for key, value in (raw.get("lookups") or {}).items()},
    )


def load_config(path: Path | str) -> PipelineConfig:
    """Read and parse a pipeline YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file does not exist: {path}")
    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return parse_config(raw or {})
