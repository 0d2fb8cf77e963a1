"""
Preprocessing steps applied to an asset before feature generation.

Each step kind is a frozen dataclass; `PreprocessingStep` is their closed union.
`apply_step` matches on the variant, so adding a kind without handling it fails
type checking through `assert_never`.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from typing import Any, assert_never

import polars as pl

from curation.common.cancellation import CancellationToken
from curation.common.constants import Column, Direction
from curation.common.frames import as_lazyframe, require_columns
from curation.common.models import IndexDates, as_index_dates
from curation.errors import ConfigurationError
from curation.reporting.batch import BatchReport, run_batch
from curation.windows.time_window import window_membership
from tabular.engine.polars.functions.datetime import datediff, to_date
from tabular.engine.polars.functions.string import clean_code
from tabular.logger.logger import log_info, log_warning


class JoinType(StrEnum):
    LEFT = "left"
    INNER = "inner"
    SEMI = "semi"


class ValidationAction(StrEnum):
    FLAG = "flag"
    FILTER = "filter"
    REPLACE = "replace"


class TransformType(StrEnum):
    DATE_CONVERSION = "date_conversion"
    NUMERIC_CONVERSION = "numeric_conversion"
    STRING_CLEANING = "string_cleaning"
    CATEGORICAL_MAPPING = "categorical_mapping"


@dataclass(frozen=True)
class CodeMatchStep:
    """Join a lookup table onto the data by code."""

    name: str
    lookup_table: str
    code_column: str = Column.CODE
    match_column: str = Column.CODE
    output_columns: tuple[str, ...] | None = None
    join_type: JoinType = JoinType.LEFT


@dataclass(frozen=True)
class ValueValidationStep:
    """Check a column against bounds and allowed values. Nulls are always valid."""

    name: str
    column: str
    min_value: float | None = None
    max_value: float | None = None
    allowed_values: tuple[Any, ...] | None = None
    action: ValidationAction = ValidationAction.FLAG
    replacement: Any = None
    flag_column: str | None = None

    @property
    def output_flag_column(self) -> str:
        return self.flag_column or f"{self.column}_valid"


@dataclass(frozen=True)
class DataTransformationStep:
    name: str
    column: str
    transform: TransformType
    date_format: str = "%Y-%m-%d"
    mapping: Mapping[Any, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EventFlagStep:
    """
    Flag events with one of `codes` before (covariate) or on/after (outcome) the index date.

    Row level by default. With `aggregate_to_patient`, one row per patient of the
    index dates with the flag and, when `include_date`, the first matching date.
    """

    name: str
    direction: Direction
    codes: tuple[str, ...]
    code_column: str = Column.CODE
    event_date_column: str = Column.EVENT_DATE
    flag_column: str | None = None
    date_column: str | None = None
    aggregate_to_patient: bool = False
    include_date: bool = True

    @property
    def output_flag_column(self) -> str:
        return self.flag_column or f"has_{self.name}"

    @property
    def output_date_column(self) -> str:
        return self.date_column or f"{self.name}_date"


PreprocessingStep = CodeMatchStep | ValueValidationStep | DataTransformationStep | EventFlagStep


def _code_match(
    lf: pl.LazyFrame, step: CodeMatchStep, lookups: Mapping[str, pl.LazyFrame | pl.DataFrame]
) -> pl.LazyFrame:
    if step.lookup_table not in lookups:
        raise ConfigurationError(f"Unknown lookup table: {step.lookup_table}")
    lookup = as_lazyframe(lookups[step.lookup_table])
    require_columns(lf, [step.code_column], f"code match '{step.name}'")
    require_columns(lookup, [step.match_column, *(step.output_columns or ())], f"lookup '{step.lookup_table}'")

    if lookup.select(pl.len()).collect().item() == 0:
        log_warning(f"Lookup table '{step.lookup_table}' is empty; data left unchanged")
        return lf

    if step.output_columns is not None:
        lookup = lookup.select(step.match_column, *step.output_columns)
    lookup = lookup.with_columns(pl.col(step.match_column).cast(pl.String).str.strip_chars())

    lf = lf.with_columns(pl.col(step.code_column).cast(pl.String).str.strip_chars())

    return lf.join(
        lookup.unique(),
        left_on=step.code_column,
        right_on=step.match_column,
        how=str(step.join_type),
    )


def _value_validation(lf: pl.LazyFrame, step: ValueValidationStep) -> pl.LazyFrame:
    require_columns(lf, [step.column], f"value validation '{step.name}'")
    column = pl.col(step.column)
    is_valid = pl.lit(True)
    if step.min_value is not None:
        is_valid = is_valid & (column.is_null() | (column >= step.min_value))
    if step.max_value is not None:
        is_valid = is_valid & (column.is_null() | (column <= step.max_value))
    if step.allowed_values is not None:
        is_valid = is_valid & (column.is_null() | column.is_in(list(step.allowed_values)))

    match step.action:
        case ValidationAction.FLAG:
            return lf.with_columns(is_valid.alias(step.output_flag_column))
        case ValidationAction.FILTER:
            return lf.filter(is_valid)
        case ValidationAction.REPLACE:
            return lf.with_columns(
                pl.when(is_valid).then(column).otherwise(pl.lit(step.replacement)).alias(step.column)
            )
        case _:
            assert_never(step.action)


def _data_transformation(lf: pl.LazyFrame, step: DataTransformationStep) -> pl.LazyFrame:
    schema = require_columns(lf, [step.column], f"data transformation '{step.name}'")
    column = pl.col(step.column)

    match step.transform:
        case TransformType.DATE_CONVERSION:
            converted = to_date(column, schema[step.column], step.date_format)
        case TransformType.NUMERIC_CONVERSION:
            if schema[step.column] == pl.String:
                column = column.str.strip_chars()
            converted = column.cast(pl.Float64, strict=False)
        case TransformType.STRING_CLEANING:
            converted = clean_code(column)
        case TransformType.CATEGORICAL_MAPPING:
            if not step.mapping:
                raise ConfigurationError(f"categorical mapping '{step.name}' has no mapping")
            converted = column.replace_strict(dict(step.mapping), default=None)
        case _:
            assert_never(step.transform)

    return lf.with_columns(converted.alias(step.column))


def _event_flag(lf: pl.LazyFrame, step: EventFlagStep, index_dates: IndexDates | None) -> pl.LazyFrame:
    if index_dates is None:
        raise ConfigurationError(f"event flag '{step.name}' needs index dates")
    if not step.codes:
        raise ConfigurationError(f"event flag '{step.name}' has no codes")
    schema = require_columns(
        lf, [Column.PATIENT_ID, step.code_column, step.event_date_column], f"event flag '{step.name}'"
    )

    event_date = to_date(pl.col(step.event_date_column), schema[step.event_date_column])
    delta = datediff(pl.col(Column.INDEX_DATE), event_date)
    has_code = pl.col(step.code_column).cast(pl.String).str.strip_chars().is_in(list(step.codes))
    is_event = has_code & window_membership(delta, step.direction)

    index_lf = as_index_dates(index_dates)
    if Column.INDEX_DATE in schema:
        lf = lf.drop(Column.INDEX_DATE)
    flagged = (
        lf.with_columns(pl.col(Column.PATIENT_ID).cast(pl.String))
        .join(index_lf, on=Column.PATIENT_ID, how="left")
        .with_columns(is_event.fill_null(False).alias(step.output_flag_column))
    )

    if not step.aggregate_to_patient:
        return flagged.drop(Column.INDEX_DATE)

    first_dates = (
        flagged.filter(pl.col(step.output_flag_column))
        .group_by(Column.PATIENT_ID)
        .agg(event_date.min().alias(step.output_date_column))
    )
    patients = index_lf.select(Column.PATIENT_ID).join(first_dates, on=Column.PATIENT_ID, how="left")
    patients = patients.with_columns(
        pl.col(step.output_date_column).is_not_null().alias(step.output_flag_column)
    )
    output = [Column.PATIENT_ID, step.output_flag_column]
    if step.include_date:
        output.append(step.output_date_column)
    return patients.select(output).sort(Column.PATIENT_ID)


def apply_step(
    data: pl.LazyFrame | pl.DataFrame,
    step: PreprocessingStep,
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame | None = None,
    lookups: Mapping[str, pl.LazyFrame | pl.DataFrame] | None = None,
) -> pl.LazyFrame:
    """Apply one preprocessing step. Missing columns raise ConfigurationError."""
    lf = as_lazyframe(data)
    match step:
        case CodeMatchStep():
            return _code_match(lf, step, lookups or {})
        case ValueValidationStep():
            return _value_validation(lf, step)
        case DataTransformationStep():
            return _data_transformation(lf, step)
        case EventFlagStep():
            return _event_flag(lf, step, index_dates)
        case _:
            assert_never(step)


def apply_preprocessing(
    data: pl.LazyFrame | pl.DataFrame,
    steps: Sequence[PreprocessingStep],
    index_dates: IndexDates | pl.LazyFrame | pl.DataFrame | None = None,
    lookups: Mapping[str, pl.LazyFrame | pl.DataFrame] | None = None,
    cancel_token: CancellationToken | None = None,
) -> tuple[pl.DataFrame, BatchReport]:
    """
    Apply steps in order, materializing the data after each one.

    A failing step is recorded in the report and skipped: the next step receives
    the data as it was before the failing step.
    """
    current = as_lazyframe(data).collect()
    report = BatchReport()
    if not steps:
        log_info("No preprocessing steps; data returned unchanged")
        return current, report

    for step in steps:
        log_info(f"step '{step.name}' ({type(step).__name__})")
        frames, step_report = run_batch(
            [(step.name, partial(apply_step, current, step, index_dates, lookups))],
            cancel_token=cancel_token,
        )
        report = report.merge(step_report)
        if step.name in frames:
            current = frames[step.name]

    return current, report
