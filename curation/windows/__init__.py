"""Temporal window features relative to the index date."""

from .aggregation import aggregate_per_patient, multi_window
from .by_name import covariates_by_name_window, extract_value_by_name, flag_by_name
from .features import (
    generate_covariate,
    generate_multiple_covariates,
    generate_multiple_outcomes,
    generate_outcome,
)
from .filtering import filter_to_window, window_filter, with_days_from_index
from .reducers import DEFAULT_AGGREGATION, DEFAULT_REGISTRY, Reducer, ReducerKind, ReducerRegistry, value_reducer
from .time_window import TimeWindow

__all__ = [
    "DEFAULT_AGGREGATION",
    "DEFAULT_REGISTRY",
    "Reducer",
    "ReducerKind",
    "ReducerRegistry",
    "TimeWindow",
    "aggregate_per_patient",
    "covariates_by_name_window",
    "extract_value_by_name",
    "filter_to_window",
    "flag_by_name",
    "generate_covariate",
    "generate_multiple_covariates",
    "generate_multiple_outcomes",
    "generate_outcome",
    "multi_window",
    "value_reducer",
    "window_filter",
    "with_days_from_index",
]
