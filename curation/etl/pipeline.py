"""Pipeline orchestration: reconcile assets, build the cohort, generate features."""

from dataclasses import dataclass, field
from functools import partial
from typing import Any

import duckdb
import polars as pl

from curation.cohort import ExclusionReport, build_cohort, combine_demographics
from curation.common.cancellation import CancellationToken, check_cancelled
from curation.common.constants import Column
from curation.common.frames import require_columns
from curation.common.models import as_long_format_table
from curation.common.sql import table_name
from curation.config import AssetConfig, CohortConfig, FeatureConfig, PipelineConfig
from curation.constants import Schema
from curation.db.duckdb_io import read_table, write_dataframe, write_dataframes
from curation.errors import ConfigurationError
from curation.preprocessing import apply_preprocessing
from curation.reconciliation import conflict_rates, resolve_highest_priority, summarize_long_format
from curation.reporting.batch import BatchReport, run_batch
from curation.windows import generate_multiple_covariates, generate_multiple_outcomes, multi_window
from tabular.logger.logger import log_info


@dataclass
class PipelineResult:
    resolved: dict[str, pl.DataFrame] = field(default_factory=dict)
    asset_summaries: dict[str, dict[str, Any]] = field(default_factory=dict)
    asset_conflicts: dict[str, dict[str, int]] = field(default_factory=dict)
    cohort: pl.DataFrame | None = None
    exclusion_report: ExclusionReport | None = None
    features: dict[str, pl.DataFrame] = field(default_factory=dict)
    reports: dict[str, BatchReport] = field(default_factory=dict)


@dataclass(frozen=True)
class _AssetProfile:
    summary: dict[str, Any]
    conflicts: dict[str, int]


def _reconcile_asset(
    con: duckdb.DuckDBPyConnection, asset: AssetConfig, profiles: dict[str, _AssetProfile]
) -> pl.LazyFrame:
    table = as_long_format_table(read_table(con, asset.table))
    require_columns(table, [Column.PRIORITY, *asset.value_columns], f"asset {asset.name}")
    resolved = resolve_highest_priority(table, asset_name=asset.name)
    rates = conflict_rates(table, asset.value_columns)
    profiles[asset.name] = _AssetProfile(
        summary=summarize_long_format(table, asset.value_columns),
        conflicts=dict(zip(rates["column"].to_list(), rates["n_conflicts"].to_list())),
    )
    return resolved


def run_assets(
    con: duckdb.DuckDBPyConnection,
    config: PipelineConfig,
    result: PipelineResult,
    cancel_token: CancellationToken | None = None,
) -> None:
    """Resolve every asset by priority and write it to the curated schema."""
    profiles: dict[str, _AssetProfile] = {}
    items = [(asset.name, partial(_reconcile_asset, con, asset, profiles)) for asset in config.assets]
    frames, report = run_batch(items, cancel_token=cancel_token)
    # failed assets leave no partial entries behind
    for name in frames:
        result.asset_summaries[name] = profiles[name].summary
        result.asset_conflicts[name] = profiles[name].conflicts
    result.resolved.update(frames)
    result.reports["assets"] = report
    write_dataframes(con, Schema.CURATED, {table_name(name): df for name, df in frames.items()})


def run_cohort(
    con: duckdb.DuckDBPyConnection,
    cohort_config: CohortConfig,
    result: PipelineResult,
) -> None:
    """Combine resolved demographics and apply the eligibility criteria."""
    roles = cohort_config.demographics
    missing = sorted(asset for asset in roles.values() if asset not in result.resolved)
    if missing:
        raise ConfigurationError(f"cohort needs assets that failed to resolve: {', '.join(missing)}")

    demographics = combine_demographics(
        dob=result.resolved[roles["date_of_birth"]],
        sex=result.resolved[roles["sex"]],
        ethnicity=result.resolved.get(roles.get("ethnicity", "")),
        lsoa=result.resolved.get(roles.get("lsoa", "")),
    )
    if cohort_config.index_date_table is not None:
        index_date_spec = read_table(con, cohort_config.index_date_table)
    else:
        index_date_spec = cohort_config.index_date

    cohort, report = build_cohort(demographics, index_date_spec, cohort_config.criteria)
    result.cohort = cohort.collect()
    result.exclusion_report = report
    write_dataframe(con, Schema.CURATED, "cohort", result.cohort)


def run_features(
    con: duckdb.DuckDBPyConnection,
    config: PipelineConfig,
    features: FeatureConfig,
    result: PipelineResult,
    cancel_token: CancellationToken | None = None,
) -> None:
    """Preprocess the event table and generate covariates, outcomes and window aggregates."""
    if result.cohort is None:
        raise ConfigurationError("features need a cohort")
    index_dates = result.cohort.select(Column.PATIENT_ID, Column.INDEX_DATE)

    events = read_table(con, features.events_table)
    lookup = read_table(con, features.lookup_table)
    if config.preprocessing:
        lookups = {name: read_table(con, table) for name, table in config.lookups.items()}
        events_df, report = apply_preprocessing(
            events, config.preprocessing, index_dates=index_dates, lookups=lookups, cancel_token=cancel_token
        )
        result.reports["preprocessing"] = report
        events = events_df.lazy()

    if features.covariates:
        check_cancelled(cancel_token, "covariates")
        covariates, report = generate_multiple_covariates(
            events,
            index_dates,
            lookup,
            features.covariates,
            window=features.covariate_window,
            selection_method=features.selection_method,
            cancel_token=cancel_token,
        )
        result.features["covariates"] = covariates
        result.reports["covariates"] = report

    if features.outcomes:
        check_cancelled(cancel_token, "outcomes")
        outcomes, report = generate_multiple_outcomes(
            events,
            index_dates,
            lookup,
            features.outcomes,
            window=features.outcome_window,
            selection_method=features.selection_method,
            cancel_token=cancel_token,
        )
        result.features["outcomes"] = outcomes
        result.reports["outcomes"] = report

    if features.windows:
        windows = multi_window(
            events, index_dates, features.windows, features.aggregation, cancel_token=cancel_token
        )
        result.features["windows"] = windows.collect()

    write_dataframes(con, Schema.FEATURES, result.features)


def run_pipeline(
    con: duckdb.DuckDBPyConnection,
    config: PipelineConfig,
    cancel_token: CancellationToken | None = None,
) -> PipelineResult:
    result = PipelineResult()
    log_info(f"{len(config.assets)} asset(s)")
    run_assets(con, config, result, cancel_token)
    if config.cohort is not None:
        run_cohort(con, config.cohort, result)
    if config.features is not None:
        run_features(con, config, config.features, result, cancel_token)
    return result
