"""Data quality summaries for assets and generated features."""

from typing import Any

import polars as pl

from curation.common.constants import Column
from curation.common.frames import as_lazyframe, require_columns


def get_feature_quality_report(
    events: pl.LazyFrame | pl.DataFrame,
    index_dates: pl.LazyFrame | pl.DataFrame,
    lookup: pl.LazyFrame | pl.DataFrame | None = None,
) -> dict[str, Any]:
    """
    Quality of the events matched for one feature, before any window is applied.

    Returns:
        Dictionary with:
        - cohort_patients, patients_with_events, cohort_coverage
        - earliest_date, latest_date
        - code_counts: DataFrame with code, name (when a lookup is given), n_events
          and n_patients, most frequent first
    """
    events_lf = as_lazyframe(events)
    require_columns(events_lf, [Column.PATIENT_ID, Column.EVENT_DATE, Column.CODE], "feature quality report")
    cohort = as_lazyframe(index_dates).select(pl.col(Column.PATIENT_ID).cast(pl.String)).unique()

    in_cohort = events_lf.with_columns(pl.col(Column.PATIENT_ID).cast(pl.String)).join(
        cohort, on=Column.PATIENT_ID, how="semi"
    )
    counts = (
        in_cohort.select(
            pl.col(Column.PATIENT_ID).n_unique().alias("patients_with_events"),
            pl.col(Column.EVENT_DATE).min().alias("earliest_date"),
            pl.col(Column.EVENT_DATE).max().alias("latest_date"),
        )
        .collect()
        .to_dicts()[0]
    )
    cohort_patients = cohort.select(pl.len()).collect().item()

    keys = [Column.CODE]
    coded = in_cohort
    if lookup is not None:
        coded = coded.join(
            as_lazyframe(lookup).select(Column.CODE, Column.NAME).unique(),
            on=Column.CODE,
            how="left",
        )
        keys.append(Column.NAME)
    code_counts = (
        coded.group_by(keys)
        .agg(
            pl.len().alias("n_events"),
            pl.col(Column.PATIENT_ID).n_unique().alias("n_patients"),
        )
        .sort(["n_events", Column.CODE], descending=[True, False])
        .collect()
    )

    return {
        "cohort_patients": cohort_patients,
        "patients_with_events": counts["patients_with_events"],
        "cohort_coverage": (
            counts["patients_with_events"] / cohort_patients if cohort_patients > 0 else 0.0
        ),
        "earliest_date": counts["earliest_date"],
        "latest_date": counts["latest_date"],
        "code_counts": code_counts,
    }


def get_feature_summary(
    features: pl.LazyFrame | pl.DataFrame,
    flag_columns: list[str] | None = None,
) -> dict[str, int]:
    """Total patients and the number of patients with each flag set."""
    features_lf = as_lazyframe(features)
    schema = features_lf.collect_schema()
    if flag_columns is None:
        flag_columns = [name for name, dtype in schema.items() if dtype == pl.Boolean]
    return (
        features_lf.select(
            pl.len().alias("total_patients"),
            *[pl.col(column).sum().alias(column) for column in flag_columns],
        )
        .collect()
        .to_dicts()[0]
    )
