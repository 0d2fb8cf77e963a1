"""Combination of resolved demographic assets into one table."""

import polars as pl

from curation.common.constants import Column
from curation.common.frames import as_lazyframe, require_columns
from curation.common.models import Demographics, as_demographics


def _asset_column(asset: pl.LazyFrame | pl.DataFrame, column: str, name: str) -> pl.LazyFrame:
    lf = as_lazyframe(asset)
    require_columns(lf, [Column.PATIENT_ID, column], f"{name} asset")
    return lf.select(pl.col(Column.PATIENT_ID).cast(pl.String), pl.col(column))


def combine_demographics(
    dob: pl.LazyFrame | pl.DataFrame,
    sex: pl.LazyFrame | pl.DataFrame,
    ethnicity: pl.LazyFrame | pl.DataFrame | None = None,
    lsoa: pl.LazyFrame | pl.DataFrame | None = None,
) -> Demographics:
    """
    Left join resolved sex, ethnicity and LSOA assets onto the date of birth asset.

    Every asset must already hold one row per patient (see `resolve_highest_priority`).
    The patients of the date of birth asset define the result; optional assets
    that are not given are left out of the result.
    """
    demographics = _asset_column(dob, Column.DATE_OF_BIRTH, "date of birth")
    assets = [(sex, Column.SEX_CODE, "sex"), (ethnicity, Column.ETHNICITY_CODE, "ethnicity"), (lsoa, Column.LSOA_CODE, "lsoa")]
    for asset, column, name in assets:
        if asset is None:
            continue
        demographics = demographics.join(
            _asset_column(asset, column, name), on=Column.PATIENT_ID, how="left"
        )
    return as_demographics(demographics.sort(Column.PATIENT_ID))
