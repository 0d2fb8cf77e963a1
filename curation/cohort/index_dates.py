"""Resolution of index date specifications to one index date per patient."""

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

import polars as pl

from curation.common.constants import Column
from curation.common.frames import as_lazyframe, require_columns
from curation.common.models import IndexDates, as_index_dates
from curation.errors import ConfigurationError
from tabular.logger.logger import log_warning

IndexDateSpec = (
    date | str | Mapping[Any, date | str | None] | Sequence[date | str | None] | pl.Series | pl.DataFrame | pl.LazyFrame
)


def to_index_date(value: Any) -> date | None:
    """Parse a single index date value. Strings must be ISO formatted (YYYY-MM-DD)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as e:
            raise ConfigurationError(f"Invalid index date: {value!r}") from e
    raise ConfigurationError(f"Unsupported index date value: {value!r}")


def _patient_ids(patients: pl.LazyFrame | pl.DataFrame) -> pl.DataFrame:
    lf = as_lazyframe(patients)
    require_columns(lf, [Column.PATIENT_ID], "index date patients")
    ids = lf.select(pl.col(Column.PATIENT_ID).cast(pl.String)).collect()
    if ids[Column.PATIENT_ID].n_unique() != ids.height:
        raise ConfigurationError("patients must hold one row per patient_id")
    return ids


def _from_frame(ids: pl.DataFrame, spec: pl.DataFrame | pl.LazyFrame) -> pl.DataFrame:
    dates = as_index_dates(spec).collect()
    missing = ids.join(dates, on=Column.PATIENT_ID, how="anti")
    if missing.height:
        shown = ", ".join(missing[Column.PATIENT_ID].head(5).to_list())
        raise ConfigurationError(f"{missing.height} patient(s) have no index date ({shown})")
    extra = dates.join(ids, on=Column.PATIENT_ID, how="anti").height
    if extra:
        log_warning(f"Ignoring index dates of {extra} patient(s) outside the cohort")
    return ids.join(dates, on=Column.PATIENT_ID, how="left", maintain_order="left")


def resolve_index_dates(
    patients: pl.LazyFrame | pl.DataFrame,
    spec: IndexDateSpec,
) -> IndexDates:
    """
    Assign an index date to every patient of `patients`.

    `spec` may be:
    - a date or ISO date string, applied to all patients
    - a mapping from patient_id to date
    - a frame with patient_id and index_date
    - a sequence or Series of dates, matched to `patients` by row position

    Every patient must receive an entry. Null dates are allowed and yield a null
    age at index.

    Raises:
        ConfigurationError: unparseable dates, missing patients, duplicate
            patients, or a positional sequence of the wrong length.
    """
    ids = _patient_ids(patients)

    if isinstance(spec, (date, str)):
        resolved = ids.with_columns(pl.lit(to_index_date(spec), dtype=pl.Date).alias(Column.INDEX_DATE))
    elif isinstance(spec, (pl.DataFrame, pl.LazyFrame)):
        resolved = _from_frame(ids, spec)
    elif isinstance(spec, Mapping):
        frame = pl.DataFrame(
            {
                Column.PATIENT_ID: [str(key) for key in spec],
                Column.INDEX_DATE: [to_index_date(value) for value in spec.values()],
            },
            schema={Column.PATIENT_ID: pl.String, Column.INDEX_DATE: pl.Date},
        )
        resolved = _from_frame(ids, frame)
    elif isinstance(spec, (Sequence, pl.Series)):
        values = spec.to_list() if isinstance(spec, pl.Series) else list(spec)
        if len(values) != ids.height:
            raise ConfigurationError(
                f"index date sequence has {len(values)} entries for {ids.height} patients"
            )
        resolved = ids.with_columns(
            pl.Series(Column.INDEX_DATE, [to_index_date(value) for value in values], dtype=pl.Date)
        )
    else:
        raise ConfigurationError(f"Unsupported index date specification: {type(spec).__name__}")

    return IndexDates.from_df(resolved.select(Column.PATIENT_ID, Column.INDEX_DATE))
