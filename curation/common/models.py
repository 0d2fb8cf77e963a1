"""TypedLazyFrame class definitions for the curation data model.

Input frames:
- LongFormatTable: one row per (patient, source) for one asset, value columns undeclared
- EventTable / NamedEventTable: dated, coded events, optionally enriched with a lookup name
- IndexDates: the temporal anchor per patient
- CodeLookup: code to name mapping supplied by the code-matching step
- Demographics: reconciled demographic fields per patient

Derived frames:
- Conflicts: patients whose sources disagree on a value
- CohortTable: eligible patients with index date and age at index

Only the declared columns are validated; any other column is carried along.
"""

from datetime import date
from typing import Optional

import polars as pl

from curation.common.constants import Column
from curation.common.frames import as_lazyframe, require_columns
from curation.errors import ConfigurationError
from tabular.engine.polars.functions.datetime import to_date
from tabular.engine.polars.typed_dataframe import Col, TypedLazyFrame


class LongFormatTable(TypedLazyFrame):
    """Multi-source records of one asset. Priority is a source-level constant."""

    patient_id: Col[str]
    source_id: Col[str]
    priority: Col[Optional[int]]


class EventTable(TypedLazyFrame):
    """Dated events per patient."""

    patient_id: Col[str]
    event_date: Col[date]
    code: Col[Optional[str]]
    source_id: Col[Optional[str]]


class NamedEventTable(EventTable):
    """Events enriched with the lookup name of their code."""

    name: Col[str]


class IndexDates(TypedLazyFrame):
    """Index date per patient."""

    patient_id: Col[str]
    index_date: Col[date]


class CodeLookup(TypedLazyFrame):
    """Code lookup with the four columns the code-matching step provides."""

    code: Col[str]
    name: Col[str]
    description: Col[str]
    terminology: Col[str]


class Demographics(TypedLazyFrame):
    """Reconciled demographics, one row per patient."""

    patient_id: Col[str]
    date_of_birth: Col[date]
    sex_code: Col[Optional[str]]
    ethnicity_code: Col[Optional[str]]
    lsoa_code: Col[Optional[str]]


class CohortTable(Demographics):
    """Eligible patients with their index date and age at index."""

    index_date: Col[date]
    age_at_index: Col[float]


class Conflicts(TypedLazyFrame):
    """Patients with two or more distinct non-null values across sources.

    Undeclared columns:
    - values: list of distinct values, ordered by ascending priority
    - provenance: list of (source_id, value, priority) structs
    """

    patient_id: Col[str]
    n_values: Col[int]
    n_sources: Col[int]
    values_label: Col[str]


def _cast_present(schema: pl.Schema, casts: dict[str, pl.DataType]) -> list[pl.Expr]:
    return [
        pl.col(name).cast(dtype)
        for name, dtype in casts.items()
        if name in schema and schema[name] != dtype
    ]


def as_long_format_table(df: pl.LazyFrame | pl.DataFrame) -> LongFormatTable:
    """Normalize a frame from the ingestion step into a LongFormatTable.

    Identifiers are cast to strings, priority to Int64 and event_date to Date.
    """
    lf = as_lazyframe(df)
    schema = require_columns(
        lf, [Column.PATIENT_ID, Column.SOURCE_ID], "long format table"
    )
    exprs = _cast_present(
        schema,
        {
            Column.PATIENT_ID: pl.String,
            Column.SOURCE_ID: pl.String,
            Column.PRIORITY: pl.Int64,
        },
    )
    if Column.EVENT_DATE in schema and schema[Column.EVENT_DATE] != pl.Date:
        exprs.append(to_date(pl.col(Column.EVENT_DATE), schema[Column.EVENT_DATE]))
    return LongFormatTable.from_df(lf.with_columns(exprs) if exprs else lf)


def as_event_table(
    df: pl.LazyFrame | pl.DataFrame,
    event_date_column: str = Column.EVENT_DATE,
    code_column: str = Column.CODE,
) -> EventTable:
    """Normalize an event frame, renaming its date and code columns to the canonical names."""
    lf = as_lazyframe(df)
    schema = require_columns(lf, [Column.PATIENT_ID, event_date_column], "event table")

    renames = {}
    if event_date_column != Column.EVENT_DATE:
        renames[event_date_column] = Column.EVENT_DATE
    if code_column != Column.CODE and code_column in schema:
        renames[code_column] = Column.CODE
    if renames:
        lf = lf.rename(renames)
        schema = lf.collect_schema()

    exprs = _cast_present(
        schema,
        {
            Column.PATIENT_ID: pl.String,
            Column.CODE: pl.String,
            Column.SOURCE_ID: pl.String,
            Column.NAME: pl.String,
        },
    )
    if schema[Column.EVENT_DATE] != pl.Date:
        exprs.append(to_date(pl.col(Column.EVENT_DATE), schema[Column.EVENT_DATE]))
    lf = lf.with_columns(exprs) if exprs else lf

    if Column.NAME in schema:
        return NamedEventTable.from_df(lf)
    return EventTable.from_df(lf)


def as_named_event_table(df: pl.LazyFrame | pl.DataFrame) -> NamedEventTable:
    """Normalize an event frame that must carry lookup names."""
    lf = as_lazyframe(df)
    require_columns(lf, [Column.NAME], "named event table")
    events = as_event_table(lf)
    return NamedEventTable.from_df(events, validate=False)


def as_index_dates(df: pl.LazyFrame | pl.DataFrame) -> IndexDates:
    """
    Normalize an index date frame to (patient_id: str, index_date: date).

    Raises:
        ConfigurationError: if a column is missing or a patient_id appears more than once.
            The uniqueness check scans the patient_id column; frames that are already
            IndexDates were checked when they were built and are returned as they are.
    """
    if isinstance(df, IndexDates):
        return df
    lf = as_lazyframe(df)
    schema = require_columns(lf, [Column.PATIENT_ID, Column.INDEX_DATE], "index dates")
    exprs = _cast_present(schema, {Column.PATIENT_ID: pl.String})
    if schema[Column.INDEX_DATE] != pl.Date:
        exprs.append(to_date(pl.col(Column.INDEX_DATE), schema[Column.INDEX_DATE]))
    lf = lf.with_columns(exprs) if exprs else lf

    counts = lf.select(
        pl.len().alias("n_rows"), pl.col(Column.PATIENT_ID).n_unique().alias("n_patients")
    ).collect()
    n_duplicates = counts["n_rows"][0] - counts["n_patients"][0]
    if n_duplicates:
        raise ConfigurationError(f"index dates must hold one row per patient_id ({n_duplicates} duplicate row(s))")
    return IndexDates.from_df(lf.select(Column.PATIENT_ID, Column.INDEX_DATE))


def as_code_lookup(df: pl.LazyFrame | pl.DataFrame) -> CodeLookup:
    """Validate the four lookup columns and normalize them to strings."""
    lf = as_lazyframe(df)
    schema = require_columns(lf, CodeLookup.column_names(), "code lookup table")
    exprs = _cast_present(schema, {name: pl.String for name in CodeLookup.column_names()})
    return CodeLookup.from_df(lf.with_columns(exprs) if exprs else lf)


def as_demographics(df: pl.LazyFrame | pl.DataFrame) -> Demographics:
    """Normalize demographics: string identifiers and codes, date of birth as Date."""
    lf = as_lazyframe(df)
    schema = require_columns(
        lf, [Column.PATIENT_ID, Column.DATE_OF_BIRTH], "demographics"
    )
    exprs = _cast_present(
        schema,
        {
            Column.PATIENT_ID: pl.String,
            Column.SEX_CODE: pl.String,
            Column.ETHNICITY_CODE: pl.String,
            Column.LSOA_CODE: pl.String,
        },
    )
    if schema[Column.DATE_OF_BIRTH] != pl.Date:
        exprs.append(
            to_date(pl.col(Column.DATE_OF_BIRTH), schema[Column.DATE_OF_BIRTH])
        )
    return Demographics.from_df(lf.with_columns(exprs) if exprs else lf)
