"""Schema checks shared by the engines. Nothing here collects data."""

from collections.abc import Iterable

import polars as pl

from curation.errors import ConfigurationError


def as_lazyframe(df: pl.LazyFrame | pl.DataFrame) -> pl.LazyFrame:
    if isinstance(df, pl.DataFrame):
        return df.lazy()
    return df


def schema_of(df: pl.LazyFrame | pl.DataFrame) -> pl.Schema:
    if isinstance(df, pl.DataFrame):
        return df.schema
    return df.collect_schema()


def require_columns(
    df: pl.LazyFrame | pl.DataFrame,
    columns: Iterable[str],
    context: str,
) -> pl.Schema:
    """
    Raise ConfigurationError if any of `columns` is missing from the frame.

    Returns the resolved schema so callers can inspect dtypes without resolving it twice.
    """
    schema = schema_of(df)
    missing = [name for name in columns if name not in schema]
    if missing:
        raise ConfigurationError(
            f"{context}: missing required column(s) {', '.join(missing)}"
        )
    return schema


def value_columns(schema: pl.Schema, exclude: Iterable[str]) -> list[str]:
    """Columns of `schema` that are not listed in `exclude`, in schema order."""
    excluded = set(exclude)
    return [name for name in schema.names() if name not in excluded]
