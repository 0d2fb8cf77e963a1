from typing import Self, TypeVar

from pandera.api.polars.model import DataFrameModel
from pandera.errors import SchemaError

import polars as pl

from ..typed_dataframe import ColBase, TypedDataFrameBase

T = TypeVar("T")


class Col[T](ColBase):
    """Polars LazyFrame column descriptor."""

    def __get__(self, obj, objtype=None) -> pl.Expr:
        """
        Return Polars column reference when accessed via instance OR class.
        Argument `obj` is ignored in both cases.
        """
        return pl.col(self.name)


class TypedLazyFrame(TypedDataFrameBase, abstract=True):
    """
    Base class for typed polars LazyFrame.
    Wraps pl.LazyFrame for full Polars functionality.

    LazyFrames are immutable query plans, so a typed frame can be shared between
    threads and reused by several downstream queries.
    """

    DataFrameModel = DataFrameModel
    SchemaError = SchemaError

    @classmethod
    def from_df(cls, df: pl.LazyFrame | pl.DataFrame, validate: bool = True) -> Self:
        """Create typed dataframe instance from dataframe if its schema matches Col definitions."""
        # pandera resolves its backend from type(df), which a proxy hides
        while isinstance(df, TypedDataFrameBase):
            df = df.__wrapped__
        if isinstance(df, pl.DataFrame):
            df = df.lazy()
        if validate:
            cls._schema_class.validate(df)
        return cls(df)

    @classmethod
    def from_dicts(cls, dicts: list[dict], schema) -> Self:
        return cls.from_df(pl.from_dicts(dicts, schema).lazy())

    @classmethod
    def columns_missing_from(cls, df: pl.LazyFrame | pl.DataFrame) -> list[str]:
        """Declared columns missing from the frame, resolved from the schema only."""
        if isinstance(df, pl.DataFrame):
            return cls.missing_columns(df.columns)
        return cls.missing_columns(df.collect_schema().names())
