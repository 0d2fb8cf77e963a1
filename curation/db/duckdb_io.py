"""DuckDB IO helpers for the local snapshot store."""

from pathlib import Path

import duckdb
import polars as pl

from curation.common.sql import qualified_table, quote_ident
from curation.errors import ConfigurationError


def connect_db(path: Path) -> duckdb.DuckDBPyConnection:
    """Connect to DuckDB database file."""
    return duckdb.connect(str(path))


def ensure_schema(con: duckdb.DuckDBPyConnection, schema: str) -> None:
    """Ensure schema exists."""
    con.execute(f"CREATE SCHEMA IF NOT EXISTS {quote_ident(schema)}")


def split_table_name(name: str, default_schema: str = "main") -> tuple[str, str]:
    """Split `schema.table` into its parts; bare names live in `default_schema`."""
    schema, _, table = name.rpartition(".")
    return (schema or default_schema), table


def table_exists(con: duckdb.DuckDBPyConnection, schema: str, table: str) -> bool:
    count = con.execute(
        """
        SELECT COUNT(*)
        FROM information_schema.tables
        WHERE table_schema = ? AND table_name = ?
        """,
        [schema, table],
    ).fetchone()[0]
    return count > 0


def read_table(con: duckdb.DuckDBPyConnection, name: str) -> pl.LazyFrame:
    """Read a `schema.table` into a LazyFrame. Missing tables raise ConfigurationError."""
    schema, table = split_table_name(name)
    if not table_exists(con, schema, table):
        raise ConfigurationError(f"Table does not exist: {schema}.{table}")
    return con.execute(f"SELECT * FROM {qualified_table(schema, table)}").pl().lazy()


def write_dataframe(
    con: duckdb.DuckDBPyConnection,
    schema: str,
    table: str,
    df: pl.DataFrame,
) -> None:
    """Write DataFrame to DuckDB table in given schema, replacing any existing table."""
    ensure_schema(con, schema)
    temp_name = f"{schema}_{table}_temp"
    con.register(temp_name, df.to_arrow())
    con.execute(
        f"CREATE OR REPLACE TABLE {qualified_table(schema, table)} "
        f"AS SELECT * FROM {quote_ident(temp_name)}"
    )
    con.unregister(temp_name)


def write_dataframes(
    con: duckdb.DuckDBPyConnection,
    schema: str,
    frames: dict[str, pl.DataFrame],
) -> None:
    """Write multiple DataFrames to DuckDB tables in given schema."""
    for table, df in frames.items():
        write_dataframe(con, schema, table, df)


def get_table_summary(con: duckdb.DuckDBPyConnection, schema: str) -> dict[str, int]:
    """Get row counts for all tables in a schema."""
    table_names = con.execute(
        """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = ?
          AND table_type = 'BASE TABLE'
        ORDER BY table_name
        """,
        [schema],
    ).fetchall()
    summary: dict[str, int] = {}
    for (table_name,) in table_names:
        count = con.execute(
            f"SELECT COUNT(*) FROM {qualified_table(schema, table_name)}"
        ).fetchone()[0]
        summary[f"{schema}.{table_name}"] = count
    return summary
