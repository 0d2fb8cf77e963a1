"""Database helpers for DuckDB interactions."""

from .duckdb_io import (
    connect_db,
    ensure_schema,
    get_table_summary,
    read_table,
    split_table_name,
    table_exists,
    write_dataframe,
    write_dataframes,
)

__all__ = [
    "connect_db",
    "ensure_schema",
    "get_table_summary",
    "read_table",
    "split_table_name",
    "table_exists",
    "write_dataframe",
    "write_dataframes",
]
