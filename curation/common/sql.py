"""SQL identifier helpers for the DuckDB snapshot store."""


def quote_ident(ident: str) -> str:
    return f'"{ident.replace(chr(34), chr(34) * 2)}"'


def qualified_table(schema: str, table: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(table)}"


def table_name(*parts: str) -> str:
    """Join name parts into a lower snake case table name, e.g. ('Smoking', 'last_30d')."""
    cleaned = [part.strip().replace(" ", "_").replace("-", "_") for part in parts if part]
    return "_".join(cleaned).lower()
