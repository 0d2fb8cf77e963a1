import polars as pl


def is_known(col: pl.Expr) -> pl.Expr:
    """True when a value is present and, for strings, not blank."""
    return col.is_not_null() & (col.cast(pl.String).str.strip_chars() != "")


def clean_code(col: pl.Expr) -> pl.Expr:
    """Normalizes a code value: trimmed, upper-cased, empty strings as null."""
    return col.cast(pl.String).str.strip_chars().str.to_uppercase().replace("", None)
