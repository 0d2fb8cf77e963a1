import polars as pl

DAYS_PER_YEAR = 365.25


def datediff(start_date_col: pl.Expr, end_date_col: pl.Expr) -> pl.Expr:
    """
    Calculates the signed number of days from `start_date_col` to `end_date_col`.

    Negative when the end date lies before the start date. Null when either date is null.

    :param start_date_col: Represents the start date of the time period.
    :param end_date_col: Represents the end date of the time period.
    :return: Int64 expression with the day difference.
    """
    return (end_date_col.cast(pl.Date) - start_date_col.cast(pl.Date)).dt.total_days().cast(pl.Int64)


def years_between(start_date_col: pl.Expr, end_date_col: pl.Expr) -> pl.Expr:
    """Fractional years between two dates, using a 365.25 day year."""
    return datediff(start_date_col, end_date_col).cast(pl.Float64) / DAYS_PER_YEAR


def parse_date(col: pl.Expr, date_format: str = "%Y-%m-%d") -> pl.Expr:
    """Parses a string column into a date, leaving unparseable values null."""
    return col.str.to_date(format=date_format, strict=False)


def to_date(col: pl.Expr, dtype: pl.DataType, date_format: str = "%Y-%m-%d") -> pl.Expr:
    """Converts a column of the given dtype to pl.Date."""
    if dtype == pl.String:
        return parse_date(col, date_format)
    return col.cast(pl.Date)
