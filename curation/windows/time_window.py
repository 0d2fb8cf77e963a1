"""
Time windows relative to the index date.

The two directions have different defaults and different inclusiveness:

before
    `end_offset` defaults to 0 and `start_offset` is unbounded. An event is in the
    window when `-start_offset <= delta < -end_offset`, so the default window is
    strictly before the index date and adjacent windows (0-30 and 30-90 days
    before) never share a day.

after
    `start_offset` defaults to 0 and `end_offset` is unbounded. An event is in the
    window when `start_offset <= delta <= end_offset`, so the index day itself
    counts as an outcome day.

`delta` is `event_date - index_date` in whole days, negative before the index date.
"""

from dataclasses import dataclass
from typing import Self

import polars as pl

from curation.common.constants import Direction
from curation.errors import InvalidWindowError


def _check_offset(name: str, value: int | None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidWindowError(f"{name} must be an integer number of days, got {value!r}")
    if value < 0:
        raise InvalidWindowError(f"{name} must be non-negative, got {value}")


def normalize_offsets(
    direction: Direction | str,
    start_offset: int | None,
    end_offset: int | None,
) -> tuple[Direction, int | None, int | None]:
    """Apply the direction defaults and validate the offsets."""
    try:
        direction = Direction(direction)
    except ValueError as e:
        raise InvalidWindowError(f"Unknown window direction: {direction!r}") from e

    _check_offset("start_offset", start_offset)
    _check_offset("end_offset", end_offset)

    match direction:
        case Direction.BEFORE:
            end_offset = 0 if end_offset is None else end_offset
            if start_offset is not None and not end_offset < start_offset:
                raise InvalidWindowError(
                    f"before window needs end_offset < start_offset, got {end_offset} >= {start_offset}"
                )
        case Direction.AFTER:
            start_offset = 0 if start_offset is None else start_offset
            if end_offset is not None and not start_offset < end_offset:
                raise InvalidWindowError(
                    f"after window needs start_offset < end_offset, got {start_offset} >= {end_offset}"
                )

    return direction, start_offset, end_offset


def window_membership(
    delta: pl.Expr,
    direction: Direction | str,
    start_offset: int | None = None,
    end_offset: int | None = None,
) -> pl.Expr:
    """Boolean expression selecting the day deltas inside the window. Null deltas are excluded."""
    direction, start_offset, end_offset = normalize_offsets(direction, start_offset, end_offset)

    if direction == Direction.BEFORE:
        keep = delta < -end_offset
        if start_offset is not None:
            keep = keep & (delta >= -start_offset)
    else:
        keep = delta >= start_offset
        if end_offset is not None:
            keep = keep & (delta <= end_offset)

    return delta.is_not_null() & keep


@dataclass(frozen=True)
class TimeWindow:
    """A labelled window of days before or after the index date."""

    label: str
    direction: Direction
    start_offset: int | None = None
    end_offset: int | None = None

    def __post_init__(self):
        if not isinstance(self.label, str) or not self.label.strip():
            raise InvalidWindowError("window label must be a non-empty string")
        direction, start, end = normalize_offsets(
            self.direction, self.start_offset, self.end_offset
        )
        object.__setattr__(self, "direction", direction)
        object.__setattr__(self, "start_offset", start)
        object.__setattr__(self, "end_offset", end)

    @classmethod
    def before(cls, label: str, start_offset: int | None = None, end_offset: int = 0) -> Self:
        return cls(label, Direction.BEFORE, start_offset, end_offset)

    @classmethod
    def after(cls, label: str, start_offset: int = 0, end_offset: int | None = None) -> Self:
        return cls(label, Direction.AFTER, start_offset, end_offset)

    def contains(self, delta: pl.Expr) -> pl.Expr:
        return window_membership(delta, self.direction, self.start_offset, self.end_offset)

    def describe(self) -> str:
        if self.direction == Direction.BEFORE:
            lower = "any time" if self.start_offset is None else f"{self.start_offset} days"
            return f"{self.label}: from {lower} before index up to {self.end_offset} days before (exclusive)"
        upper = "any time" if self.end_offset is None else f"{self.end_offset} days"
        return f"{self.label}: from {self.start_offset} days after index up to {upper} after (inclusive)"
