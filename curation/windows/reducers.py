"""Named per-patient reducers for window aggregation."""

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import polars as pl

from curation.common.constants import Column
from curation.errors import ConfigurationError


class ReducerKind(StrEnum):
    """Kind of value a reducer produces. Decides the default for patients without events."""

    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    DATE = "date"
    VALUE = "value"


FILL_DEFAULTS: dict[ReducerKind, Any] = {
    ReducerKind.NUMERIC: 0,
    ReducerKind.BOOLEAN: False,
    ReducerKind.DATE: None,
    ReducerKind.VALUE: None,
}


@dataclass(frozen=True)
class Reducer:
    """An aggregation over the events of one patient, evaluated inside `group_by(...).agg`."""

    name: str
    kind: ReducerKind
    aggregate: Callable[[], pl.Expr]
    required_columns: tuple[str, ...] = ()
    description: str = ""

    @property
    def fill_value(self) -> Any:
        return FILL_DEFAULTS[self.kind]

    def expr(self, alias: str | None = None) -> pl.Expr:
        return self.aggregate().alias(alias or self.name)


class ReducerRegistry:
    """Reducers by name. Aggregation specs refer to reducers through this registry."""

    def __init__(self, reducers: Iterable[Reducer] = ()):
        self._reducers: dict[str, Reducer] = {}
        for reducer in reducers:
            self.register(reducer)

    def register(self, reducer: Reducer, replace: bool = False) -> None:
        if reducer.name in self._reducers and not replace:
            raise ConfigurationError(f"Reducer already registered: {reducer.name}")
        self._reducers[reducer.name] = reducer

    def with_reducers(self, *reducers: Reducer) -> "ReducerRegistry":
        """Copy of this registry with `reducers` added or replaced."""
        registry = ReducerRegistry(self)
        for reducer in reducers:
            registry.register(reducer, replace=True)
        return registry

    def get(self, name: str) -> Reducer:
        try:
            return self._reducers[name]
        except KeyError:
            known = ", ".join(sorted(self._reducers))
            raise ConfigurationError(f"Unknown reducer '{name}'. Known reducers: {known}") from None

    def resolve(self, spec: Iterable[str | Reducer]) -> list[Reducer]:
        """Resolve an aggregation spec of names and ad hoc reducers. Duplicates are rejected."""
        if isinstance(spec, (str, Reducer)):
            spec = [spec]
        reducers = [item if isinstance(item, Reducer) else self.get(item) for item in spec]
        if not reducers:
            raise ConfigurationError("Aggregation spec is empty")
        names = [reducer.name for reducer in reducers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate reducers in aggregation spec: {', '.join(duplicates)}")
        return reducers

    def names(self) -> list[str]:
        return list(self._reducers)

    def __contains__(self, name: object) -> bool:
        return name in self._reducers

    def __iter__(self) -> Iterator[Reducer]:
        return iter(self._reducers.values())

    def __len__(self) -> int:
        return len(self._reducers)


N_EVENTS = Reducer(
    name="n_events",
    kind=ReducerKind.NUMERIC,
    aggregate=lambda: pl.len().cast(pl.Int64),
    description="Number of events in the window",
)

HAS_EVENT = Reducer(
    name="has_event",
    kind=ReducerKind.BOOLEAN,
    aggregate=lambda: pl.len() > 0,
    description="At least one event in the window",
)

EARLIEST_DATE = Reducer(
    name="earliest_date",
    kind=ReducerKind.DATE,
    aggregate=lambda: pl.col(Column.EVENT_DATE).min(),
    required_columns=(Column.EVENT_DATE,),
    description="Date of the first event",
)

LATEST_DATE = Reducer(
    name="latest_date",
    kind=ReducerKind.DATE,
    aggregate=lambda: pl.col(Column.EVENT_DATE).max(),
    required_columns=(Column.EVENT_DATE,),
    description="Date of the last event",
)

N_SOURCES = Reducer(
    name="n_sources",
    kind=ReducerKind.NUMERIC,
    aggregate=lambda: pl.col(Column.SOURCE_ID).drop_nulls().n_unique().cast(pl.Int64),
    required_columns=(Column.SOURCE_ID,),
    description="Number of distinct sources reporting an event",
)

# Day deltas are signed, so a missing patient gets null rather than 0.
DAYS_TO_EARLIEST = Reducer(
    name="days_to_earliest",
    kind=ReducerKind.VALUE,
    aggregate=lambda: pl.col(Column.DAYS_FROM_INDEX).min(),
    required_columns=(Column.DAYS_FROM_INDEX,),
    description="Signed days from index to the first event",
)

DAYS_TO_LATEST = Reducer(
    name="days_to_latest",
    kind=ReducerKind.VALUE,
    aggregate=lambda: pl.col(Column.DAYS_FROM_INDEX).max(),
    required_columns=(Column.DAYS_FROM_INDEX,),
    description="Signed days from index to the last event",
)

DEFAULT_REGISTRY = ReducerRegistry(
    [
        N_EVENTS,
        HAS_EVENT,
        EARLIEST_DATE,
        LATEST_DATE,
        N_SOURCES,
        DAYS_TO_EARLIEST,
        DAYS_TO_LATEST,
    ]
)

DEFAULT_AGGREGATION = ("n_events", "has_event")


def value_reducer(
    column: str,
    function: str,
    kind: ReducerKind = ReducerKind.VALUE,
    name: str | None = None,
) -> Reducer:
    """
    Reducer applying a polars aggregation method (`min`, `max`, `mean`, `sum`, ...) to `column`.

    Nulls are ignored by all polars aggregations used here.
    """
    if not hasattr(pl.Expr, function):
        raise ConfigurationError(f"Unknown aggregation function: {function}")
    return Reducer(
        name=name or f"{function}_{column}",
        kind=kind,
        aggregate=lambda: getattr(pl.col(column), function)(),
        required_columns=(column,),
        description=f"{function} of {column}",
    )
