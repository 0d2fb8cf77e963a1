"""Batch runs with per-item failure isolation."""

import warnings
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import polars as pl

from curation.common.cancellation import CancellationToken, check_cancelled
from curation.errors import CurationError, EmptyInputResult, OperationCancelledError
from tabular.logger.logger import log_error, log_info, log_warning


class ItemStatus(StrEnum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class BatchItemResult:
    name: str
    status: ItemStatus
    n_rows: int = 0
    error: str | None = None


@dataclass
class BatchReport:
    """Outcome of every item of a batch run, in run order."""

    items: list[BatchItemResult] = field(default_factory=list)

    def record(self, name: str, status: ItemStatus, n_rows: int = 0, error: str | None = None) -> None:
        self.items.append(BatchItemResult(name, status, n_rows, error))

    def names(self, status: ItemStatus | None = None) -> list[str]:
        return [item.name for item in self.items if status is None or item.status == status]

    @property
    def failed(self) -> list[BatchItemResult]:
        return [item for item in self.items if item.status == ItemStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "BatchReport") -> "BatchReport":
        return BatchReport(self.items + other.items)

    def to_frame(self) -> pl.DataFrame:
        return pl.DataFrame(
            [
                {
                    "name": item.name,
                    "status": str(item.status),
                    "n_rows": item.n_rows,
                    "error": item.error,
                }
                for item in self.items
            ],
            schema={"name": pl.String, "status": pl.String, "n_rows": pl.Int64, "error": pl.String},
        )

    def summary(self) -> dict[str, Any]:
        return {
            "total_items": len(self.items),
            "ok_items": len(self.names(ItemStatus.OK)),
            "empty_items": len(self.names(ItemStatus.EMPTY)),
            "failed_items": len(self.failed),
            "errors": {item.name: item.error for item in self.failed},
        }


def run_batch(
    items: Iterable[tuple[str, Callable[[], pl.LazyFrame | pl.DataFrame]]],
    cancel_token: CancellationToken | None = None,
) -> tuple[dict[str, pl.DataFrame], BatchReport]:
    """
    Build and collect every item, isolating failures.

    An item raising a CurationError or a polars error is logged, recorded as
    failed and left out of the results. Empty results are kept and recorded as
    empty. Cancellation stops the whole run.

    Returns:
        Collected frames by item name, and the batch report.
    """
    results: dict[str, pl.DataFrame] = {}
    report = BatchReport()

    for name, build in items:
        check_cancelled(cancel_token, f"batch item {name}")
        try:
            frame = build()
            df = frame.collect() if isinstance(frame, pl.LazyFrame) else frame
        except OperationCancelledError:
            raise
        except (CurationError, pl.exceptions.PolarsError) as e:
            log_error(f"{name}: {type(e).__name__}: {e}")
            report.record(name, ItemStatus.FAILED, error=f"{type(e).__name__}: {e}")
            continue

        if df.height == 0:
            message = f"{name}: produced no rows"
            log_warning(message)
            warnings.warn(message, EmptyInputResult, stacklevel=2)
            report.record(name, ItemStatus.EMPTY)
        else:
            report.record(name, ItemStatus.OK, n_rows=df.height)
        results[name] = df

    log_info(
        f"{len(report.items)} item(s): {len(report.names(ItemStatus.OK))} ok, "
        f"{len(report.names(ItemStatus.EMPTY))} empty, {len(report.failed)} failed"
    )
    return results, report
