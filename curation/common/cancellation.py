"""Cooperative cancellation for long population scans."""

import threading
import time

from curation.errors import OperationCancelledError


class CancellationToken:
    """
    Flag that a running window or batch loop checks between units of work.

    A token is cancelled explicitly with `cancel()` or implicitly once `timeout`
    seconds have passed since it was created. Safe to share between threads.
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self, context: str = "") -> None:
        if not self.cancelled:
            return
        reason = "deadline passed" if not self._event.is_set() else "cancelled"
        where = f" during {context}" if context else ""
        raise OperationCancelledError(f"Operation {reason}{where}")


def check_cancelled(token: CancellationToken | None, context: str = "") -> None:
    if token is not None:
        token.raise_if_cancelled(context)
