"""Stale-entry cleanup: the background cleaner and the pluggable strategies."""

from __future__ import annotations

import logging
import threading
from abc import ABC
from typing import TYPE_CHECKING, Any, Optional

from weaklockfree.config import DEFAULT_THREAD_NAME
from weaklockfree.contracts.error import PolicyError

from .queue import WAKE_UP, ReferenceQueue
from .table import StripedTable

if TYPE_CHECKING:  # pragma: no cover
    from weaklockfree.metrics import CleanupMetrics

logger = logging.getLogger(__name__)


def expunge_stale_entries(
    table: StripedTable[Any, Any],
    references: ReferenceQueue,
    metrics: Optional["CleanupMetrics"] = None,
) -> int:
    """Drain every pending notification without waiting.

    A polled wrapper's referent is already gone, so removal lands in the
    bucket picked by its stored hash and takes the first dead wrapper found
    there. That may be a different stale entry than the one notified, which
    is harmless: every dead wrapper is garbage, and the queue yields at least
    one notification per stale entry still in the table.
    """

    drained = 0
    while True:
        ref = references.poll()
        if ref is None:
            break
        table.remove(ref)
        drained += 1
    if drained:
        logger.debug("Expunged %d stale notification(s)", drained)
        if metrics is not None:
            metrics.record_expunged(drained)
    return drained


class ReferenceCleaner:
    """Supervised worker that removes stale entries as their keys are collected.

    The worker blocks on the reference queue until :meth:`cancel` sets the
    cancellation token and wakes it. However the loop ends, the table is
    cleared: nothing is left to purge entries that go stale afterwards.
    """

    def __init__(
        self,
        table: StripedTable[Any, Any],
        references: ReferenceQueue,
        *,
        name: str = DEFAULT_THREAD_NAME,
        daemon: bool = True,
        metrics: Optional["CleanupMetrics"] = None,
    ) -> None:
        self._table = table
        self._references = references
        self._metrics = metrics
        self.name = name
        self.daemon = daemon
        self._cancelled = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread

    def start(self) -> None:
        if self._cancelled.is_set():
            raise PolicyError("cleaner was cancelled and cannot be restarted")
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name=self.name, daemon=self.daemon)
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()
        self._references.wake()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker to finish; return ``True`` once it has stopped."""

        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        return not thread.is_alive()

    def is_alive(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def run(self) -> None:
        logger.info("Reference cleaner started (thread=%s)", threading.current_thread().name)
        removed = 0
        try:
            while not self._cancelled.is_set():
                ref = self._references.remove()
                if ref is None or ref is WAKE_UP:
                    continue
                self._table.remove(ref)
                removed += 1
                if self._metrics is not None:
                    self._metrics.record_expunged(1)
        finally:
            self._table.clear()
            if self._metrics is not None:
                self._metrics.inc("clears_total")
            logger.info("Reference cleaner stopped after %d removal(s); map cleared", removed)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else ("alive" if self.is_alive() else "idle")
        return f"<ReferenceCleaner name={self.name!r} {state}>"


class CleanupStrategy(ABC):
    """How a map gets rid of entries whose keys were collected.

    A strategy is bound to exactly one map, which calls
    :meth:`before_operation` ahead of every public operation and
    :meth:`close` when it is shut down.
    """

    name = "abstract"

    def __init__(self) -> None:
        self._table: StripedTable[Any, Any] | None = None
        self._references: ReferenceQueue | None = None
        self._metrics: Optional["CleanupMetrics"] = None

    @property
    def cleaner(self) -> ReferenceCleaner | None:
        return None

    def bind(
        self,
        table: StripedTable[Any, Any],
        references: ReferenceQueue,
        metrics: Optional["CleanupMetrics"] = None,
    ) -> None:
        if self._table is not None:
            raise PolicyError(f"{type(self).__name__} is already bound to a map")
        self._table = table
        self._references = references
        self._metrics = metrics

    def before_operation(self) -> None:
        return None

    def expunge(self) -> int:
        if self._table is None or self._references is None:
            raise PolicyError(f"{type(self).__name__} is not bound to a map")
        return expunge_stale_entries(self._table, self._references, self._metrics)

    def close(self, timeout: float | None = None) -> None:
        return None


class ManualExpunction(CleanupStrategy):
    """No worker and no inline drain; the owner calls ``expunge_stale_entries``."""

    name = "manual"


class InlineExpunction(CleanupStrategy):
    """Drain pending notifications on the caller's thread before each operation."""

    name = "inline"

    def before_operation(self) -> None:
        self.expunge()


class BackgroundCleaner(CleanupStrategy):
    """Run a :class:`ReferenceCleaner` thread for the lifetime of the map."""

    name = "thread"

    def __init__(
        self,
        *,
        thread_name: str = DEFAULT_THREAD_NAME,
        daemon: bool = True,
        join_timeout: float | None = 1.0,
    ) -> None:
        super().__init__()
        self.thread_name = thread_name
        self.daemon = daemon
        self.join_timeout = join_timeout
        self._cleaner: ReferenceCleaner | None = None

    @property
    def cleaner(self) -> ReferenceCleaner | None:
        return self._cleaner

    def bind(
        self,
        table: StripedTable[Any, Any],
        references: ReferenceQueue,
        metrics: Optional["CleanupMetrics"] = None,
    ) -> None:
        super().bind(table, references, metrics)
        self._cleaner = ReferenceCleaner(
            table, references, name=self.thread_name, daemon=self.daemon, metrics=metrics
        )
        self._cleaner.start()

    def close(self, timeout: float | None = None) -> None:
        cleaner = self._cleaner
        if cleaner is None:
            return
        cleaner.cancel()
        if not cleaner.join(self.join_timeout if timeout is None else timeout):
            logger.warning("Reference cleaner %r did not stop within the join timeout", cleaner.name)


__all__ = [
    "BackgroundCleaner",
    "CleanupStrategy",
    "InlineExpunction",
    "ManualExpunction",
    "ReferenceCleaner",
    "expunge_stale_entries",
]
