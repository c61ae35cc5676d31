from __future__ import annotations

import logging
import weakref
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

from weaklockfree.config import AppConfig
from weaklockfree.contracts.error import InvalidArgumentError

from .cleanup import (
    BackgroundCleaner,
    CleanupStrategy,
    InlineExpunction,
    ManualExpunction,
    ReferenceCleaner,
)
from .keys import wrap_key
from .queue import ReferenceQueue
from .table import StripedTable

if TYPE_CHECKING:  # pragma: no cover
    from weaklockfree.metrics import CleanupMetrics

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class WeakConcurrentMap(Generic[K, V]):
    """Thread-safe map with weak keys compared by identity.

    Entries are bucketed by the key's ``id()`` and two keys are the same key
    only if they are the same object. A mapping disappears once its key is
    collected; how the stale entry is purged depends on the cleanup strategy
    (a background thread by default).

    This is not a ``MutableMapping``: there is no iteration and ``None`` is
    never a valid key or value, so ``get`` returning ``None`` always means
    "absent".
    """

    def __init__(
        self,
        cleaner_thread: bool = True,
        *,
        strategy: Optional[CleanupStrategy] = None,
        stripes: int = 16,
        default_factory: Optional[Callable[[K], Optional[V]]] = None,
        metrics: Optional["CleanupMetrics"] = None,
    ) -> None:
        if strategy is None:
            strategy = BackgroundCleaner() if cleaner_thread else ManualExpunction()
        self._table: StripedTable[Any, V] = StripedTable(stripes)
        self._references = ReferenceQueue()
        self._default_factory = default_factory
        self._metrics = metrics
        self._strategy = strategy
        strategy.bind(self._table, self._references, metrics)
        # Holds the strategy, never the map, so an unclosed map can still be
        # collected and its cleaner thread stopped.
        self._finalizer = weakref.finalize(self, strategy.close)
        logger.debug("Weak map created (strategy=%s, stripes=%d)", strategy.name, stripes)

    @classmethod
    def with_inlined_expunction(cls, **kwargs: Any) -> "WeakConcurrentMap[K, V]":
        """Map whose stale entries are removed as a side effect of using it."""

        return cls(strategy=InlineExpunction(), **kwargs)

    @classmethod
    def from_config(cls, cfg: AppConfig, **kwargs: Any) -> "WeakConcurrentMap[K, V]":
        cfg.validate()
        policy = cfg.cleaner
        strategy: CleanupStrategy
        if policy.mode == "thread":
            strategy = BackgroundCleaner(
                thread_name=policy.thread_name,
                daemon=policy.daemon,
                join_timeout=policy.join_timeout,
            )
        elif policy.mode == "inline":
            strategy = InlineExpunction()
        else:
            strategy = ManualExpunction()
        return cls(strategy=strategy, stripes=cfg.table.stripes, **kwargs)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------
    def get(self, key: K) -> Optional[V]:
        """Return the value for ``key``, consulting :meth:`default_value` on a miss.

        Insertion of a default is not atomic: concurrent misses may each
        compute a value and the last ``put`` wins.
        """

        # The caller's reference keeps ``key`` alive for the whole lookup, so an
        # unregistered wrapper is enough.
        lookup = wrap_key(key)
        self._strategy.before_operation()
        value = self._table.get(lookup)
        self._count("gets_total")
        if value is None:
            value = self.default_value(key)
            if value is not None:
                self._count("defaults_total")
                self.put(key, value)
        return value

    def get_if_present(self, key: K) -> Optional[V]:
        """Return the stored value without consulting the default hook."""

        lookup = wrap_key(key)
        self._strategy.before_operation()
        value = self._table.get(lookup)
        self._count("gets_total")
        return value

    def put(self, key: K, value: V) -> None:
        """Associate ``value`` with ``key``, replacing any previous value."""

        if value is None:
            raise InvalidArgumentError("value must not be None")
        wrapped = self._references.register(key)
        self._strategy.before_operation()
        self._table.put(wrapped, value)
        self._count("puts_total")

    def remove(self, key: K) -> Optional[V]:
        """Remove the mapping for ``key`` and return its value, if any."""

        lookup = wrap_key(key)
        self._strategy.before_operation()
        previous = self._table.remove(lookup)
        self._count("removes_total")
        return previous

    def contains(self, key: K) -> bool:
        lookup = wrap_key(key)
        self._strategy.before_operation()
        return self._table.contains(lookup)

    def __contains__(self, key: object) -> bool:
        return self.contains(key)  # type: ignore[arg-type]

    def clear(self) -> None:
        """Remove every entry; notifications already in flight become no-ops."""

        self._table.clear()
        self._count("clears_total")

    def default_value(self, key: K) -> Optional[V]:
        """Value to insert for ``key`` on a ``get`` miss; ``None`` means no default.

        Override in a subclass or pass ``default_factory`` to the constructor.
        """

        if self._default_factory is None:
            return None
        return self._default_factory(key)

    # ------------------------------------------------------------------
    # Cleanup and lifecycle
    # ------------------------------------------------------------------
    def expunge_stale_entries(self) -> int:
        """Drain pending notifications now; return how many were consumed."""

        return self._strategy.expunge()

    @property
    def cleaner(self) -> ReferenceCleaner | None:
        """The background cleaner, or ``None`` when the strategy has no worker."""

        return self._strategy.cleaner

    @property
    def strategy(self) -> CleanupStrategy:
        return self._strategy

    def strategy_name(self) -> str:
        return self._strategy.name

    @property
    def metrics(self) -> Optional["CleanupMetrics"]:
        return self._metrics

    def approximate_size(self) -> int:
        """Entry count including stale entries not yet purged."""

        return len(self._table)

    def __len__(self) -> int:
        return self.approximate_size()

    def pending_notifications(self) -> int:
        return self._references.pending()

    def largest_stripe_size(self) -> int:
        """Entries in the fullest lock stripe; a skewed spread means lock contention."""

        return self._table.max_segment_len()

    def close(self, timeout: float | None = None) -> None:
        """Stop the background cleaner, if any, and wait for it to exit.

        Runs automatically when the map is garbage collected or at interpreter
        exit if it was never closed.
        """

        self._finalizer.detach()
        self._strategy.close(timeout)

    def __enter__(self) -> "WeakConcurrentMap[K, V]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _count(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.inc(name)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} strategy={self._strategy.name} "
            f"size~{self.approximate_size()}>"
        )


__all__ = ["WeakConcurrentMap"]
