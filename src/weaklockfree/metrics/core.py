from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:  # pragma: no cover
    from weaklockfree.core.maps import WeakConcurrentMap

_COUNTERS: Dict[str, str] = {
    "puts_total": "Total put operations",
    "gets_total": "Total get operations",
    "removes_total": "Total remove operations",
    "defaults_total": "Values synthesized by the default hook on a miss",
    "expunged_total": "Collected-key notifications consumed by cleanup",
    "clears_total": "Full-map clears, including cleaner shutdown",
}


class MetricsSnapshot(BaseModel):
    """Point-in-time view of a map's counters and cleanup state."""

    puts_total: int = 0
    gets_total: int = 0
    removes_total: int = 0
    defaults_total: int = 0
    expunged_total: int = 0
    clears_total: int = 0
    approximate_size: int = Field(default=0, ge=0)
    largest_stripe: int = Field(default=0, ge=0)
    pending_notifications: int = Field(default=0, ge=0)
    strategy: Optional[str] = None
    cleaner_alive: Optional[bool] = None


class CleanupMetrics:
    """Thread-safe counters updated by a map and its cleanup strategy."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.puts_total = 0
        self.gets_total = 0
        self.removes_total = 0
        self.defaults_total = 0
        self.expunged_total = 0
        self.clears_total = 0

    def inc(self, name: str, amount: int = 1) -> None:
        if name not in _COUNTERS:
            raise KeyError(name)
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def record_expunged(self, count: int) -> None:
        self.inc("expunged_total", count)

    def counters(self) -> Dict[str, int]:
        with self._lock:
            return {name: getattr(self, name) for name in _COUNTERS}

    def snapshot(self, m: Optional["WeakConcurrentMap[Any, Any]"] = None) -> MetricsSnapshot:
        data: Dict[str, Any] = dict(self.counters())
        if m is not None:
            data["approximate_size"] = m.approximate_size()
            data["largest_stripe"] = m.largest_stripe_size()
            data["pending_notifications"] = m.pending_notifications()
            data["strategy"] = m.strategy_name()
            cleaner = m.cleaner
            data["cleaner_alive"] = cleaner.is_alive() if cleaner is not None else None
        return MetricsSnapshot(**data)

    def render(self, m: Optional["WeakConcurrentMap[Any, Any]"] = None) -> str:
        return render_snapshot(self.snapshot(m))


def render_snapshot(snap: MetricsSnapshot) -> str:
    """Prometheus text for ``snap``; map gauges only when it was taken from a map."""

    lines = []
    for name, help_text in _COUNTERS.items():
        lines.append(f"# HELP weakmap_{name} {help_text}")
        lines.append(f"# TYPE weakmap_{name} counter")
        lines.append(f"weakmap_{name} {getattr(snap, name)}")
    if snap.strategy is not None:
        lines.extend(
            [
                "# HELP weakmap_entries Approximate number of entries, stale ones included",
                "# TYPE weakmap_entries gauge",
                f"weakmap_entries {snap.approximate_size}",
                "# HELP weakmap_largest_stripe_entries Entries in the fullest lock stripe",
                "# TYPE weakmap_largest_stripe_entries gauge",
                f"weakmap_largest_stripe_entries {snap.largest_stripe}",
                "# HELP weakmap_pending_notifications Collected keys awaiting cleanup",
                "# TYPE weakmap_pending_notifications gauge",
                f"weakmap_pending_notifications {snap.pending_notifications}",
                "# HELP weakmap_cleaner_alive Background cleaner running (1) or not (0)",
                "# TYPE weakmap_cleaner_alive gauge",
                f"weakmap_cleaner_alive {1 if snap.cleaner_alive else 0}",
                "# HELP weakmap_info Cleanup strategy in use",
                "# TYPE weakmap_info gauge",
                f'weakmap_info{{strategy="{snap.strategy}"}} 1',
            ]
        )
    return "\n".join(lines) + "\n"


__all__ = ["CleanupMetrics", "MetricsSnapshot", "render_snapshot"]
