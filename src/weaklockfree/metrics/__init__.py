from .core import CleanupMetrics, MetricsSnapshot, render_snapshot

__all__ = ["CleanupMetrics", "MetricsSnapshot", "render_snapshot"]
