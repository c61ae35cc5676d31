from .cleanup import (
    BackgroundCleaner,
    CleanupStrategy,
    InlineExpunction,
    ManualExpunction,
    ReferenceCleaner,
    expunge_stale_entries,
)
from .keys import WeakKey, wrap_key
from .maps import WeakConcurrentMap
from .queue import ReferenceQueue
from .table import StripedTable

__all__ = [
    "BackgroundCleaner",
    "CleanupStrategy",
    "InlineExpunction",
    "ManualExpunction",
    "ReferenceCleaner",
    "ReferenceQueue",
    "StripedTable",
    "WeakConcurrentMap",
    "WeakKey",
    "expunge_stale_entries",
    "wrap_key",
]
