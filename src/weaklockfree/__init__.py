"""Thread-safe maps with weak, identity-compared keys."""

from . import config, contracts, core, metrics
from .contracts.error import InvalidArgumentError
from .core import (
    BackgroundCleaner,
    CleanupStrategy,
    InlineExpunction,
    ManualExpunction,
    ReferenceCleaner,
    WeakConcurrentMap,
)

__all__ = [
    "config",
    "contracts",
    "core",
    "metrics",
    "BackgroundCleaner",
    "CleanupStrategy",
    "InlineExpunction",
    "InvalidArgumentError",
    "ManualExpunction",
    "ReferenceCleaner",
    "WeakConcurrentMap",
]
