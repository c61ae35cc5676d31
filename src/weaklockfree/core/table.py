"""Lock-striped hash table backing :class:`~weaklockfree.core.maps.WeakConcurrentMap`.

Keys are wrappers hashed by ``id()``. CPython addresses share their low bits
(allocations are 16-byte aligned and neighbours sit a few dozen bytes apart),
so the stripe is taken from the top bits of a multiplicative hash rather than
from the raw low bits.
"""

from __future__ import annotations

import threading
from typing import Dict, Generic, List, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")

_HASH_GOLDEN_64: int = 0x9E3779B97F4A7C15
_MASK_64: int = (1 << 64) - 1


class StripedTable(Generic[K, V]):
    """Thread-safe hash table built from lock-striped dict segments.

    Each call touches exactly one stripe and holds its lock for a single dict
    operation. ``clear`` and ``len`` visit stripes one at a time and are not
    atomic across the whole table.
    """

    __slots__ = ("_segments", "_locks", "_mask", "_shift")

    def __init__(self, stripes: int = 16) -> None:
        if stripes < 1 or (stripes & (stripes - 1)) != 0:
            raise ValueError("stripes must be a power of two")
        self._mask = stripes - 1
        self._shift = 64 - self._mask.bit_length()
        self._segments: List[Dict[K, V]] = [{} for _ in range(stripes)]
        # Re-entrant: a finalizer run by a collection inside a dict operation
        # may call back into the same table on this thread.
        self._locks = [threading.RLock() for _ in range(stripes)]

    @property
    def stripes(self) -> int:
        return self._mask + 1

    def _index(self, key: K) -> int:
        if self._mask == 0:
            return 0
        return ((hash(key) * _HASH_GOLDEN_64) & _MASK_64) >> self._shift

    def get(self, key: K) -> Optional[V]:
        i = self._index(key)
        with self._locks[i]:
            return self._segments[i].get(key)

    def put(self, key: K, value: V) -> Optional[V]:
        i = self._index(key)
        with self._locks[i]:
            segment = self._segments[i]
            previous = segment.get(key)
            segment[key] = value
            return previous

    def remove(self, key: K) -> Optional[V]:
        i = self._index(key)
        with self._locks[i]:
            return self._segments[i].pop(key, None)

    def contains(self, key: K) -> bool:
        i = self._index(key)
        with self._locks[i]:
            return key in self._segments[i]

    def clear(self) -> None:
        for lock, segment in zip(self._locks, self._segments):
            with lock:
                segment.clear()

    def __len__(self) -> int:
        total = 0
        for lock, segment in zip(self._locks, self._segments):
            with lock:
                total += len(segment)
        return total

    def max_segment_len(self) -> int:
        longest = 0
        for lock, segment in zip(self._locks, self._segments):
            with lock:
                longest = max(longest, len(segment))
        return longest


__all__ = ["StripedTable"]
