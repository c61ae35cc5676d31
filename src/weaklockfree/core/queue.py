"""Notification queue fed by weak-reference callbacks."""

from __future__ import annotations

import queue
from typing import Any, Optional

from .keys import WeakKey, wrap_key


class _WakeUp:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<wake-up>"


WAKE_UP = _WakeUp()


class ReferenceQueue:
    """FIFO of wrappers whose referents have been collected.

    Wrappers created through :meth:`register` enqueue themselves from their
    weakref callback. Those callbacks may run on any thread in the middle of
    any allocation, so they only ever touch a ``SimpleQueue``, which is safe to
    feed from finalizers.
    """

    __slots__ = ("_queue",)

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[Any]" = queue.SimpleQueue()

    def register(self, key: Any) -> WeakKey:
        return wrap_key(key, self._queue.put)

    def poll(self) -> Optional[WeakKey]:
        """Return the next collected wrapper without waiting, or ``None``."""

        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return None
            if item is not WAKE_UP:
                return item

    def remove(self, timeout: Optional[float] = None) -> Any:
        """Block until a wrapper (or the wake-up sentinel) is available.

        Returns ``None`` when ``timeout`` elapses first.
        """

        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def wake(self) -> None:
        self._queue.put(WAKE_UP)

    def pending(self) -> int:
        return self._queue.qsize()


__all__ = ["ReferenceQueue", "WAKE_UP"]
