from __future__ import annotations

import gc
import time
from collections.abc import Callable


class Key:
    """Weakly referenceable key with value equality, which the map must ignore."""

    def __init__(self, ident: int) -> None:
        self.ident = ident

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Key) and other.ident == self.ident

    def __hash__(self) -> int:
        return hash(self.ident)

    def __repr__(self) -> str:
        return f"Key({self.ident})"


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Collect garbage and poll ``predicate`` until it holds or ``timeout`` elapses."""

    deadline = time.monotonic() + timeout
    while True:
        gc.collect()
        if predicate():
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.01)


__all__ = ["Key", "wait_until"]
