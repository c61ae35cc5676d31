"""Weak key wrappers compared by referent identity."""

from __future__ import annotations

import weakref
from collections.abc import Callable
from typing import Any, Optional

from weaklockfree.contracts.error import InvalidArgumentError


class WeakKey(weakref.ref):
    """Weak reference hashed by the referent's identity, not its contents.

    The hash is captured once at construction, while the referent is known
    to be alive, and never changes afterwards. A wrapper therefore stays in
    the right bucket of a table after its referent is collected.

    Equality deliberately breaks the usual ``__eq__``/``__hash__`` contract:
    two wrappers are equal when their *current* referents are the same
    object. Two wrappers whose referents are both gone are equal to each
    other even if they once pointed at different keys. A live key is never
    equal to a dead wrapper, so an ``id()`` reused after collection cannot
    make a stale wrapper match a live lookup.
    """

    __slots__ = ("_hash",)

    def __init__(self, key: Any, callback: Optional[Callable[["WeakKey"], None]] = None) -> None:
        super().__init__(key, callback)
        self._hash = id(key)

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeakKey):
            return NotImplemented
        return self() is other()

    def __ne__(self, other: object) -> bool:
        if not isinstance(other, WeakKey):
            return NotImplemented
        return self() is not other()

    def __repr__(self) -> str:
        referent = self()
        state = "dead" if referent is None else type(referent).__name__
        return f"<WeakKey hash={self._hash:#x} {state}>"


def wrap_key(key: Any, callback: Optional[Callable[[WeakKey], None]] = None) -> WeakKey:
    """Wrap ``key`` for the table, rejecting ``None`` and non-referenceable keys."""

    if key is None:
        raise InvalidArgumentError("key must not be None")
    try:
        return WeakKey(key, callback)
    except TypeError as exc:
        raise InvalidArgumentError(
            f"key of type {type(key).__name__} does not support weak references",
            hint="int, str, tuple and plain list/dict instances cannot be weakly referenced",
        ) from exc


__all__ = ["WeakKey", "wrap_key"]
