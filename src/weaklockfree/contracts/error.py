"""Failure types for weak maps and the stress CLI.

Every error raised by this package derives from :class:`EnvelopeError`. Each
subclass names the CLI label and exit code it maps to, so ``guard_cli`` needs
no lookup table:

* ``InvalidArgument`` (2): a ``None`` key or value, or a key that cannot be
  weakly referenced.
* ``BadConfig`` (2): TOML, environment or flag values that fail validation.
* ``MapInvariant`` (3): a stress run read a value under the wrong key or left
  stale entries behind after draining.
* ``Lifecycle`` (4): a cleaner restarted after cancellation, or a cleanup
  strategy bound twice or used unbound.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from functools import wraps
from typing import Any, ClassVar, NoReturn, TypeVar

logger = logging.getLogger(__name__)
T = TypeVar("T")


class Exit(IntEnum):
    OK = 0
    BAD_INPUT = 2
    MAP_INVARIANT = 3
    LIFECYCLE = 4
    INTERNAL = 5


@dataclass(slots=True)
class ErrorEnvelope:
    """One JSON line on stderr describing why the CLI stopped."""

    error: str
    detail: str
    exit_code: int
    hint: str | None = None

    def to_json(self) -> str:
        payload: dict[str, Any] = {
            "error": self.error,
            "detail": self.detail,
            "exit_code": self.exit_code,
        }
        if self.hint:
            payload["hint"] = self.hint
        return json.dumps(payload, ensure_ascii=False)


def die(code: Exit, kind: str, detail: str, hint: str | None = None) -> NoReturn:
    sys.stderr.write(ErrorEnvelope(kind, detail, int(code), hint).to_json() + "\n")
    sys.stderr.flush()
    sys.exit(int(code))


class EnvelopeError(Exception):
    """Base for package errors; ``hint`` suggests a fix to the CLI user."""

    label: ClassVar[str] = "Internal"
    exit_code: ClassVar[Exit] = Exit.INTERNAL

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class InvalidArgumentError(EnvelopeError, ValueError):
    """A ``None`` key or value, or a key that ``weakref.ref`` rejects."""

    label = "InvalidArgument"
    exit_code = Exit.BAD_INPUT


class BadInputError(EnvelopeError):
    label = "BadConfig"
    exit_code = Exit.BAD_INPUT


class InvariantError(EnvelopeError):
    """A stress run saw a misattributed value or could not drain the map."""

    label = "MapInvariant"
    exit_code = Exit.MAP_INVARIANT


class PolicyError(EnvelopeError):
    """Cleaner or strategy used outside its start/bind/close lifecycle."""

    label = "Lifecycle"
    exit_code = Exit.LIFECYCLE


def guard_cli(fn: Callable[..., T]) -> Callable[..., T]:
    """Turn package errors raised by a CLI handler into an envelope and exit code."""

    @wraps(fn)
    def _wrapped(*args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except EnvelopeError as exc:
            die(exc.exit_code, exc.label, str(exc), hint=exc.hint)
        except Exception as exc:
            logger.exception("Stress CLI failed outside the error contract")
            die(Exit.INTERNAL, "Internal", f"{type(exc).__name__}: {exc}")

    return _wrapped


__all__ = [
    "Exit",
    "ErrorEnvelope",
    "EnvelopeError",
    "InvalidArgumentError",
    "BadInputError",
    "InvariantError",
    "PolicyError",
    "guard_cli",
    "die",
]
