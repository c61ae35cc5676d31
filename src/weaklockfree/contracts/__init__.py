"""Error contracts for the weak concurrent map."""

from .error import (
    BadInputError,
    EnvelopeError,
    ErrorEnvelope,
    Exit,
    InvalidArgumentError,
    InvariantError,
    PolicyError,
    die,
    guard_cli,
)

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
