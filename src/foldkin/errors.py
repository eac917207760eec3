"""
Error taxonomy for folding-kinetics simulations.

Two kinds of failures abort a trajectory:

- ConfigurationError: the inputs cannot describe a valid run (raised at
  construction, before any step).
- InvalidMove: a move would break a structural invariant. The move
  generator only proposes legal moves, so this always indicates an
  internal defect and is never retried.

Kinetic trapping and cancellation are normal terminal states and are
reported through ``foldkin.simulation.HaltReason`` instead.
"""

from __future__ import annotations

__all__ = [
    "FoldkinError",
    "ConfigurationError",
    "ParameterError",
    "InvalidMove",
]


class FoldkinError(Exception):
    """Base class for all errors raised by foldkin."""


class ConfigurationError(FoldkinError, ValueError):
    """Invalid simulation inputs (temperature, rule, loop size, ...)."""


class ParameterError(ConfigurationError):
    """Malformed or incomplete energy parameter table."""


class InvalidMove(FoldkinError, RuntimeError):
    """A base-pair change that violates the structure invariants.

    Attributes:
        i: 5' position of the offending pair
        j: 3' position of the offending pair
        reason: Short description of the violated invariant
    """

    def __init__(self, i: int, j: int, reason: str) -> None:
        super().__init__(f"Invalid move on pair ({i}, {j}): {reason}")
        self.i = i
        self.j = j
        self.reason = reason

    def __reduce__(self):
        return (type(self), (self.i, self.j, self.reason))
