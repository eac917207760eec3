"""
Kinetic rules mapping energy changes to transition rates.

    Metropolis:  k = k0                 if dE <= 0
                 k = k0 * exp(-dE / RT) otherwise
    Kawasaki:    k = k0 * exp(-dE / 2RT)

Both rules satisfy detailed balance, k(a->b) / k(b->a) = exp(-dE / RT).
Rate models are immutable and pure: the same dE always gives the same rate.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError

__all__ = [
    "KB",
    "K0",
    "RateModel",
    "Metropolis",
    "Kawasaki",
    "RULES",
    "make_rate_model",
]

# Boltzmann constant in kcal/(mol K)
KB = 0.001987204285
# 0 C in Kelvin
K0 = 273.15


@dataclass(frozen=True)
class RateModel(ABC):
    """Base class of kinetic rules.

    Subclasses implement ``rates`` on an array of energy changes; the
    scalar methods go through it, so both paths give identical values.

    Attributes:
        temperature: Temperature in Celsius
        k0: Rate constant (per unit of simulated time)
    """

    temperature: float = 37.0
    k0: float = 1.0

    def __post_init__(self) -> None:
        if not self.k0 > 0 or math.isinf(self.k0):
            raise ConfigurationError(f"k0 must be a positive finite number, got {self.k0}")
        if not self.temperature + K0 > 0:
            raise ConfigurationError(
                f"Absolute temperature must be positive, got {self.temperature} C"
            )

    @property
    def rt(self) -> float:
        return KB * (self.temperature + K0)

    @abstractmethod
    def rates(self, deltas) -> np.ndarray:
        """Rates of an array of energy changes."""

    @abstractmethod
    def log_rate(self, delta: float) -> float:
        """Natural logarithm of the rate of ``delta``."""

    def rate(self, delta: float) -> float:
        return float(self.rates([delta])[0])


@dataclass(frozen=True)
class Metropolis(RateModel):
    """Metropolis rule: downhill moves at k0, uphill moves Boltzmann-damped."""

    def rates(self, deltas) -> np.ndarray:
        d = np.asarray(deltas, dtype=float)
        return self.k0 * np.exp(-np.maximum(d, 0.0) / self.rt)

    def log_rate(self, delta: float) -> float:
        return math.log(self.k0) - max(delta, 0.0) / self.rt


@dataclass(frozen=True)
class Kawasaki(RateModel):
    """Kawasaki rule: symmetric split of the energy change."""

    def rates(self, deltas) -> np.ndarray:
        d = np.asarray(deltas, dtype=float)
        return self.k0 * np.exp(-d / (2.0 * self.rt))

    def log_rate(self, delta: float) -> float:
        return math.log(self.k0) - delta / (2.0 * self.rt)


RULES: dict[str, type[RateModel]] = {
    "metropolis": Metropolis,
    "kawasaki": Kawasaki,
}


def make_rate_model(rule: str, temperature: float = 37.0, k0: float = 1.0) -> RateModel:
    """Instantiate a rate model by rule name (case-insensitive)."""
    try:
        cls = RULES[str(rule).lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown kinetic rule '{rule}', expected one of {sorted(RULES)}"
        ) from None
    return cls(temperature=temperature, k0=k0)
