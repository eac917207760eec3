"""
Macrostate time courses over trajectory ensembles.

A time course samples every trajectory of an ensemble at fixed output
times, classifies the structure present at each time into a macrostate
and accumulates occupancies:

- output_times: 0, a linear grid up to t_ext, then a log grid up to t_end
- Macrostate: named set of structures with Boltzmann weights and
  ensemble free energy -RT ln sum exp(-E / RT)
- MacrostateRegistry: classification, index 0 is "Unassigned"
- Timeline: counts per (output time, macrostate)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .energy import EnergyModel
from .errors import ConfigurationError
from .rates import K0, KB
from .sequence import Sequence
from .simulation import HaltReason, SimulationResult, Trajectory

__all__ = [
    "output_times",
    "Macrostate",
    "MacrostateRegistry",
    "Timeline",
]

logger = logging.getLogger(__name__)

UNASSIGNED = "Unassigned"


def output_times(t_ext: float, t_end: float, t_lin: int, t_log: int) -> np.ndarray:
    """Output time grid.

    Args:
        t_ext: End of the linear part
        t_end: Last output time
        t_lin: Number of linear points after 0
        t_log: Number of log-spaced points after t_ext (t_end included)

    Returns:
        Array of 1 + t_lin + t_log increasing times starting at 0
    """
    if not t_ext > 0:
        raise ConfigurationError(f"t_ext must be positive, got {t_ext}")
    if not t_end > t_ext:
        raise ConfigurationError(f"t_end ({t_end}) must exceed t_ext ({t_ext})")
    if t_lin < 1 or t_log < 1:
        raise ConfigurationError(f"t_lin and t_log must be >= 1, got {t_lin} and {t_log}")

    linear = t_ext * np.arange(1, t_lin + 1) / t_lin
    frac = np.arange(1, t_log) / t_log
    log_start, log_end = math.log(t_ext), math.log(t_end)
    logarithmic = np.exp(log_start + frac * (log_end - log_start))
    return np.concatenate(([0.0], linear, logarithmic, [t_end]))


@dataclass
class Macrostate:
    """Named set of secondary structures.

    Attributes:
        name: Label of the macrostate
        energies: Free energy of each member structure
        probabilities: Boltzmann probability of each member within the set
        ensemble_energy: -RT ln of the summed Boltzmann factors
    """

    name: str
    energies: dict[str, float] = field(default_factory=dict)
    probabilities: dict[str, float] = field(default_factory=dict)
    ensemble_energy: float = 0.0

    @classmethod
    def from_structures(
        cls,
        name: str,
        structures: list[str],
        sequence: Sequence | str,
        model: EnergyModel,
        temperature: float = 37.0,
    ) -> Macrostate:
        if not structures:
            raise ConfigurationError(f"Macrostate '{name}' has no structures")
        rt = KB * (K0 + temperature)
        energies = {s: model.eval_dot_bracket(sequence, s) for s in structures}
        # log-sum-exp for numerical stability
        e_min = min(energies.values())
        weights = {s: math.exp(-(e - e_min) / rt) for s, e in energies.items()}
        q = sum(weights.values())
        return cls(
            name=name,
            energies=energies,
            probabilities={s: w / q for s, w in weights.items()},
            ensemble_energy=e_min - rt * math.log(q),
        )

    def __contains__(self, structure: str) -> bool:
        return structure in self.energies

    def __len__(self) -> int:
        return len(self.energies)


class MacrostateRegistry:
    """Ordered macrostates; structures outside all of them are Unassigned."""

    def __init__(self) -> None:
        self._macrostates: list[Macrostate] = [Macrostate(UNASSIGNED)]
        self._lookup: dict[str, int] = {}

    def insert(self, macrostate: Macrostate) -> int:
        """Register a macrostate and return its index.

        Raises:
            ConfigurationError: if a structure already belongs to another macrostate
        """
        for s in macrostate.energies:
            if s in self._lookup:
                other = self._macrostates[self._lookup[s]].name
                raise ConfigurationError(
                    f"Structure {s} of '{macrostate.name}' already belongs to '{other}'"
                )
        idx = len(self._macrostates)
        self._macrostates.append(macrostate)
        for s in macrostate.energies:
            self._lookup[s] = idx
        return idx

    def classify(self, structure: str) -> int:
        return self._lookup.get(structure, 0)

    def __len__(self) -> int:
        return len(self._macrostates)

    def __getitem__(self, idx: int) -> Macrostate:
        return self._macrostates[idx]

    def __iter__(self):
        return iter(self._macrostates)

    @property
    def names(self) -> list[str]:
        return [m.name for m in self._macrostates]


class Timeline:
    """Macrostate counts at fixed output times.

    Attributes:
        times: Output times
        registry: Macrostate registry used for classification
        counts: Integer matrix (times x macrostates)
    """

    def __init__(self, times, registry: MacrostateRegistry) -> None:
        self.times = np.asarray(times, dtype=float)
        if self.times.ndim != 1 or np.any(np.diff(self.times) < 0):
            raise ConfigurationError("Output times must be a non-decreasing 1-D sequence")
        self.registry = registry
        self.counts = np.zeros((len(self.times), len(registry)), dtype=np.int64)

    def add_trajectory(self, trajectory: Trajectory, until: float | None = None) -> None:
        """Classify the structure present at every output time up to ``until``."""
        for t_idx, t in enumerate(self.times):
            if until is not None and t > until:
                break
            m_idx = self.registry.classify(trajectory.structure_at(float(t)))
            self.counts[t_idx, m_idx] += 1

    def add_result(self, result: SimulationResult) -> None:
        """Add a finished run.

        Trapped runs and runs that reached the horizon keep their final
        structure forever; other runs only cover times up to their halt.
        """
        if result.status in (HaltReason.TIME_HORIZON, HaltReason.TRAPPED):
            self.add_trajectory(result.trajectory)
        else:
            self.add_trajectory(result.trajectory, until=result.time)

    def merge(self, other: Timeline) -> None:
        if other.registry is not self.registry:
            raise ValueError("Cannot merge timelines with different registries")
        if not np.array_equal(self.times, other.times):
            raise ValueError("Cannot merge timelines with different output times")
        self.counts += other.counts

    @property
    def observations(self) -> np.ndarray:
        return self.counts.sum(axis=1)

    def occupancy(self) -> np.ndarray:
        """Fraction of observations in each macrostate (rows without data are 0)."""
        totals = self.observations[:, None]
        return np.divide(
            self.counts, totals, out=np.zeros(self.counts.shape, dtype=float), where=totals > 0
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Long table: one row per (time, macrostate) with a non-zero count."""
        occ = self.occupancy()
        rows = []
        for t_idx, t in enumerate(self.times):
            for m_idx, macrostate in enumerate(self.registry):
                count = int(self.counts[t_idx, m_idx])
                if count == 0:
                    continue
                rows.append(
                    {
                        "time": float(t),
                        "id": m_idx,
                        "macrostate": macrostate.name,
                        "count": count,
                        "occupancy": float(occ[t_idx, m_idx]),
                        "energy": macrostate.ensemble_energy,
                    }
                )
        return pd.DataFrame(
            rows, columns=["time", "id", "macrostate", "count", "occupancy", "energy"]
        )
