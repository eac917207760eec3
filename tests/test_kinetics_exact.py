"""Exact enumeration tests for the SSA engine.

A long trajectory spends, in each structure, a fraction of its time that
converges to the Boltzmann probability of that structure. Small systems
are enumerated exhaustively and compared against time-averaged occupancy.

Acceptance criteria: max occupancy error < 5%
"""

import math

import pytest

from foldkin.energy import EnergyModel
from foldkin.energy_params import EnergyParameters
from foldkin.simulation import SimulationConfig, Trajectory, simulate
from foldkin.structure import enumerate_structures

# Flat hairpins and a weak stack keep every state populated.
FLAT = EnergyParameters.from_dict(
    {
        "hairpin": {str(n): 1.0 for n in range(3, 31)},
        "stack": {"GC": {"CG": -0.5}},
    }
)


def exact_distribution(seq: str, model: EnergyModel, temperature: float) -> dict[str, float]:
    """Boltzmann probability of every structure of ``seq``.

    Args:
        seq: Short RNA sequence
        model: Energy model
        temperature: Temperature in Celsius

    Returns:
        Mapping of dot-bracket structure to probability
    """
    rt = 0.001987204285 * (temperature + 273.15)
    weights = {
        s: math.exp(-model.eval_dot_bracket(seq, s) / rt)
        for s in enumerate_structures(seq, min_hairpin=model.min_hairpin)
    }
    z = sum(weights.values())
    return {s: w / z for s, w in weights.items()}


def time_occupancy(trajectory: Trajectory, t_end: float) -> dict[str, float]:
    """Fraction of [0, t_end] spent in each structure."""
    occupancy: dict[str, float] = {}
    records = list(trajectory)
    for rec, nxt in zip(records, records[1:] + [None]):
        stop = t_end if nxt is None else min(nxt.time, t_end)
        if stop > rec.time:
            occupancy[rec.structure] = occupancy.get(rec.structure, 0.0) + stop - rec.time
    return {s: t / t_end for s, t in occupancy.items()}


def max_occupancy_error(observed: dict[str, float], expected: dict[str, float]) -> float:
    return max(abs(observed.get(s, 0.0) - p) for s, p in expected.items())


class TestExactOccupancy:
    """Time-averaged occupancy matches exact enumeration."""

    @pytest.mark.parametrize("rule", ["metropolis", "kawasaki"])
    def test_six_state_system(self, rule: str) -> None:
        """GGAAAACC has six structures, all visited and correctly weighted."""
        seq = "GGAAAACC"
        t_end = 1e4
        config = SimulationConfig(seed=17, rule=rule, dangles=False, t_max=t_end)
        model = config.energy_model(FLAT)

        expected = exact_distribution(seq, model, config.temperature)
        assert len(expected) == 6

        result = simulate(seq, config, FLAT)
        observed = time_occupancy(result.trajectory, t_end)

        assert set(observed) == set(expected)
        assert max_occupancy_error(observed, expected) < 0.05

    def test_two_state_hairpin(self) -> None:
        """Open/closed occupancy of GAAAAC follows exp(-dE / RT)."""
        params = EnergyParameters.from_dict(
            {"hairpin": {"4": 0.3}, "mismatch_hairpin": {"GC": {"AA": 0.0}}}
        )
        t_end = 1e4
        config = SimulationConfig(seed=23, t_max=t_end)
        result = simulate("GAAAAC", config, params)
        observed = time_occupancy(result.trajectory, t_end)

        rt = 0.001987204285 * 310.15
        p_closed = math.exp(-0.3 / rt) / (1.0 + math.exp(-0.3 / rt))
        assert observed["(....)"] == pytest.approx(p_closed, abs=0.05)
