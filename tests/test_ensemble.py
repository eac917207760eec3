"""Tests for ensembles of independent trajectories."""

import pytest

from foldkin import ensemble
from foldkin.cotranscription import TranscriptionSchedule
from foldkin.ensemble import run_ensemble
from foldkin.errors import ConfigurationError, InvalidMove
from foldkin.simulation import HaltReason, SimulationConfig, Simulator, simulate


def _member_or_crash(task: dict):
    """Worker entry that dies outright for seed 11."""
    if task["seed"] == 11:
        raise KeyError("worker crashed")
    return ensemble._run_member(task, **ensemble._ENSEMBLE_GLOBALS)


class TestRunEnsemble:
    """Tests for run_ensemble()."""

    def test_members_are_seeded_runs(self) -> None:
        """Member k is the trajectory seeded with base_seed + k."""
        config = SimulationConfig(seed=10, t_max=None, max_steps=20)
        members = run_ensemble("GGGAAACCC", config, n=3)
        assert [m.index for m in members] == [0, 1, 2]
        assert [m.seed for m in members] == [10, 11, 12]
        for member in members:
            assert member.ok
            assert member.status is HaltReason.STEP_CAP
            expected = simulate("GGGAAACCC", SimulationConfig(seed=member.seed, t_max=None, max_steps=20))
            assert member.result.trajectory == expected.trajectory

    def test_process_pool_matches_sequential(self) -> None:
        """Parallel members equal sequential members."""
        config = SimulationConfig(seed=3, t_max=None, max_steps=30)
        sequential = run_ensemble("GGGAAACCC", config, n=4)
        parallel = run_ensemble("GGGAAACCC", config, n=4, processes=2)
        assert [m.index for m in parallel] == [0, 1, 2, 3]
        for a, b in zip(sequential, parallel):
            assert a.result.trajectory == b.result.trajectory

    def test_random_base_seed(self) -> None:
        """Without a seed the members still get consecutive seeds."""
        members = run_ensemble("GGGAAACCC", SimulationConfig(t_max=None, max_steps=2), n=3)
        seeds = [m.seed for m in members]
        assert seeds == [seeds[0], seeds[0] + 1, seeds[0] + 2]

    def test_failure_is_isolated(self, monkeypatch) -> None:
        """A fatal error in one member does not abort its siblings."""

        class FailingSimulator(Simulator):
            def run(self):
                if self.config.seed == 11:
                    raise InvalidMove(0, 8, "injected failure")
                return super().run()

        monkeypatch.setattr(ensemble, "Simulator", FailingSimulator)
        config = SimulationConfig(seed=10, t_max=None, max_steps=5)
        members = run_ensemble("GGGAAACCC", config, n=3)
        assert [m.ok for m in members] == [True, False, True]
        assert members[1].result is None
        assert members[1].status is None
        assert "InvalidMove" in members[1].error
        assert members[2].result.steps == 5

    def test_unexpected_exception_is_isolated(self, monkeypatch) -> None:
        """Errors outside the package hierarchy also fail only their member."""

        class BrokenSimulator(Simulator):
            def run(self):
                if self.config.seed == 101:
                    raise KeyError("missing loop")
                return super().run()

        monkeypatch.setattr(ensemble, "Simulator", BrokenSimulator)
        config = SimulationConfig(seed=100, t_max=None, max_steps=5)
        members = run_ensemble("GGGAAACCC", config, n=3)
        assert [m.ok for m in members] == [True, False, True]
        assert members[1].seed == 101
        assert members[1].error.startswith("KeyError")
        assert members[0].result.steps == 5

    def test_lost_worker_result_is_a_failed_member(self, monkeypatch) -> None:
        """An exception re-raised by a pool future becomes a failed member."""
        monkeypatch.setattr(ensemble, "_run_member_global", _member_or_crash)
        config = SimulationConfig(seed=10, t_max=None, max_steps=5)
        members = run_ensemble("GGGAAACCC", config, n=3, processes=2)
        assert [m.index for m in members] == [0, 1, 2]
        assert [m.ok for m in members] == [True, False, True]
        assert members[1].seed == 11
        assert "KeyError" in members[1].error

    def test_cotranscriptional(self) -> None:
        """Members can grow the sequence along a schedule."""
        seq = "GGGAAACCCAGGGAAACCC"
        schedule = TranscriptionSchedule.uniform(9, len(seq), rate=0.5)
        config = SimulationConfig(seed=1, t_max=1e5)
        members = run_ensemble(seq, config, n=2, schedule=schedule, start_length=9)
        for member in members:
            assert member.ok
            assert len(member.result.structure) == len(seq)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"n": 0},
            {"n": 2, "processes": 0},
            {"n": 2, "schedule": TranscriptionSchedule([])},
        ],
    )
    def test_invalid(self, kwargs) -> None:
        """Ensemble settings are validated up front."""
        with pytest.raises(ConfigurationError):
            run_ensemble("GGGAAACCC", SimulationConfig(seed=1), **kwargs)

    def test_invalid_config(self) -> None:
        """A config that cannot run fails before any member starts."""
        with pytest.raises(ConfigurationError):
            run_ensemble("GGGAAACCC", SimulationConfig(rule="unknown"), n=2)
