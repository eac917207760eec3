"""
Ensembles of independent trajectories.

Every member owns its structure, move set and random stream; member k is
seeded with ``base_seed + k``. Members run sequentially or in a process
pool (fork context). A fatal error in one member is recorded on that
member and never aborts its siblings.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import random
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, replace

from .cotranscription import CotranscriptionalSimulator, TranscriptionSchedule
from .energy_params import EnergyParameters
from .errors import ConfigurationError
from .sequence import Sequence
from .simulation import HaltReason, SimulationConfig, SimulationResult, Simulator

__all__ = [
    "EnsembleMember",
    "run_ensemble",
]

logger = logging.getLogger(__name__)


@dataclass
class EnsembleMember:
    """One trajectory of an ensemble.

    Attributes:
        index: Position of the member in the ensemble
        seed: Seed of the member's random stream
        result: Simulation result (None if the member failed)
        error: Error message of a failed member
    """

    index: int
    seed: int
    result: SimulationResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status(self) -> HaltReason | None:
        return self.result.status if self.result is not None else None


# Shared read-only inputs for forked workers (avoids pickling them per task).
_ENSEMBLE_GLOBALS: dict[str, object] = {}


def _run_member(
    task: dict,
    *,
    sequence: str,
    config: SimulationConfig,
    params: EnergyParameters | None,
    structure: str | None,
    schedule: TranscriptionSchedule | None,
    start_length: int | None,
) -> EnsembleMember:
    index = int(task["index"])
    seed = int(task["seed"])
    cfg = replace(config, seed=seed)
    member = EnsembleMember(index=index, seed=seed)
    try:
        if schedule is not None:
            sim: Simulator = CotranscriptionalSimulator(
                sequence, schedule, cfg, params, start_length=start_length, structure=structure
            )
        else:
            sim = Simulator(sequence, cfg, params, structure=structure)
        member.result = sim.run()
    except Exception as exc:
        logger.warning("Ensemble member %d (seed %d) failed: %s", index, seed, exc, exc_info=True)
        member.error = _describe(exc)
    return member


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def _run_member_global(task: dict) -> EnsembleMember:
    return _run_member(task, **_ENSEMBLE_GLOBALS)


def run_ensemble(
    sequence: Sequence | str,
    config: SimulationConfig,
    n: int,
    params: EnergyParameters | None = None,
    processes: int = 1,
    structure: str | None = None,
    schedule: TranscriptionSchedule | None = None,
    start_length: int | None = None,
) -> list[EnsembleMember]:
    """Run ``n`` independent trajectories.

    Args:
        sequence: Nucleotide sequence (the full sequence for cotranscription)
        config: Shared configuration; ``config.seed`` is the base seed
        n: Number of trajectories
        params: Energy parameters shared read-only by all members
        processes: Worker processes (1 = sequential)
        structure: Common starting structure
        schedule: Transcription schedule (enables cotranscriptional runs)
        start_length: Initial transcript length for cotranscriptional runs

    Returns:
        Members ordered by index
    """
    if n < 1:
        raise ConfigurationError(f"Ensemble size must be >= 1, got {n}")
    if processes < 1:
        raise ConfigurationError(f"processes must be >= 1, got {processes}")
    seq = str(Sequence(sequence))
    config.validate(len(seq))
    if schedule is not None and start_length is None:
        raise ConfigurationError("start_length is required with a transcription schedule")

    base_seed = config.seed
    if base_seed is None:
        base_seed = random.Random().randrange(2**31)
        logger.info("No seed given; ensemble base seed is %d", base_seed)

    tasks = [{"index": k, "seed": base_seed + k} for k in range(n)]
    shared = {
        "sequence": seq,
        "config": config,
        "params": params,
        "structure": structure,
        "schedule": schedule,
        "start_length": start_length,
    }

    members: list[EnsembleMember] = []
    ctx = None
    if processes > 1 and n > 1:
        try:
            ctx = mp.get_context("fork")
        except ValueError:
            ctx = None

    if ctx is None:
        members = [_run_member(task, **shared) for task in tasks]
    else:
        _ENSEMBLE_GLOBALS.update(shared)
        try:
            with ProcessPoolExecutor(max_workers=min(processes, n), mp_context=ctx) as ex:
                futures = {ex.submit(_run_member_global, task): task for task in tasks}
                for fut in as_completed(futures):
                    task = futures[fut]
                    try:
                        members.append(fut.result())
                    except Exception as exc:
                        # Worker died or the result could not be unpickled.
                        logger.warning(
                            "Ensemble member %d (seed %d) lost: %s", task["index"], task["seed"], exc
                        )
                        members.append(
                            EnsembleMember(task["index"], task["seed"], error=_describe(exc))
                        )
        except (PermissionError, OSError) as exc:
            # Some environments disallow process-based parallelism.
            logger.warning("Process pool unavailable (%s); running members sequentially", exc)
            members = [_run_member(task, **shared) for task in tasks]
        finally:
            _ENSEMBLE_GLOBALS.clear()

    members.sort(key=lambda m: m.index)
    n_failed = sum(1 for m in members if not m.ok)
    logger.info("Ensemble of %d finished (%d failed)", n, n_failed)
    return members
