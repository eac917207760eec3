"""
Exact stochastic simulation of single-molecule folding kinetics.

The engine runs a continuous-time Markov chain over secondary structures
with the two-draw Gillespie algorithm. Each step:

1. takes the legal move set of the current structure and the rate of
   every move, in the canonical move order
2. halts as kinetically trapped if the total rate R is zero
3. draws the waiting time dt = -ln(1 - u1) / R from the first uniform draw
4. selects the move whose cumulative rate interval contains u2 * R, using
   the second uniform draw and the same move order
5. halts at the time horizon if t + dt would cross it; the structure
   occupied at the horizon is then the last recorded one
6. otherwise applies the move atomically, advances time and records the
   new state
7. checks the stopping conditions (target, step cap)

Key components:
- SimulationConfig: Configuration for a run
- Simulator: The state machine (READY -> STEPPING -> HALTED)
- Trajectory: Append-only record of the visited structures
- simulate: Run one trajectory to completion
"""

from __future__ import annotations

import bisect
import logging
import math
import random
import threading
import time as wallclock
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd

from .energy import EnergyModel, LoopIndex
from .energy_params import EnergyParameters
from .errors import ConfigurationError, InvalidMove
from .moves import IncrementalMoveSet, Move, MoveSetConfig, MoveType, apply_move, generate_moves
from .rates import RateModel, make_rate_model
from .sequence import Sequence
from .structure import PairTable
from .validate_structure import validate_structure

__all__ = [
    "SimulationConfig",
    "HaltReason",
    "EngineState",
    "TrajectoryRecord",
    "Trajectory",
    "SimulationDiagnostics",
    "SimulationResult",
    "Simulator",
    "simulate",
]

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    """Configuration for one kinetic simulation.

    Attributes:
        rule: Kinetic rule ("metropolis" or "kawasaki")
        k0: Rate constant
        temperature: Temperature in Celsius
        min_hairpin: Minimum hairpin loop length
        max_span: Largest j - i of a pair (None = unbounded)
        allow_shift: Whether pair shifts are single moves
        dangles: Whether dangling ends contribute to loop energies
        lonely_penalty: Energy penalty per isolated pair (0 = off)
        seed: Random seed for reproducibility
        t_max: Simulated time horizon (None = no horizon)
        max_steps: Step cap (None = no cap)
        target: Dot-bracket structure that ends the run when reached
        incremental: Patch the move set instead of rebuilding it each step
        validate_structures: Whether to validate the structure after each step
    """

    rule: str = "metropolis"
    k0: float = 1.0
    temperature: float = 37.0
    min_hairpin: int = 3
    max_span: int | None = None
    allow_shift: bool = False
    dangles: bool = True
    lonely_penalty: float = 0.0
    seed: int | None = None
    t_max: float | None = 10.0
    max_steps: int | None = None
    target: str | None = None
    incremental: bool = True
    validate_structures: bool = False

    def validate(self, length: int) -> None:
        """Fail fast on settings that cannot describe a run.

        Args:
            length: Length of the (full) sequence

        Raises:
            ConfigurationError: with the offending value in the message
        """
        self.rate_model()
        if self.min_hairpin < 0:
            raise ConfigurationError(f"min_hairpin must be >= 0, got {self.min_hairpin}")
        if self.min_hairpin > length:
            raise ConfigurationError(
                f"min_hairpin {self.min_hairpin} exceeds sequence length {length}"
            )
        if self.max_span is not None and self.max_span < 1:
            raise ConfigurationError(f"max_span must be >= 1 or None, got {self.max_span}")
        if self.lonely_penalty < 0:
            raise ConfigurationError(f"lonely_penalty must be >= 0, got {self.lonely_penalty}")
        if self.t_max is not None and not self.t_max > 0:
            raise ConfigurationError(f"t_max must be positive, got {self.t_max}")
        if self.max_steps is not None and self.max_steps < 1:
            raise ConfigurationError(f"max_steps must be >= 1, got {self.max_steps}")
        if self.t_max is None and self.max_steps is None:
            raise ConfigurationError("At least one of t_max or max_steps must be set")
        if self.target is not None and len(self.target) != length:
            raise ConfigurationError(
                f"Target length {len(self.target)} does not match sequence length {length}"
            )

    def rate_model(self) -> RateModel:
        return make_rate_model(self.rule, self.temperature, self.k0)

    def move_config(self) -> MoveSetConfig:
        return MoveSetConfig(allow_shift=self.allow_shift, max_span=self.max_span)

    def energy_model(self, params: EnergyParameters | None = None) -> EnergyModel:
        return EnergyModel(
            params,
            min_hairpin=self.min_hairpin,
            dangles=self.dangles,
            lonely_penalty=self.lonely_penalty,
            temperature=self.temperature,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class HaltReason(Enum):
    """Terminal status of a trajectory."""

    TIME_HORIZON = "time_horizon"
    TARGET_REACHED = "target_reached"
    TRAPPED = "trapped"
    STEP_CAP = "step_cap"
    CANCELLED = "cancelled"


class EngineState(Enum):
    READY = "ready"
    STEPPING = "stepping"
    HALTED = "halted"


@dataclass(frozen=True)
class TrajectoryRecord:
    """State of the molecule right after a step.

    Attributes:
        step: Step number (0 = initial state)
        time: Simulated time
        move: Description of the applied move (None for the initial state)
        structure: Dot-bracket structure after the move
        energy: Free energy of that structure
    """

    step: int
    time: float
    move: str | None
    structure: str
    energy: float


class Trajectory:
    """Append-only sequence of trajectory records."""

    COLUMNS = ["step", "time", "move", "structure", "energy"]

    def __init__(self) -> None:
        self._records: list[TrajectoryRecord] = []
        self._times: list[float] = []

    def append(self, record: TrajectoryRecord) -> None:
        if self._times and record.time < self._times[-1]:
            raise ValueError(
                f"Trajectory time must not decrease: {record.time} < {self._times[-1]}"
            )
        self._records.append(record)
        self._times.append(record.time)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __getitem__(self, idx):
        return self._records[idx]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Trajectory):
            return NotImplemented
        return self._records == other._records

    @property
    def final(self) -> TrajectoryRecord:
        return self._records[-1]

    def structure_at(self, t: float) -> str:
        """Structure present at simulated time ``t``."""
        if not self._records:
            raise ValueError("Trajectory is empty")
        idx = bisect.bisect_right(self._times, t) - 1
        return self._records[max(idx, 0)].structure

    def to_records(self) -> list[dict[str, Any]]:
        return [asdict(r) for r in self._records]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.to_records(), columns=self.COLUMNS)


@dataclass
class SimulationDiagnostics:
    """Counters collected while a trajectory runs.

    Attributes:
        moves: Number of applied moves by move type
        move_set_sizes: Size of the move set at each step
        wall_seconds: Wall-clock time spent in run()
    """

    moves: dict[MoveType, int] = field(default_factory=dict)
    move_set_sizes: list[int] = field(default_factory=list)
    wall_seconds: float = 0.0

    def record_move(self, move: Move, n_moves: int) -> None:
        self.moves[move.kind] = self.moves.get(move.kind, 0) + 1
        self.move_set_sizes.append(n_moves)

    def summary(self) -> dict[str, Any]:
        sizes = self.move_set_sizes
        return {
            "steps": len(sizes),
            "wall_seconds": self.wall_seconds,
            "moves": {mt.name: self.moves[mt] for mt in MoveType if mt in self.moves},
            "mean_move_set_size": sum(sizes) / len(sizes) if sizes else 0.0,
        }


@dataclass
class SimulationResult:
    """Outcome of one trajectory.

    Attributes:
        trajectory: Recorded trajectory
        status: Reason the engine halted
        time: Simulated time at the halt
        steps: Number of applied moves
        structure: Final dot-bracket structure
        energy: Final free energy
        diagnostics: Run counters
    """

    trajectory: Trajectory
    status: HaltReason
    time: float
    steps: int
    structure: str
    energy: float
    diagnostics: SimulationDiagnostics = field(default_factory=SimulationDiagnostics)


class Simulator:
    """Two-draw SSA engine for one trajectory.

    Args:
        sequence: Nucleotide sequence
        config: Simulation configuration
        params: Energy parameters (default Turner 2004)
        structure: Starting structure (dot-bracket or PairTable, default open chain)
        cancel_event: Shared event; when set, the run halts before its next step
        active_length: Only positions below this index take part in moves
    """

    def __init__(
        self,
        sequence: Sequence | str,
        config: SimulationConfig | None = None,
        params: EnergyParameters | None = None,
        *,
        structure: str | PairTable | None = None,
        cancel_event: threading.Event | None = None,
        active_length: int | None = None,
    ) -> None:
        self.sequence = Sequence(sequence)
        self.config = config if config is not None else SimulationConfig()
        self._check_config()
        n = len(self.sequence)

        if active_length is not None and not 0 < active_length <= n:
            raise ConfigurationError(
                f"active_length must be in 1..{n}, got {active_length}"
            )
        self.active_length = active_length

        self.pair_table = self._initial_structure(structure)
        if active_length is not None and any(j >= active_length for _, j in self.pair_table.pairs()):
            raise ConfigurationError("Initial structure pairs positions beyond active_length")

        self.model = self.config.energy_model(params)
        self.rate_model = self.config.rate_model()
        self.move_config = self.config.move_config()
        self.loop_index = LoopIndex(self.model, self.pair_table, active_length)
        self.move_set: IncrementalMoveSet | None = None
        if self.config.incremental:
            self.move_set = IncrementalMoveSet(
                self.pair_table, self.loop_index, self.move_config, limit=active_length
            )

        self.rng = random.Random(self.config.seed)
        self.cancel_event = cancel_event
        self._cancel_requested = False
        self.time = 0.0
        self.steps = 0
        self.state = EngineState.READY
        self.halt_reason: HaltReason | None = None
        self.diagnostics = SimulationDiagnostics()

        self.trajectory = Trajectory()
        self._record(None)

        if self.config.target is not None and self.structure == self.config.target:
            self._halt(HaltReason.TARGET_REACHED)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def _check_config(self) -> None:
        config = self.config
        config.validate(len(self.sequence))
        if config.target is not None:
            PairTable.from_dot_bracket(self.sequence, config.target, min_hairpin=config.min_hairpin)

    def _initial_structure(self, structure: str | PairTable | None) -> PairTable:
        min_hp = self.config.min_hairpin
        if structure is None:
            return PairTable(self.sequence, min_hairpin=min_hp)
        if isinstance(structure, PairTable):
            if structure.sequence != self.sequence:
                raise ConfigurationError("Initial structure belongs to a different sequence")
            return PairTable(self.sequence, structure.pairs(), min_hairpin=min_hp)
        return PairTable.from_dot_bracket(self.sequence, structure, min_hairpin=min_hp)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def structure(self) -> str:
        return self.pair_table.to_dot_bracket()

    @property
    def energy(self) -> float:
        return self.loop_index.energy

    @property
    def halted(self) -> bool:
        return self.state is EngineState.HALTED

    def moves(self) -> tuple[Move, ...]:
        """Current move set in canonical order."""
        if self.move_set is not None:
            return self.move_set.moves()
        return generate_moves(
            self.pair_table, self.loop_index, self.move_config, limit=self.active_length
        )

    def cancel(self) -> None:
        """Request a cooperative stop before the next step."""
        self._cancel_requested = True

    def _cancelled(self) -> bool:
        return self._cancel_requested or (
            self.cancel_event is not None and self.cancel_event.is_set()
        )

    def _halt(self, reason: HaltReason) -> None:
        self.state = EngineState.HALTED
        self.halt_reason = reason
        logger.debug("Halted: %s at t=%.6g after %d steps", reason.value, self.time, self.steps)

    def _record(self, move: Move | None) -> None:
        self.trajectory.append(
            TrajectoryRecord(
                step=self.steps,
                time=self.time,
                move=move.describe() if move is not None else None,
                structure=self.structure,
                energy=self.energy,
            )
        )

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def step(self) -> HaltReason | None:
        """Perform one SSA step.

        Returns:
            The halt reason if the engine is halted afterwards, else None
        """
        if self.state is EngineState.HALTED:
            return self.halt_reason
        if self._cancelled():
            self._halt(HaltReason.CANCELLED)
            return self.halt_reason

        self.state = EngineState.STEPPING
        moves = self.moves()
        if not moves:
            self._halt(HaltReason.TRAPPED)
            return self.halt_reason

        cumulative = np.cumsum(self.rate_model.rates([m.delta for m in moves]))
        total = float(cumulative[-1])
        if not total > 0:
            self._halt(HaltReason.TRAPPED)
            return self.halt_reason

        # Draw order is fixed: waiting time first, then the move.
        u1 = self.rng.random()
        dt = -math.log(1.0 - u1) / total
        u2 = self.rng.random()
        idx = int(np.searchsorted(cumulative, u2 * total, side="right"))
        move = moves[min(idx, len(moves) - 1)]

        stop = self._next_interruption()
        if stop is not None and self.time + dt > stop:
            # The waiting time outlasts the interruption, so the move never fires.
            self._interrupt(stop)
            return self.halt_reason

        self._commit(move, dt)
        self.diagnostics.record_move(move, len(moves))
        logger.debug(
            "step %d t=%.6g %s dE=%.3f E=%.3f",
            self.steps, self.time, move.describe(), move.delta, self.energy,
        )

        config = self.config
        if config.target is not None and self.structure == config.target:
            self._halt(HaltReason.TARGET_REACHED)
        elif config.max_steps is not None and self.steps >= config.max_steps:
            self._halt(HaltReason.STEP_CAP)
        else:
            self.state = EngineState.READY
        return self.halt_reason

    def _next_interruption(self) -> float | None:
        """Earliest time at which the pending waiting time is cut short."""
        return self.config.t_max

    def _interrupt(self, stop: float) -> None:
        self.time = stop
        self._halt(HaltReason.TIME_HORIZON)

    def _commit(self, move: Move, dt: float) -> None:
        """Apply ``move`` to every piece of state, or to none of them."""
        saved = list(self.pair_table.partners)
        try:
            if self.move_set is not None:
                self.move_set.apply(move)
            else:
                apply_move(move, self.pair_table, self.loop_index)
            if self.config.validate_structures:
                self._validate(move)
        except Exception:
            logger.error("Rolling back step %d after failed move %s", self.steps + 1, move.describe())
            self.pair_table.reset(saved)
            self.loop_index.rebuild()
            if self.move_set is not None:
                self.move_set.rebuild()
            self.state = EngineState.READY
            raise
        self.time += dt
        self.steps += 1
        self._record(move)

    def _validate(self, move: Move) -> None:
        errors = self.pair_table.validate()
        if not errors:
            _, errors = validate_structure(
                str(self.pair_table.sequence),
                self.structure,
                min_hairpin=self.config.min_hairpin,
            )
        if not errors:
            errors = self.loop_index.check()
        if errors:
            raise InvalidMove(move.i, move.j, "; ".join(errors))

    def run(self) -> SimulationResult:
        """Step until the engine halts."""
        logger.info(
            "Starting %s simulation of %d nt (seed=%s)",
            self.config.rule, len(self.sequence), self.config.seed,
        )
        t0 = wallclock.perf_counter()
        while self.state is not EngineState.HALTED:
            self.step()
        self.diagnostics.wall_seconds += wallclock.perf_counter() - t0
        logger.info(
            "Simulation halted (%s) at t=%.6g after %d steps, E=%.2f",
            self.halt_reason.value, self.time, self.steps, self.energy,
        )
        return self.result()

    def result(self) -> SimulationResult:
        if self.halt_reason is None:
            raise RuntimeError("Simulation has not halted yet")
        return SimulationResult(
            trajectory=self.trajectory,
            status=self.halt_reason,
            time=self.time,
            steps=self.steps,
            structure=self.structure,
            energy=self.energy,
            diagnostics=self.diagnostics,
        )


def simulate(
    sequence: Sequence | str,
    config: SimulationConfig | None = None,
    params: EnergyParameters | None = None,
    structure: str | None = None,
    cancel_event: threading.Event | None = None,
) -> SimulationResult:
    """Run one trajectory to completion."""
    return Simulator(
        sequence, config, params, structure=structure, cancel_event=cancel_event
    ).run()
