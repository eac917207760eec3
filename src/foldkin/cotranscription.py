"""
Cotranscriptional folding: the sequence grows while it folds.

A TranscriptionSchedule maps simulated times to extension events. Before
each SSA step the driver applies every event whose time has been reached:
the new residues are appended unpaired at the 3' end, the exterior loop is
re-evaluated and the move set is patched for the touched loop only.
Pairs of the already transcribed prefix are never modified by an
extension. A waiting time that would run past the next event is cut at
the event time and the drawn move is discarded, so extensions happen at
their scheduled times.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass

from .energy_params import EnergyParameters
from .errors import ConfigurationError
from .sequence import Sequence
from .simulation import EngineState, HaltReason, SimulationConfig, Simulator
from .structure import PairTable

__all__ = [
    "ExtensionEvent",
    "ExtensionRecord",
    "TranscriptionSchedule",
    "CotranscriptionalSimulator",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtensionEvent:
    """Append ``n_residues`` nucleotides once simulated time reaches ``time``."""

    time: float
    n_residues: int


@dataclass(frozen=True)
class ExtensionRecord:
    """An extension that was applied.

    Attributes:
        time: Simulated time at which the residues were appended
        step: Number of SSA steps taken before the extension
        length: Transcript length after the extension
    """

    time: float
    step: int
    length: int


class TranscriptionSchedule:
    """Ordered list of extension events."""

    def __init__(self, events) -> None:
        parsed = []
        for event in events:
            if not isinstance(event, ExtensionEvent):
                event = ExtensionEvent(float(event[0]), int(event[1]))
            if event.time < 0 or math.isnan(event.time):
                raise ConfigurationError(f"Extension time must be >= 0, got {event.time}")
            if event.n_residues < 1:
                raise ConfigurationError(
                    f"Extension must add at least one residue, got {event.n_residues}"
                )
            parsed.append(event)
        self.events: tuple[ExtensionEvent, ...] = tuple(sorted(parsed, key=lambda e: e.time))

    @classmethod
    def uniform(
        cls,
        start_length: int,
        full_length: int,
        rate: float,
        step: int = 1,
    ) -> TranscriptionSchedule:
        """Constant transcription speed of ``rate`` nucleotides per time unit.

        ``step`` nucleotides are added per event; the last event adds the
        remainder.
        """
        if not rate > 0:
            raise ConfigurationError(f"Transcription rate must be positive, got {rate}")
        if step < 1:
            raise ConfigurationError(f"step must be >= 1, got {step}")
        if not 0 < start_length <= full_length:
            raise ConfigurationError(
                f"start_length must be in 1..{full_length}, got {start_length}"
            )
        events = []
        length = start_length
        while length < full_length:
            count = min(step, full_length - length)
            length += count
            events.append(ExtensionEvent((length - start_length) / rate, count))
        return cls(events)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(self.events)

    @property
    def total_residues(self) -> int:
        return sum(e.n_residues for e in self.events)


class CotranscriptionalSimulator(Simulator):
    """SSA engine on a transcript that grows according to a schedule.

    Args:
        full_sequence: The complete sequence to be transcribed
        schedule: When residues are appended
        config: Simulation configuration (validated against the full length)
        params: Energy parameters (default Turner 2004)
        start_length: Initial transcript length
        structure: Starting structure of the initial transcript
        cancel_event: Shared cancellation event
    """

    def __init__(
        self,
        full_sequence: Sequence | str,
        schedule: TranscriptionSchedule,
        config: SimulationConfig | None = None,
        params: EnergyParameters | None = None,
        *,
        start_length: int,
        structure: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.full_sequence = Sequence(full_sequence)
        n = len(self.full_sequence)
        if not 0 < start_length <= n:
            raise ConfigurationError(f"start_length must be in 1..{n}, got {start_length}")
        if schedule.total_residues > n - start_length:
            raise ConfigurationError(
                f"Schedule appends {schedule.total_residues} residues but only "
                f"{n - start_length} remain to be transcribed"
            )
        self.schedule = schedule
        self.extensions: list[ExtensionRecord] = []
        self._next_event = 0
        super().__init__(
            self.full_sequence.prefix(start_length),
            config,
            params,
            structure=structure,
            cancel_event=cancel_event,
        )

    def _check_config(self) -> None:
        config = self.config
        config.validate(len(self.full_sequence))
        if config.target is not None:
            PairTable.from_dot_bracket(
                self.full_sequence, config.target, min_hairpin=config.min_hairpin
            )

    @property
    def transcript_length(self) -> int:
        return len(self.sequence)

    @property
    def complete(self) -> bool:
        return self.transcript_length == len(self.full_sequence)

    def extend(self, n_residues: int) -> None:
        """Append the next ``n_residues`` of the full sequence, unpaired."""
        start = len(self.sequence)
        stop = min(start + n_residues, len(self.full_sequence))
        if stop == start:
            return
        self.pair_table.extend(self.full_sequence[start:stop])
        changed = self.loop_index.extend()
        if self.move_set is not None:
            self.move_set.update(changed)
        self.extensions.append(ExtensionRecord(self.time, self.steps, stop))
        logger.debug("Extended transcript to %d nt at t=%.6g", stop, self.time)

    def _apply_due_extensions(self) -> None:
        events = self.schedule.events
        while self._next_event < len(events) and events[self._next_event].time <= self.time:
            self.extend(events[self._next_event].n_residues)
            self._next_event += 1

    def step(self) -> HaltReason | None:
        if self.state is not EngineState.HALTED and not self._cancelled():
            self._apply_due_extensions()
            # A transcript without moves waits for the next extension.
            events = self.schedule.events
            t_max = self.config.t_max
            while not self.moves() and self._next_event < len(events):
                t_next = events[self._next_event].time
                if t_max is not None and t_next >= t_max:
                    self.time = max(self.time, t_max)
                    self._halt(HaltReason.TIME_HORIZON)
                    return self.halt_reason
                self.time = max(self.time, t_next)
                self._apply_due_extensions()
        return super().step()

    def _pending_event_time(self) -> float | None:
        if self._next_event < len(self.schedule.events):
            return self.schedule.events[self._next_event].time
        return None

    def _next_interruption(self) -> float | None:
        t_max = self.config.t_max
        t_next = self._pending_event_time()
        if t_next is None or (t_max is not None and t_next >= t_max):
            return t_max
        return t_next

    def _interrupt(self, stop: float) -> None:
        t_max = self.config.t_max
        if t_max is not None and stop >= t_max:
            super()._interrupt(stop)
            return
        # The transcript grows before the drawn move fires; rates change.
        self.time = stop
        self._apply_due_extensions()
        self.state = EngineState.READY
