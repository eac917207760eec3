"""
Run configuration files.

A run document (JSON or YAML) names the molecule and every setting of a
simulation, for example:

    sequence: GGGAAACCC
    structure: "........."
    energy_parameters: params/turner2004.yaml
    simulation:
      rule: metropolis
      t_max: 100.0
      seed: 7
    transcription:
      start_length: 5
      rate: 10.0
    ensemble:
      size: 100
      processes: 4
    output:
      t_ext: 0.1
      t_end: 100.0
      t_lin: 10
      t_log: 20

Relative paths are resolved against the directory of the document.
Unknown keys raise ConfigurationError so that typos never pass silently.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import numpy as np
import yaml

from .cotranscription import TranscriptionSchedule
from .energy_params import EnergyParameters, load_energy_parameters
from .errors import ConfigurationError
from .simulation import SimulationConfig
from .timecourse import output_times

__all__ = [
    "RunConfig",
    "load_run_config",
    "parse_run_config",
]

logger = logging.getLogger(__name__)

_TOP_LEVEL_KEYS = {
    "sequence",
    "structure",
    "energy_parameters",
    "simulation",
    "transcription",
    "ensemble",
    "output",
}
_SIMULATION_KEYS = {f.name for f in fields(SimulationConfig)}


@dataclass
class RunConfig:
    """Everything needed to launch one run or one ensemble.

    Attributes:
        sequence: Nucleotide sequence (the full sequence for cotranscription)
        structure: Starting structure (None = open chain)
        simulation: Per-trajectory settings
        params: Energy parameters (None = Turner 2004 defaults)
        schedule: Transcription schedule (None = fixed-length folding)
        start_length: Initial transcript length for cotranscriptional runs
        ensemble_size: Number of trajectories
        processes: Worker processes for the ensemble
        output_times: Sampling times for macrostate time courses
    """

    sequence: str
    structure: Optional[str] = None
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    params: Optional[EnergyParameters] = None
    schedule: Optional[TranscriptionSchedule] = None
    start_length: Optional[int] = None
    ensemble_size: int = 1
    processes: int = 1
    output_times: Optional[np.ndarray] = None

    @property
    def cotranscriptional(self) -> bool:
        return self.schedule is not None


def _resolve(path_str: Optional[str], base: Path) -> Optional[Path]:
    if path_str is None:
        return None
    p = Path(path_str)
    if not p.is_absolute():
        p = base / p
    return p


def _check_keys(section: str, raw: dict[str, Any], allowed: set[str]) -> None:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Section '{section}' must be a mapping, got {type(raw).__name__}")
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ConfigurationError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")


def _parse_schedule(
    raw: dict[str, Any], full_length: int
) -> tuple[TranscriptionSchedule, int]:
    _check_keys("transcription", raw, {"start_length", "rate", "step", "events"})
    if "start_length" not in raw:
        raise ConfigurationError("'transcription' requires start_length")
    start_length = int(raw["start_length"])
    if "events" in raw:
        if "rate" in raw or "step" in raw:
            raise ConfigurationError("'transcription' takes either events or rate/step, not both")
        try:
            events = [(float(t), int(n)) for t, n in raw["events"]]
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed transcription events: {e}") from e
        return TranscriptionSchedule(events), start_length
    if "rate" not in raw:
        raise ConfigurationError("'transcription' requires either events or rate")
    schedule = TranscriptionSchedule.uniform(
        start_length, full_length, float(raw["rate"]), int(raw.get("step", 1))
    )
    return schedule, start_length


def parse_run_config(raw: dict[str, Any], base: Path | None = None) -> RunConfig:
    """Build a RunConfig from a decoded document.

    Args:
        raw: Decoded JSON/YAML mapping
        base: Directory against which relative paths are resolved

    Raises:
        ConfigurationError: on missing, unknown or invalid settings
    """
    base = base if base is not None else Path.cwd()
    _check_keys("<root>", raw, _TOP_LEVEL_KEYS)
    if "sequence" not in raw:
        raise ConfigurationError("Run configuration requires a sequence")
    sequence = str(raw["sequence"]).strip()

    sim_raw = raw.get("simulation") or {}
    _check_keys("simulation", sim_raw, _SIMULATION_KEYS)
    try:
        simulation = SimulationConfig(**sim_raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid simulation settings: {e}") from e
    simulation.validate(len(sequence))

    params_path = _resolve(raw.get("energy_parameters"), base)
    params = load_energy_parameters(params_path) if params_path is not None else None

    schedule, start_length = None, None
    if raw.get("transcription") is not None:
        schedule, start_length = _parse_schedule(raw["transcription"], len(sequence))

    ens_raw = raw.get("ensemble") or {}
    _check_keys("ensemble", ens_raw, {"size", "processes"})
    ensemble_size = int(ens_raw.get("size", 1))
    processes = int(ens_raw.get("processes", 1))
    if ensemble_size < 1:
        raise ConfigurationError(f"Ensemble size must be >= 1, got {ensemble_size}")
    if processes < 1:
        raise ConfigurationError(f"processes must be >= 1, got {processes}")

    times = None
    if raw.get("output") is not None:
        out_raw = raw["output"]
        _check_keys("output", out_raw, {"t_ext", "t_end", "t_lin", "t_log"})
        missing = sorted({"t_ext", "t_end", "t_lin", "t_log"} - set(out_raw))
        if missing:
            raise ConfigurationError(f"'output' is missing: {', '.join(missing)}")
        times = output_times(
            float(out_raw["t_ext"]),
            float(out_raw["t_end"]),
            int(out_raw["t_lin"]),
            int(out_raw["t_log"]),
        )

    return RunConfig(
        sequence=sequence,
        structure=raw.get("structure"),
        simulation=simulation,
        params=params,
        schedule=schedule,
        start_length=start_length,
        ensemble_size=ensemble_size,
        processes=processes,
        output_times=times,
    )


def load_run_config(path: Path | str) -> RunConfig:
    """
    Load a run configuration from JSON or YAML.

    The format is chosen by suffix: .yaml/.yml is YAML, anything else JSON.
    """
    path = Path(path)
    text = path.read_text()
    try:
        if path.suffix in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse run configuration {path}: {e}") from e
    if raw is None:
        raise ConfigurationError(f"Run configuration {path} is empty")

    config = parse_run_config(raw, base=path.parent)
    logger.info("Loaded run configuration from %s", path)
    return config
