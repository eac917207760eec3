# tests/conftest.py
"""Shared test fixtures for folding-kinetics tests."""

import random
import sys
from pathlib import Path

import pytest

# Repo root = parent of this file's directory
ROOT = Path(__file__).resolve().parents[1]

# Ensure src/ is on sys.path so `import foldkin` works without installing
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from foldkin.energy import EnergyModel, LoopIndex  # noqa: E402
from foldkin.structure import PairTable  # noqa: E402


@pytest.fixture
def hairpin_seq() -> str:
    """Short sequence that folds into a three-pair hairpin."""
    return "GGGAAACCC"


@pytest.fixture
def multiloop_case() -> tuple[str, str]:
    """Sequence and structure containing a two-branch multiloop."""
    seq = "GGGAGCAAAGCAGCAAAGCACCC"
    struct = "(((.((...)).((...)).)))"
    return seq, struct


@pytest.fixture
def model() -> EnergyModel:
    """Default Turner 2004 model with dangles."""
    return EnergyModel()


@pytest.fixture
def rng() -> random.Random:
    """Seeded RNG for reproducible tests."""
    return random.Random(42)


@pytest.fixture
def make_index(model: EnergyModel):
    """Build a (PairTable, LoopIndex) from a sequence and dot-bracket."""

    def _make(seq: str, struct: str, energy_model: EnergyModel | None = None):
        m = energy_model if energy_model is not None else model
        pt = PairTable.from_dot_bracket(seq, struct, min_hairpin=m.min_hairpin)
        return pt, LoopIndex(m, pt)

    return _make
