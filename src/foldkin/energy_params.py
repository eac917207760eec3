"""
Nearest-neighbor free-energy parameters.

All values are free energies in kcal/mol at 37 C. The built-in default is
the RNA Turner 2004 set restricted to the terms the loop evaluator uses:

- stacking energies for every pair of canonical pair types
- hairpin, bulge and interior loop initiation by loop size
- special hairpin sequences (triloops, tetraloops, hexaloops)
- terminal mismatches of hairpins, exterior loops and multiloops
- terminal AU/GU penalty, multiloop and asymmetry coefficients
- 5' and 3' dangling ends
- enthalpies of the terms above, for evaluation at other temperatures

The 1x1, 2x1 and 2x2 interior loop tables and the interior loop
mismatches are empty by default; small interior loops then use the
generic initiation + asymmetry + terminal penalty model. The complete
tables are read from ViennaRNA parameter files (``*.par``).

Loop sizes beyond the largest tabulated size are extrapolated with
``E(n) = E(max) + lxc * ln(n / max)``. Sizes below the smallest tabulated
size use the smallest entry.

Parameter documents (JSON or YAML) override any subset of the default set:

    {"terminal_au": 0.45, "stack": {"CG": {"CG": -2.2}}}

Table keys:

    stack[outer][inner]            outer pair (i, j), inner pair (l, k)
    mismatch_*[pair][b5 + b3]      b5 is 5' of b3 on the loop side
    dangle5[pair][b], dangle3[pair][b]
    int11["outer/inner"][b1 + b2]  and likewise int21 (3 bases), int22 (4)
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .errors import ParameterError
from .rates import K0
from .vienna_par import parse_vienna_par

__all__ = [
    "PAIR_TYPES",
    "EnergyParameters",
    "load_energy_parameters",
]

logger = logging.getLogger(__name__)

PAIR_TYPES = ("CG", "GC", "GU", "UG", "AU", "UA")
BASES = ("A", "C", "G", "U")

# Temperature of the tabulated free energies in Kelvin
T37 = 37.0 + K0

# Rows: outer pair (i, j). Columns: inner pair read 3'->5' as (l, k).
_STACK_ROWS = {
    "CG": (-2.4, -3.3, -2.1, -1.4, -2.1, -2.1),
    "GC": (-3.3, -3.4, -2.5, -1.5, -2.2, -2.4),
    "GU": (-2.1, -2.5, 1.3, -0.5, -1.4, -1.3),
    "UG": (-1.4, -1.5, -0.5, 0.3, -0.6, -1.0),
    "AU": (-2.1, -2.2, -1.4, -0.6, -1.1, -0.9),
    "UA": (-2.1, -2.4, -1.3, -1.0, -0.9, -1.3),
}

_STACK_ENTHALPY_ROWS = {
    "CG": (-10.6, -13.4, -12.1, -5.6, -10.5, -10.4),
    "GC": (-13.4, -14.9, -12.6, -8.3, -11.4, -12.4),
    "GU": (-12.1, -12.6, -14.6, -13.5, -8.8, -12.8),
    "UG": (-5.6, -8.3, -13.5, -9.3, -3.2, -7.0),
    "AU": (-10.5, -11.4, -8.8, -3.2, -9.4, -6.8),
    "UA": (-10.4, -12.4, -12.8, -7.0, -6.8, -7.7),
}

_HAIRPIN = (
    5.4, 5.6, 5.7, 5.4, 6.0, 5.5, 6.4, 6.5, 6.6, 6.7, 6.78, 6.86, 6.94, 7.01,
    7.07, 7.13, 7.19, 7.25, 7.3, 7.35, 7.4, 7.44, 7.49, 7.53, 7.57, 7.61, 7.65,
    7.69,
)  # sizes 3..30

_HAIRPIN_ENTHALPY = (1.3, 4.8, 3.6, -2.9, 1.3, -2.9) + (5.0,) * 22  # sizes 3..30

_BULGE = (
    3.8, 2.8, 3.2, 3.6, 4.0, 4.4, 4.59, 4.7, 4.8, 4.9, 5.0, 5.1, 5.19, 5.27,
    5.34, 5.41, 5.48, 5.54, 5.6, 5.65, 5.71, 5.76, 5.8, 5.85, 5.89, 5.94, 5.98,
    6.02, 6.05, 6.09,
)  # sizes 1..30

_BULGE_ENTHALPY = (10.6,) + (7.1,) * 29  # sizes 1..30

_INTERIOR = (
    1.1, 2.0, 2.0, 2.1, 2.3, 2.4, 2.5, 2.6, 2.7, 2.8, 2.9, 2.9, 3.0, 3.1, 3.1,
    3.2, 3.3, 3.3, 3.4, 3.4, 3.5, 3.5, 3.5, 3.6, 3.6, 3.7, 3.7,
)  # sizes 4..30

_INTERIOR_ENTHALPY = (-7.2, -6.8) + (-1.3,) * 25  # sizes 4..30

# Sequence: (total free energy, total enthalpy), closing pair included.
_SPECIAL_HAIRPINS = {
    # Hexaloops
    "ACAGUACU": (2.8, -16.8),
    "ACAGUGAU": (3.6, -11.4),
    "ACAGUGCU": (2.9, -12.8),
    "ACAGUGUU": (1.8, -15.4),
    # Tetraloops
    "CAACGG": (5.5, 6.9),
    "CCAAGG": (3.3, -10.3),
    "CCACGG": (3.7, -3.3),
    "CCCAGG": (3.4, -8.9),
    "CCGAGG": (3.5, -6.6),
    "CCGCGG": (3.6, -7.5),
    "CCUAGG": (3.7, -3.5),
    "CCUCGG": (2.5, -13.9),
    "CUAAGG": (3.6, -7.6),
    "CUACGG": (2.8, -10.7),
    "CUCAGG": (3.7, -6.6),
    "CUCCGG": (2.7, -12.9),
    "CUGCGG": (2.8, -10.7),
    "CUUAGG": (3.5, -6.2),
    "CUUCGG": (3.7, -15.3),
    "CUUUGG": (3.7, -6.8),
    # Triloops
    "CAACG": (6.8, 23.7),
    "GUUAC": (6.9, 10.8),
}

# Pair (i, j) -> rows: base i+1 (A C G U), columns: base j-1 (A C G U).
_MISMATCH_HAIRPIN_ROWS = {
    "CG": (
        (-1.5, -1.5, -1.4, -1.5),
        (-1.0, -1.1, -1.0, -0.8),
        (-2.3, -1.5, -2.4, -1.5),
        (-1.0, -1.4, -1.0, -2.1),
    ),
    "GC": (
        (-1.1, -1.5, -1.3, -2.1),
        (-1.1, -0.7, -1.1, -0.5),
        (-2.5, -1.5, -2.2, -1.5),
        (-1.1, -1.0, -1.1, -1.6),
    ),
    "GU": (
        (0.2, -0.5, -0.3, -0.5),
        (-0.1, -0.2, -0.1, -0.2),
        (-1.0, -0.5, -1.1, -0.5),
        (-0.1, -0.3, -0.1, -1.0),
    ),
    "UG": (
        (-0.3, -0.6, -0.7, -0.3),
        (-0.8, -0.8, -0.8, -0.7),
        (-1.9, -1.5, -1.7, -1.5),
        (-0.2, -0.4, -0.3, -1.1),
    ),
    "AU": (
        (-0.3, -0.6, -0.3, -0.5),
        (-0.2, -0.2, -0.2, -0.2),
        (-1.7, -1.1, -1.6, -1.1),
        (-0.3, -0.5, -0.3, -1.4),
    ),
    "UA": (
        (-0.3, -0.6, -0.7, -0.3),
        (-0.8, -0.8, -0.8, -0.7),
        (-1.9, -1.5, -1.7, -1.5),
        (-0.2, -0.4, -0.3, -1.1),
    ),
}

# Pair (i, j) -> rows: base 5' of i (A C G U), columns: base 3' of j.
_MISMATCH_EXTERIOR_ROWS = {
    "CG": (
        (-1.1, -1.1, -1.6, -1.1),
        (-1.5, -0.7, -1.5, -1.0),
        (-1.3, -1.1, -1.4, -1.1),
        (-1.5, -0.5, -1.5, -0.7),
    ),
    "GC": (
        (-1.5, -1.0, -1.4, -1.0),
        (-1.5, -1.1, -1.5, -1.4),
        (-1.4, -1.0, -1.6, -1.0),
        (-1.5, -0.8, -1.5, -1.2),
    ),
    "GU": (
        (-1.0, -0.7, -0.5, -0.7),
        (-0.8, -0.6, -0.8, -0.6),
        (-1.1, -0.7, -0.8, -0.7),
        (-0.8, -0.5, -0.8, -0.5),
    ),
    "UG": (
        (-0.3, -0.6, -0.6, -0.6),
        (-1.0, -0.7, -1.0, -0.8),
        (-0.8, -0.6, -0.8, -0.6),
        (-1.0, -0.6, -1.0, -0.8),
    ),
    "AU": (
        (-1.0, -0.7, -1.1, -0.7),
        (-0.8, -0.6, -0.8, -0.6),
        (-1.1, -0.7, -1.2, -0.7),
        (-0.8, -0.5, -0.8, -0.5),
    ),
    "UA": (
        (-0.8, -0.6, -0.8, -0.6),
        (-1.0, -0.7, -1.0, -0.8),
        (-0.8, -0.6, -0.8, -0.6),
        (-1.0, -0.7, -1.0, -0.8),
    ),
}

# Pair type (i, j) -> base 3' of j.
_DANGLE3_ROWS = {
    "CG": (-1.1, -0.4, -1.3, -0.6),
    "GC": (-1.7, -0.8, -1.7, -1.2),
    "GU": (-0.7, -0.1, -0.7, -0.1),
    "UG": (-0.8, -0.5, -0.8, -0.6),
    "AU": (-0.7, -0.1, -0.7, -0.1),
    "UA": (-0.8, -0.5, -0.8, -0.6),
}

_DANGLE3_ENTHALPY_ROWS = {
    "CG": (-7.4, -2.8, -6.4, -3.6),
    "GC": (-9.0, -4.1, -8.6, -7.5),
    "GU": (-5.7, -0.7, -5.8, -2.2),
    "UG": (-4.9, -0.9, -5.5, -2.3),
    "AU": (-5.7, -0.7, -5.8, -2.2),
    "UA": (-4.9, -0.9, -5.5, -2.3),
}

# Pair type (i, j) -> base 5' of i.
_DANGLE5_ROWS = {
    "CG": (-0.5, -0.3, -0.2, -0.1),
    "GC": (-0.2, -0.3, 0.0, 0.0),
    "GU": (-0.3, -0.3, -0.4, -0.2),
    "UG": (-0.3, -0.1, -0.2, -0.2),
    "AU": (-0.3, -0.3, -0.4, -0.2),
    "UA": (-0.3, -0.1, -0.2, -0.2),
}

_DANGLE5_ENTHALPY_ROWS = {
    "CG": (-2.4, 3.3, 0.8, -1.4),
    "GC": (-1.6, 0.7, -4.6, -0.4),
    "GU": (1.6, 2.2, 0.7, 3.1),
    "UG": (-0.5, 6.9, 0.6, 0.6),
    "AU": (1.6, 2.2, 0.7, 3.1),
    "UA": (-0.5, 6.9, 0.6, 0.6),
}

_SCALARS = (
    "terminal_au",
    "ml_closing",
    "ml_intern",
    "ml_base",
    "ninio",
    "max_ninio",
    "lxc",
)

_SIZE_TABLES = ("hairpin", "bulge", "interior")

_PAIR_TABLES = (
    "stack",
    "mismatch_hairpin",
    "mismatch_interior",
    "mismatch_interior_1n",
    "mismatch_interior_23",
    "mismatch_multi",
    "mismatch_exterior",
    "dangle5",
    "dangle3",
)

_LOOP_TABLES = ("int11", "int21", "int22")

# Entries that carry an enthalpy; lxc is scaled with T / T37 instead.
_RESCALABLE = (
    set(_SIZE_TABLES)
    | set(_PAIR_TABLES)
    | set(_LOOP_TABLES)
    | {"special_hairpins", "terminal_au", "ml_closing", "ml_intern", "ml_base", "ninio"}
)


def _pair_matrix(rows: dict[str, tuple[float, ...]], cols) -> dict[str, dict[str, float]]:
    return {p: dict(zip(cols, row)) for p, row in rows.items()}


def _mismatch_matrix(rows: dict[str, tuple]) -> dict[str, dict[str, float]]:
    return {
        p: {b5 + b3: v for b5, row in zip(BASES, block) for b3, v in zip(BASES, row)}
        for p, block in rows.items()
    }


def _size_table(values, first: int) -> dict[int, float]:
    return {first + k: v for k, v in enumerate(values)}


def _default_enthalpies() -> dict[str, Any]:
    return {
        "stack": _pair_matrix(_STACK_ENTHALPY_ROWS, PAIR_TYPES),
        "hairpin": _size_table(_HAIRPIN_ENTHALPY, 3),
        "bulge": _size_table(_BULGE_ENTHALPY, 1),
        "interior": _size_table(_INTERIOR_ENTHALPY, 4),
        "special_hairpins": {s: h for s, (_, h) in _SPECIAL_HAIRPINS.items()},
        "dangle5": _pair_matrix(_DANGLE5_ENTHALPY_ROWS, BASES),
        "dangle3": _pair_matrix(_DANGLE3_ENTHALPY_ROWS, BASES),
        "terminal_au": 3.7,
        "ml_closing": 30.0,
        "ml_intern": -2.2,
        "ml_base": 0.0,
        "ninio": 3.2,
    }


@dataclass(frozen=True)
class EnergyParameters:
    """Read-only nearest-neighbor parameter table (kcal/mol).

    Attributes:
        name: Label of the parameter set
        stack: stack[outer][inner] for outer pair (i, j), inner pair (l, k)
        hairpin: Hairpin initiation by number of unpaired bases
        bulge: Bulge initiation by number of unpaired bases
        interior: Interior loop initiation by total number of unpaired bases
        special_hairpins: Total energies of special hairpin sequences
            (closing pair included)
        mismatch_hairpin: Terminal mismatch inside hairpins larger than 3
        mismatch_interior: Terminal mismatch of generic interior loops
        mismatch_interior_1n: Terminal mismatch of 1xn interior loops
        mismatch_interior_23: Terminal mismatch of 2x3 interior loops
        mismatch_multi: Terminal mismatch of multiloop helix ends
        mismatch_exterior: Terminal mismatch of exterior loop helix ends
        dangle5: dangle5[pair][base] for a base 5' of the pair
        dangle3: dangle3[pair][base] for a base 3' of the pair
        int11: Total energies of 1x1 interior loops
        int21: Total energies of 2x1 interior loops
        int22: Total energies of 2x2 interior loops
        terminal_au: Penalty for helix ends closed by AU/GU
        ml_closing: Multiloop closing penalty
        ml_intern: Multiloop penalty per branch (closing pair included)
        ml_base: Multiloop penalty per unpaired base
        ninio: Interior loop asymmetry penalty per unpaired base of difference
        max_ninio: Upper bound of the asymmetry penalty
        lxc: Coefficient of the logarithmic loop-size extrapolation
        enthalpies: Enthalpies keyed like the free-energy entries above;
            entries without an enthalpy do not change with temperature
    """

    name: str = "turner2004"
    stack: dict[str, dict[str, float]] = field(
        default_factory=lambda: _pair_matrix(_STACK_ROWS, PAIR_TYPES)
    )
    hairpin: dict[int, float] = field(default_factory=lambda: _size_table(_HAIRPIN, 3))
    bulge: dict[int, float] = field(default_factory=lambda: _size_table(_BULGE, 1))
    interior: dict[int, float] = field(default_factory=lambda: _size_table(_INTERIOR, 4))
    special_hairpins: dict[str, float] = field(
        default_factory=lambda: {s: g for s, (g, _) in _SPECIAL_HAIRPINS.items()}
    )
    mismatch_hairpin: dict[str, dict[str, float]] = field(
        default_factory=lambda: _mismatch_matrix(_MISMATCH_HAIRPIN_ROWS)
    )
    mismatch_interior: dict[str, dict[str, float]] = field(default_factory=dict)
    mismatch_interior_1n: dict[str, dict[str, float]] = field(default_factory=dict)
    mismatch_interior_23: dict[str, dict[str, float]] = field(default_factory=dict)
    mismatch_multi: dict[str, dict[str, float]] = field(
        default_factory=lambda: _mismatch_matrix(_MISMATCH_EXTERIOR_ROWS)
    )
    mismatch_exterior: dict[str, dict[str, float]] = field(
        default_factory=lambda: _mismatch_matrix(_MISMATCH_EXTERIOR_ROWS)
    )
    dangle5: dict[str, dict[str, float]] = field(
        default_factory=lambda: _pair_matrix(_DANGLE5_ROWS, BASES)
    )
    dangle3: dict[str, dict[str, float]] = field(
        default_factory=lambda: _pair_matrix(_DANGLE3_ROWS, BASES)
    )
    int11: dict[str, dict[str, float]] = field(default_factory=dict)
    int21: dict[str, dict[str, float]] = field(default_factory=dict)
    int22: dict[str, dict[str, float]] = field(default_factory=dict)
    terminal_au: float = 0.5
    ml_closing: float = 9.3
    ml_intern: float = -0.9
    ml_base: float = 0.0
    ninio: float = 0.6
    max_ninio: float = 3.0
    lxc: float = 1.07856
    enthalpies: dict[str, Any] = field(default_factory=_default_enthalpies)

    def __post_init__(self) -> None:
        for table in _SIZE_TABLES:
            if not getattr(self, table):
                raise ParameterError(f"Loop initiation table '{table}' is empty")
        for outer, row in self.stack.items():
            if outer not in PAIR_TYPES:
                raise ParameterError(f"Unknown pair type '{outer}' in stacking table")
            for inner in row:
                if inner not in PAIR_TYPES:
                    raise ParameterError(f"Unknown pair type '{inner}' in stacking table")
        for table in _PAIR_TABLES[1:]:
            for ptype in getattr(self, table):
                if ptype not in PAIR_TYPES:
                    raise ParameterError(f"Unknown pair type '{ptype}' in '{table}'")
        for table in _LOOP_TABLES:
            for key in getattr(self, table):
                outer, _, inner = key.partition("/")
                if outer not in PAIR_TYPES or inner not in PAIR_TYPES:
                    raise ParameterError(f"Key '{key}' in '{table}' is not 'outer/inner'")
        unknown = sorted(set(self.enthalpies) - _RESCALABLE)
        if unknown:
            raise ParameterError(f"No enthalpy can be given for {unknown}")
        max_special = max((len(s) for s in self.special_hairpins), default=0)
        object.__setattr__(self, "_max_special", max_special)
        object.__setattr__(self, "_temperature", 37.0)

    @classmethod
    def turner2004(cls) -> EnergyParameters:
        return cls()

    @property
    def temperature(self) -> float:
        """Temperature (Celsius) the free energies are given at."""
        return self._temperature

    def at_temperature(self, temperature: float) -> EnergyParameters:
        """Free energies at ``temperature`` (Celsius).

        Every entry with an enthalpy is rescaled with

            dG(T) = dH - (dH - dG37) * T / T37

        and lxc is scaled with T / T37. Entries without an enthalpy keep
        their 37 C value.

        Raises:
            ParameterError: if the table is not at 37 C already or the
                absolute temperature is not positive
        """
        if temperature == self._temperature:
            return self
        if self._temperature != 37.0:
            raise ParameterError(
                f"Parameters were already rescaled to {self._temperature} C"
            )
        ratio = (temperature + K0) / T37
        if not ratio > 0:
            raise ParameterError(f"Absolute temperature must be positive, got {temperature} C")

        updates: dict[str, Any] = {"lxc": self.lxc * ratio}
        for key, enthalpy in self.enthalpies.items():
            updates[key] = _rescale(getattr(self, key), enthalpy, ratio)
        params = replace(self, **updates)
        object.__setattr__(params, "_temperature", float(temperature))
        logger.debug("Rescaled '%s' to %.2f C", self.name, temperature)
        return params

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def extrapolate(self, table: dict[int, float], n: int) -> float:
        """Loop initiation energy for size n, log-extrapolated past the table."""
        value = table.get(n)
        if value is not None:
            return value
        top = max(table)
        if n > top:
            return table[top] + self.lxc * math.log(n / top)
        return table[min(table)]

    def stack_energy(self, outer: str, inner: str) -> float:
        try:
            return self.stack[outer][inner]
        except KeyError:
            raise ParameterError(f"No stacking energy for {outer}/{inner}") from None

    def special_hairpin(self, loop_seq: str) -> float | None:
        if len(loop_seq) > self._max_special:
            return None
        return self.special_hairpins.get(loop_seq)

    def terminal_penalty(self, ptype: str) -> float:
        return self.terminal_au if ptype in ("AU", "UA", "GU", "UG") else 0.0

    def mismatch(self, table: str, ptype: str, b5: str, b3: str) -> float | None:
        """Terminal mismatch entry, or None if the table lacks it."""
        return getattr(self, table).get(ptype, {}).get(b5 + b3)

    def small_interior(self, table: str, outer: str, inner: str, bases: str) -> float | None:
        """Tabulated total energy of a 1x1, 2x1 or 2x2 interior loop."""
        return getattr(self, table).get(f"{outer}/{inner}", {}).get(bases)

    def dangle_energy(
        self,
        ptype: str,
        b5: str | None,
        b3: str | None,
        mismatch: str = "mismatch_exterior",
    ) -> float:
        """Dangle or terminal mismatch contribution of one helix end.

        With both neighbours the ``mismatch`` table is used; a pair type it
        does not cover falls back to the sum of the two single dangles.
        """
        if b5 is not None and b3 is not None:
            value = self.mismatch(mismatch, ptype, b5, b3)
            if value is not None:
                return value
        energy = 0.0
        if b5 is not None:
            energy += self.dangle5.get(ptype, {}).get(b5, 0.0)
        if b3 is not None:
            energy += self.dangle3.get(ptype, {}).get(b3, 0.0)
        return energy

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """JSON/YAML friendly representation (size tables keyed by str)."""
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        base: EnergyParameters | None = None,
    ) -> EnergyParameters:
        """Build parameters by overriding ``base`` (default Turner 2004).

        Nested tables are merged entry by entry, so a document only needs
        the values it changes. An ``enthalpies`` mapping is merged the same
        way into the enthalpies of ``base``.

        Raises:
            ParameterError: on unknown keys or non-numeric values
        """
        if base is None:
            base = cls()
        if not isinstance(data, dict):
            raise ParameterError(f"Parameter document must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ParameterError(f"Unknown energy parameter(s): {unknown}")

        updates: dict[str, Any] = {}
        for key, value in data.items():
            if key == "name":
                updates[key] = str(value)
            elif key == "enthalpies":
                merged = dict(base.enthalpies)
                for entry, enthalpy in _as_mapping(value, key).items():
                    if entry not in _RESCALABLE:
                        raise ParameterError(f"No enthalpy can be given for '{entry}'")
                    merged[entry] = _merge_entry(
                        entry, enthalpy, base.enthalpies.get(entry), f"enthalpies.{entry}"
                    )
                updates[key] = merged
            else:
                updates[key] = _merge_entry(key, value, getattr(base, key), key)

        return replace(base, **updates)


def _merge_entry(key: str, value: Any, current: Any, where: str) -> Any:
    """Override ``current`` (a scalar or table named ``key``) with ``value``."""
    if key in _SCALARS:
        return _as_float(value, where)
    if key in _SIZE_TABLES:
        table = dict(current or {})
        for size, energy in _as_mapping(value, where).items():
            try:
                n = int(size)
            except (TypeError, ValueError):
                raise ParameterError(f"Loop size '{size}' in '{where}' is not an integer") from None
            if n < 0:
                raise ParameterError(f"Negative loop size {n} in '{where}'")
            table[n] = _as_float(energy, f"{where}[{size}]")
        return table
    if key == "special_hairpins":
        table = dict(current or {})
        for loop_seq, energy in _as_mapping(value, where).items():
            table[str(loop_seq).upper()] = _as_float(energy, f"{where}[{loop_seq}]")
        return table
    nested = {k: dict(v) for k, v in (current or {}).items()}
    for outer, row in _as_mapping(value, where).items():
        merged = nested.setdefault(str(outer).upper(), {})
        for inner, energy in _as_mapping(row, f"{where}[{outer}]").items():
            merged[str(inner).upper()] = _as_float(energy, f"{where}[{outer}][{inner}]")
    return nested


def _rescale(energy: Any, enthalpy: Any, ratio: float) -> Any:
    if isinstance(energy, dict):
        return {
            k: _rescale(v, enthalpy[k], ratio) if k in enthalpy else v
            for k, v in energy.items()
        }
    return enthalpy - (enthalpy - energy) * ratio


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return value


def _as_float(value: Any, where: str) -> float:
    if isinstance(value, bool):
        raise ParameterError(f"Energy parameter '{where}' must be a number, got {value!r}")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ParameterError(f"Energy parameter '{where}' must be a number, got {value!r}") from None
    if math.isnan(result):
        raise ParameterError(f"Energy parameter '{where}' is NaN")
    return result


def _as_mapping(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise ParameterError(f"Energy parameter '{where}' must be a mapping")
    return value


def load_energy_parameters(path: Path | str) -> EnergyParameters:
    """
    Load an energy parameter document from JSON, YAML or a ViennaRNA
    parameter file (``.par``).

    The document overrides the Turner 2004 defaults.
    """
    path = Path(path)
    text = path.read_text()
    try:
        if path.suffix == ".par":
            raw = parse_vienna_par(text)
            raw.setdefault("name", path.stem)
        elif path.suffix in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParameterError(f"Cannot parse energy parameters from {path}: {e}") from e

    params = EnergyParameters.from_dict(raw or {})
    logger.info("Loaded energy parameters '%s' from %s", params.name, path)
    return params
