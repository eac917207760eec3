"""
Reader for ViennaRNA parameter files (``rna_turner2004.par`` and friends).

A file is a sequence of sections introduced by ``# <name>`` lines. Values
are integers in dcal/mol (``INF`` marks a missing entry) and C comments
may appear anywhere. ``parse_vienna_par`` converts the sections foldkin
evaluates into a parameter document for ``EnergyParameters.from_dict``;
``<name>_enthalpies`` sections land under the document's ``enthalpies``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import numpy as np

from .errors import ParameterError

__all__ = ["parse_vienna_par"]

logger = logging.getLogger(__name__)

_PAIRS = ("CG", "GC", "GU", "UG", "AU", "UA", "NN")
_BASES = ("N", "A", "C", "G", "U")
_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)

# Axes of a table: "p" is a pair axis, "b" a base axis.
_LAYOUTS = {
    "stack": "pp",
    "mismatch_hairpin": "pbb",
    "mismatch_interior": "pbb",
    "mismatch_interior_1n": "pbb",
    "mismatch_interior_23": "pbb",
    "mismatch_multi": "pbb",
    "mismatch_exterior": "pbb",
    "dangle5": "pb",
    "dangle3": "pb",
    "int11": "ppbb",
    "int21": "ppbbb",
    "int22": "ppbbbb",
}

_SIZE_SECTIONS = ("hairpin", "bulge", "interior")
_SPECIAL_SECTIONS = ("Triloops", "Tetraloops", "Hexaloops")


def _value(token: str, section: str) -> float | None:
    if token == "INF":
        return None
    try:
        return float(token) / 100.0
    except ValueError:
        raise ParameterError(f"Non-numeric value '{token}' in section '{section}'") from None


def _split_sections(text: str) -> dict[str, list[str]]:
    sections: dict[str, list[str]] = {}
    current = None
    for line in _COMMENT.sub(" ", text).splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith("##"):
            current = None
        elif line.startswith("#"):
            current = line[1:].strip()
            sections[current] = []
        elif current is not None:
            sections[current].append(line)
    return sections


def _table(name: str, tokens: list[str], layout: str) -> dict[str, dict[str, float]]:
    """Reshape a section into ``{pair key: {bases: value}}``."""
    shape = tuple(len(_PAIRS) if axis == "p" else len(_BASES) for axis in layout)
    # int22 is usually written without the NN pair and N base rows.
    reduced = tuple(
        len(_PAIRS) - 1 if axis == "p" else len(_BASES) - 1 for axis in layout
    )
    if len(tokens) == int(np.prod(shape)):
        offset = 0
    elif len(tokens) == int(np.prod(reduced)):
        shape, offset = reduced, 1
    else:
        raise ParameterError(
            f"Section '{name}' has {len(tokens)} values, expected {int(np.prod(shape))}"
        )

    values = np.array([_value(t, name) for t in tokens], dtype=object).reshape(shape)
    n_pairs = layout.count("p")
    table: dict[str, dict[str, float]] = {}
    for idx in np.ndindex(*shape):
        value = values[idx]
        if value is None:
            continue
        pairs = [_PAIRS[k] for k in idx[:n_pairs]]
        bases = "".join(_BASES[k + offset] for k in idx[n_pairs:])
        if "NN" in pairs or "N" in bases:
            continue
        if layout == "pp":
            outer, inner = pairs
        else:
            outer, inner = "/".join(pairs), bases
        table.setdefault(outer, {})[inner] = value
    return table


def parse_vienna_par(text: str) -> dict[str, Any]:
    """Parse the text of a ViennaRNA parameter file into a parameter document.

    Raises:
        ParameterError: if a section has the wrong number of values or a
            non-numeric value
    """
    doc: dict[str, Any] = {}
    enthalpies: dict[str, Any] = {}
    for section, lines in _split_sections(text).items():
        name, enthalpy = section, False
        if section.endswith("_enthalpies"):
            name, enthalpy = section[: -len("_enthalpies")], True
        target = enthalpies if enthalpy else doc
        tokens = [t for line in lines for t in line.split()]

        if name in _LAYOUTS:
            target[name] = _table(section, tokens, _LAYOUTS[name])
        elif name in _SIZE_SECTIONS:
            target[name] = {
                size: v
                for size, v in enumerate(_value(t, section) for t in tokens)
                if v is not None
            }
        elif section in _SPECIAL_SECTIONS:
            for line in lines:
                parts = line.split()
                if len(parts) < 3:
                    raise ParameterError(f"Malformed special hairpin line '{line}'")
                doc.setdefault("special_hairpins", {})[parts[0]] = _value(parts[1], section)
                enthalpies.setdefault("special_hairpins", {})[parts[0]] = _value(parts[2], section)
        elif section == "ML_params":
            values = _expect(section, tokens, 6)
            for k, key in enumerate(("ml_base", "ml_closing", "ml_intern")):
                doc[key] = values[2 * k]
                enthalpies[key] = values[2 * k + 1]
        elif section == "NINIO":
            values = _expect(section, tokens, 3)
            doc["ninio"], enthalpies["ninio"], doc["max_ninio"] = values[:3]
        elif section == "Misc":
            values = _expect(section, tokens, 4)
            doc["terminal_au"], enthalpies["terminal_au"] = values[2], values[3]
            if len(values) > 4:
                doc["lxc"] = values[4]
        else:
            logger.debug("Skipping section '%s' of parameter file", section)

    if enthalpies:
        doc["enthalpies"] = enthalpies
    return doc


def _expect(section: str, tokens: list[str], count: int) -> list[float]:
    if len(tokens) < count:
        raise ParameterError(
            f"Section '{section}' has {len(tokens)} values, expected at least {count}"
        )
    values = [_value(t, section) for t in tokens]
    if any(v is None for v in values[:count]):
        raise ParameterError(f"Section '{section}' contains INF")
    return values
