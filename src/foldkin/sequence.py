"""
Nucleotide sequences and base-pair typing.

A Sequence is immutable for fixed-length simulations. For cotranscriptional
folding it is append-only: the transcribed prefix never changes and new
residues are only added at the 3' frontier.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from .errors import ConfigurationError

__all__ = [
    "ALPHABET",
    "CANONICAL_PAIRS",
    "Sequence",
    "can_pair",
    "pair_type",
    "is_terminal_au",
]

ALPHABET = frozenset("ACGUN")

# Canonical base pairs (Watson-Crick plus GU wobble)
CANONICAL_PAIRS = frozenset(
    {
        ("A", "U"),
        ("U", "A"),
        ("G", "C"),
        ("C", "G"),
        ("G", "U"),
        ("U", "G"),
    }
)

# Pairs closed by an A-U or G-U pair pay a terminal penalty.
_TERMINAL_AU = frozenset({"AU", "UA", "GU", "UG"})


def _normalize(symbols: str) -> str:
    seq = symbols.strip().upper().replace("T", "U")
    bad = sorted({ch for ch in seq if ch not in ALPHABET})
    if bad:
        raise ConfigurationError(f"Unknown nucleotide symbol(s) {bad} in sequence")
    return seq


def can_pair(b1: str, b2: str) -> bool:
    """True if the two bases form a canonical pair."""
    return (b1, b2) in CANONICAL_PAIRS


def pair_type(b1: str, b2: str) -> str:
    """Two-letter pair type such as "CG" or "UA" (may be non-canonical)."""
    return b1 + b2


def is_terminal_au(ptype: str) -> bool:
    return ptype in _TERMINAL_AU


class Sequence:
    """An RNA sequence over A, C, G, U and the wildcard N.

    Lower case input is accepted and T is read as U. The wildcard N never
    pairs.
    """

    __slots__ = ("_symbols",)

    def __init__(self, symbols: str | Sequence) -> None:
        if isinstance(symbols, Sequence):
            self._symbols: str = symbols._symbols
        else:
            self._symbols = _normalize(symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def __getitem__(self, idx):
        return self._symbols[idx]

    def __iter__(self) -> Iterator[str]:
        return iter(self._symbols)

    def __str__(self) -> str:
        return self._symbols

    def __repr__(self) -> str:
        return f"Sequence({self._symbols!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Sequence):
            return self._symbols == other._symbols
        if isinstance(other, str):
            return self._symbols == other
        return NotImplemented

    # extend() mutates in place
    __hash__ = None

    def can_pair(self, i: int, j: int) -> bool:
        return can_pair(self._symbols[i], self._symbols[j])

    def pair_type(self, i: int, j: int) -> str:
        return self._symbols[i] + self._symbols[j]

    def prefix(self, length: int) -> Sequence:
        if length < 0 or length > len(self._symbols):
            raise ConfigurationError(
                f"Prefix length {length} outside of sequence length {len(self._symbols)}"
            )
        return Sequence(self._symbols[:length])

    def extend(self, residues: str | Iterable[str]) -> None:
        """Append residues at the 3' frontier."""
        self._symbols = self._symbols + _normalize("".join(residues))
