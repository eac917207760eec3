"""
Loop decomposition of nested secondary structures.

Every pair (i, j) closes exactly one loop, and the positions outside all
pairs form the exterior loop. A loop is fully described by its closing
pair (None for the exterior loop) and the ordered list of branches, the
pairs directly inside it. Its kind follows from the branch count:

- no branches: hairpin
- one branch: stack, bulge or interior loop, depending on the two gaps
- two or more branches: multibranch loop

Loops are immutable values. ``split_loop`` and ``join_loops`` produce the
loops that result from adding or removing one pair without looking at any
other part of the structure.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from enum import Enum, auto

from .structure import PairTable

__all__ = [
    "LoopKind",
    "Loop",
    "make_loop",
    "split_loop",
    "join_loops",
    "decompose",
]

Pair = tuple[int, int]


class LoopKind(Enum):
    """Elementary loop types of the nearest-neighbor model."""

    EXTERIOR = auto()
    HAIRPIN = auto()
    STACK = auto()
    BULGE = auto()
    INTERIOR = auto()
    MULTI = auto()


@dataclass(frozen=True)
class Loop:
    """One loop of the decomposition.

    Attributes:
        closing: Closing pair (i, j), or None for the exterior loop
        branches: Pairs directly enclosed by the loop, sorted by 5' index
        unpaired: Number of unpaired positions belonging to the loop
    """

    closing: Pair | None
    branches: tuple[Pair, ...]
    unpaired: int

    @property
    def kind(self) -> LoopKind:
        if self.closing is None:
            return LoopKind.EXTERIOR
        n = len(self.branches)
        if n == 0:
            return LoopKind.HAIRPIN
        if n > 1:
            return LoopKind.MULTI
        n1, n2 = self.gaps()
        if n1 == 0 and n2 == 0:
            return LoopKind.STACK
        if n1 == 0 or n2 == 0:
            return LoopKind.BULGE
        return LoopKind.INTERIOR

    def gaps(self) -> tuple[int, int]:
        """Unpaired stretches 5' and 3' of the single inner pair."""
        i, j = self.closing
        k, l = self.branches[0]
        return k - i - 1, j - l - 1


def _span(branches) -> int:
    return sum(l - k + 1 for k, l in branches)


def make_loop(closing: Pair | None, branches, length: int) -> Loop:
    """Build a loop and derive its unpaired count.

    Args:
        closing: Closing pair or None for the exterior loop
        branches: Pairs directly inside the loop, sorted
        length: Sequence length (only used for the exterior loop)
    """
    branches = tuple(branches)
    if closing is None:
        size = length
    else:
        size = closing[1] - closing[0] - 1
    return Loop(closing, branches, size - _span(branches))


def split_loop(loop: Loop, i: int, j: int, length: int) -> tuple[Loop, Loop]:
    """Loops that result from adding (i, j) inside ``loop``.

    Both ends must be unpaired positions of ``loop``.

    Returns:
        Tuple of (outer loop, new inner loop closed by (i, j))
    """
    branches = loop.branches
    lo = bisect.bisect_left(branches, (i, j))
    hi = bisect.bisect_left(branches, (j, j))
    inside = branches[lo:hi]
    outside = branches[:lo] + ((i, j),) + branches[hi:]
    inner = make_loop((i, j), inside, length)
    outer = Loop(loop.closing, outside, loop.unpaired - inner.unpaired - 2)
    return outer, inner


def join_loops(outer: Loop, inner: Loop) -> Loop:
    """Loop that results from removing the closing pair of ``inner``.

    ``inner.closing`` must be a branch of ``outer``.
    """
    pair = inner.closing
    idx = bisect.bisect_left(outer.branches, pair)
    branches = outer.branches[:idx] + inner.branches + outer.branches[idx + 1 :]
    return Loop(outer.closing, branches, outer.unpaired + inner.unpaired + 2)


def decompose(pair_table: PairTable) -> list[Loop]:
    """Full loop decomposition: the exterior loop first, then one loop per pair."""
    n = len(pair_table)
    loops = [make_loop(None, pair_table.loop_members(None)[0], n)]
    for pair in pair_table.pairs():
        branches, _ = pair_table.loop_members(pair)
        loops.append(make_loop(pair, branches, n))
    return loops
