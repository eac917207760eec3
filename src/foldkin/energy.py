"""
Loop-based free energy of secondary structures.

The total energy is a sum over the loops of the structure:

    E(S) = sum_{L in loops(S)} E_loop(L) + lambda * lonely_pairs(S)

Each loop energy only depends on the loop's closing pair, its branches and
the sequence, so adding or removing one pair changes at most two loops.
``LoopIndex`` keeps the decomposition of one structure and answers
energy deltas of candidate moves from those loops alone.

Key requirements:
- Delta computation must match full recompute (within numerical tolerance)
- delta(add) = -delta(remove) for reversibility
- Cost of a delta is proportional to the size of the touched loops
"""

from __future__ import annotations

import logging

from .energy_params import EnergyParameters
from .errors import ConfigurationError, InvalidMove
from .loops import Loop, LoopKind, decompose, join_loops, make_loop, split_loop
from .sequence import Sequence
from .structure import PairTable

__all__ = [
    "EnergyModel",
    "LoopIndex",
    "count_lonely_pairs",
]

logger = logging.getLogger(__name__)

Pair = tuple[int, int]


def count_lonely_pairs(pair_table: PairTable) -> int:
    """Count isolated (lonely) pairs.

    A pair is lonely if it has no stacking partner on either side.
    """
    partners = pair_table.partners
    n = len(partners)

    def present(i: int, j: int) -> bool:
        return 0 <= i < j < n and partners[i] == j

    count = 0
    for i, j in pair_table.pairs():
        has_stack_inside = present(i + 1, j - 1)
        has_stack_outside = present(i - 1, j + 1)
        if not has_stack_inside and not has_stack_outside:
            count += 1
    return count


def _lonely_delta(
    partners: list[int],
    removed: tuple[Pair, ...],
    added: tuple[Pair, ...],
) -> int:
    """Change in the number of lonely pairs when ``removed`` go and ``added`` come.

    Only the moved pairs and their direct stacking neighbours can change
    state, so the count is evaluated on that neighbourhood.
    """
    n = len(partners)

    def before(p: Pair) -> bool:
        i, j = p
        return 0 <= i < j < n and partners[i] == j

    def after(p: Pair) -> bool:
        return p in added or (before(p) and p not in removed)

    affected: set[Pair] = set()
    for i, j in removed + added:
        affected.update(((i, j), (i + 1, j - 1), (i - 1, j + 1)))

    def lonely(p: Pair, present) -> bool:
        i, j = p
        return present(p) and not present((i + 1, j - 1)) and not present((i - 1, j + 1))

    return sum(lonely(p, after) for p in affected) - sum(lonely(p, before) for p in affected)


class EnergyModel:
    """Nearest-neighbor loop energy evaluator.

    Args:
        params: Energy parameter table (free energies at 37 C)
        min_hairpin: Minimum hairpin size (structures are built with it)
        dangles: Whether exterior and multiloop branches get dangle and
            terminal mismatch terms
        lonely_penalty: Energy added for each lonely pair (0 = off)
        temperature: Evaluation temperature in Celsius; the parameters are
            rescaled with their enthalpies
    """

    def __init__(
        self,
        params: EnergyParameters | None = None,
        *,
        min_hairpin: int = 3,
        dangles: bool = True,
        lonely_penalty: float = 0.0,
        temperature: float = 37.0,
    ) -> None:
        if lonely_penalty < 0:
            raise ConfigurationError(f"lonely_penalty must be >= 0, got {lonely_penalty}")
        params = params if params is not None else EnergyParameters.turner2004()
        self.params = params.at_temperature(temperature)
        self.temperature = temperature
        self.min_hairpin = min_hairpin
        self.dangles = dangles
        self.lonely_penalty = lonely_penalty

    def __repr__(self) -> str:
        return (
            f"EnergyModel(params={self.params.name!r}, min_hairpin={self.min_hairpin}, "
            f"dangles={self.dangles}, lonely_penalty={self.lonely_penalty}, "
            f"temperature={self.temperature})"
        )

    # ------------------------------------------------------------------
    # Loop energies
    # ------------------------------------------------------------------

    def loop_energy(self, sequence: Sequence, loop: Loop, active_length: int | None = None) -> float:
        """Energy of one loop.

        ``active_length`` restricts the exterior loop to the first residues
        of the sequence: dangles never reach past it.
        """
        kind = loop.kind
        if kind is LoopKind.EXTERIOR:
            return self._exterior(sequence, loop, active_length)
        if kind is LoopKind.HAIRPIN:
            return self._hairpin(sequence, loop)
        if kind is LoopKind.MULTI:
            return self._multibranch(sequence, loop)
        return self._interior(sequence, loop, kind)

    def _hairpin(self, sequence: Sequence, loop: Loop) -> float:
        p = self.params
        i, j = loop.closing
        n = j - i - 1
        special = p.special_hairpin(str(sequence[i : j + 1]))
        if special is not None:
            return special

        ptype = sequence.pair_type(i, j)
        energy = p.extrapolate(p.hairpin, n)
        if n == 3:
            energy += p.terminal_penalty(ptype)
        elif n > 3:
            mismatch = p.mismatch("mismatch_hairpin", ptype, sequence[i + 1], sequence[j - 1])
            energy += mismatch if mismatch is not None else 0.0
        return energy

    def _interior(self, sequence: Sequence, loop: Loop, kind: LoopKind) -> float:
        p = self.params
        s = sequence
        i, j = loop.closing
        k, l = loop.branches[0]
        outer = s.pair_type(i, j)
        inner = s.pair_type(l, k)

        if kind is LoopKind.STACK:
            return p.stack_energy(outer, inner)

        n1, n2 = loop.gaps()
        if kind is LoopKind.BULGE:
            size = n1 + n2
            energy = p.extrapolate(p.bulge, size)
            if size == 1:
                energy += p.stack_energy(outer, inner)
            else:
                energy += p.terminal_penalty(outer) + p.terminal_penalty(inner)
            return energy

        tabulated = None
        if (n1, n2) == (1, 1):
            tabulated = p.small_interior("int11", outer, inner, s[i + 1] + s[l + 1])
        elif (n1, n2) == (2, 1):
            tabulated = p.small_interior("int21", outer, inner, s[i + 1] + s[i + 2] + s[l + 1])
        elif (n1, n2) == (1, 2):
            tabulated = p.small_interior("int21", inner, outer, s[l + 1] + s[l + 2] + s[i + 1])
        elif (n1, n2) == (2, 2):
            tabulated = p.small_interior(
                "int22", outer, inner, s[i + 1] + s[i + 2] + s[l + 1] + s[l + 2]
            )
        if tabulated is not None:
            return tabulated

        if min(n1, n2) == 1:
            table = "mismatch_interior_1n"
        elif {n1, n2} == {2, 3}:
            table = "mismatch_interior_23"
        else:
            table = "mismatch_interior"
        energy = p.extrapolate(p.interior, n1 + n2)
        energy += min(p.max_ninio, p.ninio * abs(n1 - n2))
        energy += self._interior_end(table, outer, s[i + 1], s[j - 1])
        energy += self._interior_end(table, inner, s[l + 1], s[k - 1])
        return energy

    def _interior_end(self, table: str, ptype: str, b5: str, b3: str) -> float:
        """Terminal mismatch of an interior loop helix end, else its AU/GU penalty."""
        mismatch = self.params.mismatch(table, ptype, b5, b3)
        return mismatch if mismatch is not None else self.params.terminal_penalty(ptype)

    def _branch_terms(
        self, sequence: Sequence, k: int, l: int, lo: int, hi: int, mismatch: str
    ) -> float:
        """Terminal penalty and dangles of a helix end (k, l) seen from its loop.

        Neighbours are read from the sequence whatever their pairing state;
        ``lo`` and ``hi`` bound the positions a dangle may come from.
        """
        ptype = sequence.pair_type(k, l)
        energy = self.params.terminal_penalty(ptype)
        if self.dangles:
            b5 = sequence[k - 1] if k - 1 >= lo else None
            b3 = sequence[l + 1] if l + 1 <= hi else None
            energy += self.params.dangle_energy(ptype, b5, b3, mismatch)
        return energy

    def _multibranch(self, sequence: Sequence, loop: Loop) -> float:
        p = self.params
        i, j = loop.closing
        energy = p.ml_closing + p.ml_intern * (len(loop.branches) + 1) + p.ml_base * loop.unpaired
        # The closing pair is seen from inside the loop as (j, i).
        ptype = sequence.pair_type(j, i)
        energy += p.terminal_penalty(ptype)
        if self.dangles:
            energy += p.dangle_energy(ptype, sequence[j - 1], sequence[i + 1], "mismatch_multi")
        for k, l in loop.branches:
            energy += self._branch_terms(sequence, k, l, i + 1, j - 1, "mismatch_multi")
        return energy

    def _exterior(self, sequence: Sequence, loop: Loop, active_length: int | None) -> float:
        last = (len(sequence) if active_length is None else active_length) - 1
        return sum(
            self._branch_terms(sequence, k, l, 0, last, "mismatch_exterior")
            for k, l in loop.branches
        )

    # ------------------------------------------------------------------
    # Full evaluation
    # ------------------------------------------------------------------

    def energy_of_structure(self, pair_table: PairTable, active_length: int | None = None) -> float:
        """Total energy from a full loop decomposition (open chain = 0)."""
        seq = pair_table.sequence
        energy = sum(
            self.loop_energy(seq, loop, active_length) for loop in decompose(pair_table)
        )
        if self.lonely_penalty > 0:
            energy += self.lonely_penalty * count_lonely_pairs(pair_table)
        return energy

    def eval_dot_bracket(self, sequence: Sequence | str, struct: str) -> float:
        pt = PairTable.from_dot_bracket(sequence, struct, min_hairpin=self.min_hairpin)
        return self.energy_of_structure(pt)


class LoopIndex:
    """Cached loop decomposition of one structure.

    Loops are keyed by their closing pair; the exterior loop has key None.
    Every unpaired position records the loop it belongs to and every pair
    records the loop it is a branch of, so the loop touched by a move is
    found in constant time.

    The index does not mutate the pair table: callers change the table
    first and then call the matching ``apply_*`` method.

    Attributes:
        model: Energy model used to score loops
        pair_table: Structure the index describes
        energy: Current total energy
        active_length: Residues the structure may use (None = all); the
            exterior loop takes no dangles from beyond it
    """

    def __init__(
        self, model: EnergyModel, pair_table: PairTable, active_length: int | None = None
    ) -> None:
        self.model = model
        self.pair_table = pair_table
        self.active_length = active_length
        self._loops: dict[Pair | None, Loop] = {}
        self._energies: dict[Pair | None, float] = {}
        self._owner: list[Pair | None] = [None] * len(pair_table)
        self._parent: dict[Pair, Pair | None] = {}
        self._lonely = 0
        self.energy = 0.0
        self.rebuild()

    @property
    def sequence(self) -> Sequence:
        return self.pair_table.sequence

    def rebuild(self) -> None:
        """Decompose the structure from scratch."""
        pt = self.pair_table
        self._loops.clear()
        self._energies.clear()
        self._parent.clear()
        self._owner = [None] * len(pt)
        for loop in decompose(pt):
            self._store(loop)
        self._lonely = count_lonely_pairs(pt) if self.model.lonely_penalty > 0 else 0
        self.energy = sum(self._energies.values()) + self.model.lonely_penalty * self._lonely

    def _store(self, loop: Loop) -> float:
        """Register ``loop`` and return its energy."""
        key = loop.closing
        energy = self.model.loop_energy(self.sequence, loop, self.active_length)
        self._loops[key] = loop
        self._energies[key] = energy
        for branch in loop.branches:
            self._parent[branch] = key
        for pos in self.unpaired_positions(loop):
            self._owner[pos] = key
        return energy

    def unpaired_positions(self, loop: Loop):
        """Unpaired positions of ``loop`` in 5'->3' order."""
        if loop.closing is None:
            k, end = 0, len(self.pair_table)
        else:
            k, end = loop.closing[0] + 1, loop.closing[1]
        for bk, bl in loop.branches:
            yield from range(k, bk)
            k = bl + 1
        yield from range(k, end)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def loops(self) -> dict[Pair | None, Loop]:
        return dict(self._loops)

    def loop(self, key: Pair | None) -> Loop:
        return self._loops[key]

    def loop_energy(self, key: Pair | None) -> float:
        return self._energies[key]

    def loop_of(self, position: int) -> Pair | None:
        """Key of the loop containing ``position``.

        For a paired position this is the loop the pair is a branch of.
        """
        partner = self.pair_table.partners[position]
        if partner == -1:
            return self._owner[position]
        return self._parent[(min(position, partner), max(position, partner))]

    def parent_of(self, pair: Pair) -> Pair | None:
        return self._parent[pair]

    # ------------------------------------------------------------------
    # Deltas
    # ------------------------------------------------------------------

    def _lonely_term(self, removed: tuple[Pair, ...], added: tuple[Pair, ...]) -> float:
        if self.model.lonely_penalty <= 0:
            return 0.0
        return self.model.lonely_penalty * _lonely_delta(self.pair_table.partners, removed, added)

    def delta_add(self, i: int, j: int) -> float:
        """Energy change of adding (i, j); both ends must share a loop."""
        key = self._owner[i]
        n = len(self.pair_table)
        outer, inner = split_loop(self._loops[key], i, j, n)
        seq = self.sequence
        delta = (
            self.model.loop_energy(seq, outer, self.active_length)
            + self.model.loop_energy(seq, inner, self.active_length)
            - self._energies[key]
        )
        return delta + self._lonely_term((), ((i, j),))

    def delta_remove(self, i: int, j: int) -> float:
        """Energy change of removing the existing pair (i, j)."""
        parent = self._parent[(i, j)]
        merged = join_loops(self._loops[parent], self._loops[(i, j)])
        delta = (
            self.model.loop_energy(self.sequence, merged, self.active_length)
            - self._energies[parent]
            - self._energies[(i, j)]
        )
        return delta + self._lonely_term(((i, j),), ())

    def delta_shift(self, i: int, j: int, k: int, l: int) -> float:
        """Energy change of replacing pair (i, j) by (k, l) in one move.

        The new pair shares one end with the old one; the merged loop
        is split again by the new pair.
        """
        parent = self._parent[(i, j)]
        n = len(self.pair_table)
        merged = join_loops(self._loops[parent], self._loops[(i, j)])
        outer, inner = split_loop(merged, k, l, n)
        seq = self.sequence
        delta = (
            self.model.loop_energy(seq, outer, self.active_length)
            + self.model.loop_energy(seq, inner, self.active_length)
            - self._energies[parent]
            - self._energies[(i, j)]
        )
        return delta + self._lonely_term(((i, j),), ((k, l),))

    # ------------------------------------------------------------------
    # Updates (pair table already changed)
    # ------------------------------------------------------------------

    def _replace(self, old_keys, new_loops, lonely_delta: int) -> list[Pair | None]:
        old_energy = sum(self._energies.pop(key) for key in old_keys)
        for key in old_keys:
            del self._loops[key]
        new_energy = sum(self._store(loop) for loop in new_loops)
        self._lonely += lonely_delta
        self.energy += new_energy - old_energy + self.model.lonely_penalty * lonely_delta
        return [loop.closing for loop in new_loops]

    def _lonely_count_delta(self, removed, added) -> int:
        # The table already holds the new state, so score the reverse move.
        if self.model.lonely_penalty <= 0:
            return 0
        return -_lonely_delta(self.pair_table.partners, added, removed)

    def apply_add(self, i: int, j: int) -> list[Pair | None]:
        """Patch the index after (i, j) was added; returns changed loop keys."""
        partners = self.pair_table.partners
        if partners[i] != j:
            raise InvalidMove(i, j, "loop index out of sync: pair not in table")
        key = self._owner[i]
        outer, inner = split_loop(self._loops[key], i, j, len(partners))
        lonely = self._lonely_count_delta((), ((i, j),))
        return self._replace((key,), (outer, inner), lonely)

    def apply_remove(self, i: int, j: int) -> list[Pair | None]:
        """Patch the index after (i, j) was removed; returns changed loop keys."""
        partners = self.pair_table.partners
        if partners[i] != -1 or partners[j] != -1:
            raise InvalidMove(i, j, "loop index out of sync: pair still in table")
        parent = self._parent.pop((i, j))
        merged = join_loops(self._loops[parent], self._loops[(i, j)])
        lonely = self._lonely_count_delta(((i, j),), ())
        return self._replace((parent, (i, j)), (merged,), lonely)

    def apply_shift(self, i: int, j: int, k: int, l: int) -> list[Pair | None]:
        """Patch the index after (i, j) was replaced by (k, l)."""
        partners = self.pair_table.partners
        if partners[k] != l:
            raise InvalidMove(k, l, "loop index out of sync: pair not in table")
        parent = self._parent.pop((i, j))
        merged = join_loops(self._loops[parent], self._loops[(i, j)])
        outer, inner = split_loop(merged, k, l, len(partners))
        lonely = self._lonely_count_delta(((i, j),), ((k, l),))
        return self._replace((parent, (i, j)), (outer, inner), lonely)

    def extend(self) -> list[Pair | None]:
        """Re-evaluate the exterior loop after the sequence grew at the 3' end."""
        n = len(self.pair_table)
        self._owner.extend([None] * (n - len(self._owner)))
        exterior = self._loops[None]
        grown = make_loop(None, exterior.branches, n)
        return self._replace((None,), (grown,), 0)

    def check(self) -> list[str]:
        """Compare the cached decomposition with a fresh one."""
        errors = []
        fresh = {loop.closing: loop for loop in decompose(self.pair_table)}
        if fresh != self._loops:
            errors.append("Cached loops differ from a fresh decomposition")
        full = self.model.energy_of_structure(self.pair_table, self.active_length)
        if abs(full - self.energy) > 1e-6:
            errors.append(f"Cached energy {self.energy:.6f} != full energy {full:.6f}")
        return errors
