"""
Pair-table representation of a nested RNA secondary structure.

The pair table must maintain the invariants:
- partners[i] == j iff partners[j] == i
- partners[i] == -1 iff position i is unpaired
- no two pairs cross
- every pair (i, j) satisfies j - i - 1 >= min_hairpin
- every pair is canonical under the sequence

Mutations either commit completely or raise InvalidMove before touching
any state. Loop bookkeeping lives in foldkin.energy.LoopIndex; this module
only answers local questions about the pairing relation.
"""

from __future__ import annotations

from .errors import ConfigurationError, InvalidMove
from .sequence import Sequence
from .validate_structure import pairs_to_structure, parse_structure_to_pairs

__all__ = [
    "PairTable",
    "enumerate_structures",
]


class PairTable:
    """Array-backed secondary structure over a sequence.

    Attributes:
        sequence: The (possibly growing) sequence the structure lives on
        partners: Array mapping position to partner (-1 if unpaired)
        min_hairpin: Minimum number of unpaired bases in a hairpin loop
    """

    def __init__(
        self,
        sequence: Sequence | str,
        pairs: list[tuple[int, int]] | None = None,
        *,
        min_hairpin: int = 3,
    ) -> None:
        if not isinstance(sequence, Sequence):
            sequence = Sequence(sequence)
        if min_hairpin < 0:
            raise ConfigurationError(f"min_hairpin must be >= 0, got {min_hairpin}")
        self.sequence = sequence
        self.min_hairpin = min_hairpin
        self.partners: list[int] = [-1] * len(sequence)
        self._n_pairs = 0

        for i, j in pairs or ():
            try:
                self.add_pair(i, j)
            except InvalidMove as exc:
                raise ConfigurationError(f"Invalid initial structure: {exc.reason}") from exc

    @classmethod
    def from_dot_bracket(
        cls,
        sequence: Sequence | str,
        struct: str,
        *,
        min_hairpin: int = 3,
    ) -> PairTable:
        """Build a pair table from a dot-bracket string.

        User supplied structures that break an invariant raise
        ConfigurationError, not InvalidMove.
        """
        if len(struct) != len(sequence):
            raise ConfigurationError(
                f"Structure length {len(struct)} does not match sequence length {len(sequence)}"
            )
        return cls(sequence, parse_structure_to_pairs(struct), min_hairpin=min_hairpin)

    def __len__(self) -> int:
        return len(self.partners)

    def __str__(self) -> str:
        return self.to_dot_bracket()

    def __repr__(self) -> str:
        return f"PairTable({str(self.sequence)!r}, {self.to_dot_bracket()!r})"

    def copy(self) -> PairTable:
        """Create an independent copy (sequence included)."""
        other = PairTable.__new__(PairTable)
        other.sequence = Sequence(self.sequence)
        other.min_hairpin = self.min_hairpin
        other.partners = list(self.partners)
        other._n_pairs = self._n_pairs
        return other

    @property
    def n_pairs(self) -> int:
        return self._n_pairs

    def partner(self, i: int) -> int:
        return self.partners[i]

    def is_paired(self, i: int) -> bool:
        return self.partners[i] != -1

    def pairs(self) -> list[tuple[int, int]]:
        """All pairs (i, j) with i < j, sorted by i."""
        return [(i, j) for i, j in enumerate(self.partners) if j > i]

    def to_dot_bracket(self) -> str:
        return pairs_to_structure(self.pairs(), len(self.partners))

    def enclosing_pair(self, k: int) -> tuple[int, int] | None:
        """Innermost pair strictly enclosing position k (None = exterior loop).

        For a paired position the pair itself is skipped, so the result is
        the closing pair of the loop the pair is a branch of. Walks left from
        k and jumps over closed branches: cost is the size of the loop.
        """
        partners = self.partners
        p = partners[k]
        if p != -1 and p < k:
            k = p
        x = k - 1
        while x >= 0:
            p = partners[x]
            if p == -1:
                x -= 1
            elif p > k:
                return (x, p)
            else:
                x = p - 1
        return None

    def loop_members(
        self, closing: tuple[int, int] | None
    ) -> tuple[list[tuple[int, int]], list[int]]:
        """Branches and unpaired positions of the loop closed by ``closing``.

        Args:
            closing: Closing pair, or None for the exterior loop

        Returns:
            Tuple of (branches in 5'->3' order, unpaired positions)
        """
        partners = self.partners
        if closing is None:
            k, end = 0, len(partners)
        else:
            k, end = closing[0] + 1, closing[1]
        branches: list[tuple[int, int]] = []
        unpaired: list[int] = []
        while k < end:
            p = partners[k]
            if p == -1:
                unpaired.append(k)
                k += 1
            else:
                branches.append((k, p))
                k = p + 1
        return branches, unpaired

    def check_add(self, i: int, j: int) -> None:
        """Raise InvalidMove if (i, j) cannot be added to the structure."""
        n = len(self.partners)
        if i > j:
            i, j = j, i
        if i < 0 or j >= n:
            raise InvalidMove(i, j, f"position out of range for length {n}")
        if i == j:
            raise InvalidMove(i, j, "self pairing")
        if self.partners[i] != -1 or self.partners[j] != -1:
            raise InvalidMove(i, j, "position already paired")
        if not self.sequence.can_pair(i, j):
            raise InvalidMove(
                i, j, f"non-complementary bases {self.sequence[i]}-{self.sequence[j]}"
            )
        if j - i - 1 < self.min_hairpin:
            raise InvalidMove(i, j, f"hairpin loop smaller than {self.min_hairpin}")
        if self.enclosing_pair(i) != self.enclosing_pair(j):
            raise InvalidMove(i, j, "pair would cross an existing pair")

    def can_add(self, i: int, j: int) -> bool:
        try:
            self.check_add(i, j)
        except InvalidMove:
            return False
        return True

    def add_pair(self, i: int, j: int) -> None:
        """Add a pair; raises InvalidMove without mutating on failure."""
        if i > j:
            i, j = j, i
        self.check_add(i, j)
        self.partners[i] = j
        self.partners[j] = i
        self._n_pairs += 1

    def remove_pair(self, i: int, j: int) -> None:
        """Remove an existing pair; raises InvalidMove if it is absent."""
        if i > j:
            i, j = j, i
        if i < 0 or j >= len(self.partners) or self.partners[i] != j:
            raise InvalidMove(i, j, "pair not present")
        self.partners[i] = -1
        self.partners[j] = -1
        self._n_pairs -= 1

    def reset(self, partners: list[int]) -> None:
        """Restore a previously saved partners array (same length)."""
        if len(partners) != len(self.partners):
            raise ValueError(
                f"Cannot restore {len(partners)} partners into a table of length {len(self.partners)}"
            )
        self.partners[:] = partners
        self._n_pairs = sum(1 for i, j in enumerate(partners) if j > i)

    def extend(self, residues: str) -> int:
        """Append unpaired residues at the 3' end; returns the new length.

        Existing pairs are never touched.
        """
        self.sequence.extend(residues)
        self.partners.extend([-1] * (len(self.sequence) - len(self.partners)))
        return len(self.partners)

    def validate(self) -> list[str]:
        """Check all pair-table invariants.

        Returns:
            List of error messages (empty if consistent)
        """
        errors = []
        partners = self.partners
        n = len(partners)

        if len(self.sequence) != n:
            errors.append(f"Sequence length {len(self.sequence)} != table length {n}")
            return errors

        stack: list[int] = []
        count = 0
        for pos in range(n):
            p = partners[pos]
            if p == -1:
                continue
            if p < 0 or p >= n or p == pos:
                errors.append(f"partners[{pos}] = {p} out of range")
                continue
            if partners[p] != pos:
                errors.append(f"partners[{pos}] = {p}, but partners[{p}] = {partners[p]}")
                continue
            if p > pos:
                count += 1
                stack.append(pos)
                if not self.sequence.can_pair(pos, p):
                    errors.append(f"Non-canonical pair at ({pos}, {p})")
                if p - pos - 1 < self.min_hairpin:
                    errors.append(f"Hairpin loop at ({pos}, {p}) too small")
            else:
                if not stack or stack[-1] != p:
                    errors.append(f"Pair ({p}, {pos}) crosses another pair")
                else:
                    stack.pop()

        if count != self._n_pairs:
            errors.append(f"Pair count {self._n_pairs} does not match table ({count})")
        return errors


def enumerate_structures(
    sequence: Sequence | str,
    min_hairpin: int = 3,
    max_span: int | None = None,
) -> list[str]:
    """Enumerate all nested structures of a sequence for exact testing.

    Only practical for short sequences (L < 15).

    Args:
        sequence: RNA sequence
        min_hairpin: Minimum hairpin loop length
        max_span: Largest j - i of a pair (None = unbounded)

    Returns:
        Sorted list of dot-bracket structures (open chain included)
    """
    seq = Sequence(sequence)
    n = len(seq)
    results: list[str] = []

    def extend(pt: PairTable, start: int) -> None:
        results.append(pt.to_dot_bracket())
        for i in range(start, n):
            if pt.is_paired(i):
                continue
            for j in range(i + min_hairpin + 1, n):
                if max_span is not None and j - i > max_span:
                    break
                if pt.can_add(i, j):
                    pt.add_pair(i, j)
                    extend(pt, i + 1)
                    pt.remove_pair(i, j)

    extend(PairTable(seq, min_hairpin=min_hairpin), 0)
    return sorted(results)
