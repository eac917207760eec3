"""
Elementary structural moves and move-set generation.

Move types:
- ADD: form one base pair between two unpaired positions of the same loop
- REMOVE: open one existing base pair
- SHIFT: move one end of an existing pair by one position (optional)

Every move carries its precomputed energy delta. The move set of a
structure is ordered canonically (removals by 5' index, then additions by
(i, j), then shifts by (i, j, new_i, new_j)) so that rate-weighted selection
is reproducible.

Two generators produce the same tuple of moves:
- generate_moves: rebuilds the complete move set from the loop index
- IncrementalMoveSet: caches add moves per loop and remove/shift moves
  per pair, and only recomputes the entries a move can have changed
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .energy import LoopIndex
from .errors import ConfigurationError, InvalidMove
from .structure import PairTable

__all__ = [
    "MoveType",
    "Move",
    "MoveSetConfig",
    "generate_moves",
    "apply_move",
    "IncrementalMoveSet",
]

Pair = tuple[int, int]

# Pairs within this distance of a changed pair can see their lonely-pair
# terms or their shift neighbours change.
_NEIGHBORHOOD = 3


class MoveType(Enum):
    """Types of elementary moves (value = rank in the canonical order)."""

    REMOVE = 0
    ADD = 1
    SHIFT = 2


@dataclass(frozen=True)
class Move:
    """One candidate transition.

    Attributes:
        kind: Type of move
        i: 5' position of the pair added, removed or shifted
        j: 3' position of that pair
        delta: Energy change of the move (kcal/mol)
        new_i: 5' position of the shifted pair after the move (SHIFT only)
        new_j: 3' position of the shifted pair after the move (SHIFT only)
    """

    kind: MoveType
    i: int
    j: int
    delta: float
    new_i: int = -1
    new_j: int = -1

    @property
    def sort_key(self) -> tuple[int, int, int, int, int]:
        return (self.kind.value, self.i, self.j, self.new_i, self.new_j)

    def describe(self) -> str:
        if self.kind is MoveType.ADD:
            return f"+({self.i},{self.j})"
        if self.kind is MoveType.REMOVE:
            return f"-({self.i},{self.j})"
        return f"({self.i},{self.j})>({self.new_i},{self.new_j})"

    def pair_changes(self) -> tuple[tuple[Pair, ...], tuple[Pair, ...]]:
        """Pairs (removed, added) by this move."""
        if self.kind is MoveType.ADD:
            return (), ((self.i, self.j),)
        if self.kind is MoveType.REMOVE:
            return ((self.i, self.j),), ()
        return ((self.i, self.j),), ((self.new_i, self.new_j),)


@dataclass(frozen=True)
class MoveSetConfig:
    """Which moves are legal.

    Attributes:
        allow_shift: Generate SHIFT moves as single kinetic events
        max_span: Largest j - i of an added pair (None = unbounded)
    """

    allow_shift: bool = False
    max_span: int | None = None

    def __post_init__(self) -> None:
        if self.max_span is not None and self.max_span < 1:
            raise ConfigurationError(f"max_span must be >= 1 or None, got {self.max_span}")

    def span_ok(self, i: int, j: int) -> bool:
        return self.max_span is None or j - i <= self.max_span


def _add_moves(
    pair_table: PairTable,
    loop_index: LoopIndex,
    key: Pair | None,
    config: MoveSetConfig,
    limit: int,
) -> list[Move]:
    """All pair additions inside the loop ``key``."""
    seq = pair_table.sequence
    min_hp = pair_table.min_hairpin
    unpaired = [p for p in loop_index.unpaired_positions(loop_index.loop(key)) if p < limit]
    moves = []
    for a, i in enumerate(unpaired):
        for j in unpaired[a + 1 :]:
            if j - i - 1 < min_hp:
                continue
            if not config.span_ok(i, j):
                break
            if seq.can_pair(i, j):
                moves.append(Move(MoveType.ADD, i, j, loop_index.delta_add(i, j)))
    return moves


def _shift_targets(
    pair_table: PairTable,
    i: int,
    j: int,
    config: MoveSetConfig,
    limit: int,
) -> list[Pair]:
    """New pairs reachable from (i, j) by moving one end by one position.

    An unpaired neighbour of a pair end always lies in the parent loop or
    in the loop closed by the pair, so the new pair is nested whenever the
    neighbour is free.
    """
    partners = pair_table.partners
    seq = pair_table.sequence
    min_hp = pair_table.min_hairpin
    targets = []
    for k, l in ((i - 1, j), (i + 1, j), (i, j - 1), (i, j + 1)):
        if k < 0 or l >= limit:
            continue
        moved = k if k != i else l
        if partners[moved] != -1:
            continue
        if l - k - 1 < min_hp or not config.span_ok(k, l):
            continue
        if seq.can_pair(k, l):
            targets.append((k, l))
    return sorted(targets)


def _pair_moves(
    pair_table: PairTable,
    loop_index: LoopIndex,
    pair: Pair,
    config: MoveSetConfig,
    limit: int,
) -> list[Move]:
    """Removal of ``pair`` followed by its shifts."""
    i, j = pair
    moves = [Move(MoveType.REMOVE, i, j, loop_index.delta_remove(i, j))]
    if config.allow_shift:
        for k, l in _shift_targets(pair_table, i, j, config, limit):
            moves.append(Move(MoveType.SHIFT, i, j, loop_index.delta_shift(i, j, k, l), k, l))
    return moves


def _limit(pair_table: PairTable, limit: int | None) -> int:
    n = len(pair_table)
    return n if limit is None else min(limit, n)


def generate_moves(
    pair_table: PairTable,
    loop_index: LoopIndex,
    config: MoveSetConfig | None = None,
    *,
    limit: int | None = None,
) -> tuple[Move, ...]:
    """Build the complete legal move set of the current structure.

    Args:
        pair_table: Current structure
        loop_index: Loop decomposition of ``pair_table``
        config: Move set configuration
        limit: Exclude positions >= limit (None = whole sequence)

    Returns:
        Tuple of moves in canonical order
    """
    if config is None:
        config = MoveSetConfig()
    limit = _limit(pair_table, limit)
    moves: list[Move] = []
    for key in loop_index.loops():
        moves.extend(_add_moves(pair_table, loop_index, key, config, limit))
    for pair in pair_table.pairs():
        if pair[1] < limit:
            moves.extend(_pair_moves(pair_table, loop_index, pair, config, limit))
    moves.sort(key=lambda m: m.sort_key)
    return tuple(moves)


def apply_move(move: Move, pair_table: PairTable, loop_index: LoopIndex) -> list[Pair | None]:
    """Apply ``move`` to the structure and its loop index.

    Returns:
        Keys of the loops that changed

    Raises:
        InvalidMove: if the move is not legal on the current structure
    """
    i, j = move.i, move.j
    if move.kind is MoveType.ADD:
        pair_table.add_pair(i, j)
        return loop_index.apply_add(i, j)
    if move.kind is MoveType.REMOVE:
        pair_table.remove_pair(i, j)
        return loop_index.apply_remove(i, j)

    k, l = move.new_i, move.new_j
    if pair_table.partner(i) != j:
        raise InvalidMove(i, j, "shifted pair not present")
    pair_table.remove_pair(i, j)
    try:
        pair_table.add_pair(k, l)
    except InvalidMove:
        pair_table.add_pair(i, j)
        raise
    return loop_index.apply_shift(i, j, k, l)


class IncrementalMoveSet:
    """Move set patched loop by loop after each applied move.

    Add moves are cached per loop key and remove/shift moves per pair.
    After a move, the changed loops (as reported by the loop index) get
    fresh add moves; every pair closing or branching off a changed loop
    gets fresh remove/shift moves; pairs and loops near the moved pairs
    are refreshed as well since their lonely-pair terms and shift
    neighbours may have changed.
    """

    def __init__(
        self,
        pair_table: PairTable,
        loop_index: LoopIndex,
        config: MoveSetConfig | None = None,
        *,
        limit: int | None = None,
    ) -> None:
        self.pair_table = pair_table
        self.loop_index = loop_index
        self.config = config if config is not None else MoveSetConfig()
        self.limit = limit
        self._adds: dict[Pair | None, list[Move]] = {}
        self._pairs: dict[Pair, list[Move]] = {}
        self._cached: tuple[Move, ...] | None = None
        self.rebuild()

    def rebuild(self) -> None:
        limit = _limit(self.pair_table, self.limit)
        self._adds = {
            key: _add_moves(self.pair_table, self.loop_index, key, self.config, limit)
            for key in self.loop_index.loops()
        }
        self._pairs = {
            pair: _pair_moves(self.pair_table, self.loop_index, pair, self.config, limit)
            for pair in self.pair_table.pairs()
            if pair[1] < limit
        }
        self._cached = None

    def update(
        self,
        changed: list[Pair | None],
        removed: tuple[Pair, ...] = (),
        added: tuple[Pair, ...] = (),
    ) -> None:
        """Refresh the cache after a move or a sequence extension.

        Args:
            changed: Loop keys reported by the loop index
            removed: Pairs removed by the move
            added: Pairs added by the move
        """
        pt = self.pair_table
        index = self.loop_index
        partners = pt.partners
        n = len(pt)
        limit = _limit(pt, self.limit)

        loops: set[Pair | None] = set(changed)
        pairs: set[Pair] = set()
        for key in changed:
            if key is not None:
                pairs.add(key)
            pairs.update(index.loop(key).branches)

        for a, b in removed + added:
            for pos in {a + d for d in range(-_NEIGHBORHOOD, _NEIGHBORHOOD + 1)} | {
                b + d for d in range(-_NEIGHBORHOOD, _NEIGHBORHOOD + 1)
            }:
                if not 0 <= pos < n:
                    continue
                loops.add(index.loop_of(pos))
                partner = partners[pos]
                if partner != -1:
                    pair = (min(pos, partner), max(pos, partner))
                    pairs.add(pair)
                    loops.add(pair)

        for pair in removed:
            self._pairs.pop(pair, None)
            self._adds.pop(pair, None)

        for key in loops:
            self._adds[key] = _add_moves(pt, index, key, self.config, limit)
        for pair in pairs:
            if pair[1] < limit:
                self._pairs[pair] = _pair_moves(pt, index, pair, self.config, limit)
        self._cached = None

    def apply(self, move: Move) -> list[Pair | None]:
        """Apply ``move`` to structure and loop index, then patch the cache."""
        changed = apply_move(move, self.pair_table, self.loop_index)
        removed, added = move.pair_changes()
        self.update(changed, removed, added)
        return changed

    def moves(self) -> tuple[Move, ...]:
        if self._cached is None:
            moves: list[Move] = []
            for adds in self._adds.values():
                moves.extend(adds)
            for pair_moves in self._pairs.values():
                moves.extend(pair_moves)
            moves.sort(key=lambda m: m.sort_key)
            self._cached = tuple(moves)
        return self._cached
