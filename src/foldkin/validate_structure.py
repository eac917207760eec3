"""
Structure validation module for RNA secondary structures.

This module is the SINGLE SOURCE OF TRUTH for structure validation.
Use it everywhere: unit tests, the optional per-step check of the
simulator, and when reading user supplied start or target structures.

Only nested (pseudoknot-free) dot-bracket structures are supported.
"""

from __future__ import annotations

from .errors import ConfigurationError
from .sequence import CANONICAL_PAIRS

__all__ = [
    "validate_structure",
    "parse_structure_to_pairs",
    "pairs_to_structure",
]

OPEN = "("
CLOSE = ")"
UNPAIRED = "."


def parse_structure_to_pairs(struct: str) -> list[tuple[int, int]]:
    """Parse a dot-bracket structure into base pairs.

    Args:
        struct: Dot-bracket string using only '(', ')' and '.'

    Returns:
        List of (i, j) pairs with i < j, sorted by i

    Raises:
        ConfigurationError: on unbalanced brackets or unknown characters
    """
    stack: list[int] = []
    pairs = []

    for i, ch in enumerate(struct):
        if ch == OPEN:
            stack.append(i)
        elif ch == CLOSE:
            if not stack:
                raise ConfigurationError(f"Unmatched close bracket ')' at position {i}")
            pairs.append((stack.pop(), i))
        elif ch != UNPAIRED:
            raise ConfigurationError(f"Unknown character '{ch}' at position {i}")

    if stack:
        raise ConfigurationError(f"Unmatched open bracket '(' at position {stack[-1]}")

    return sorted(pairs)


def pairs_to_structure(pairs: list[tuple[int, int]], length: int) -> str:
    """Convert nested pairs to a dot-bracket structure.

    Args:
        pairs: List of (i, j) pairs
        length: Sequence length

    Returns:
        Dot-bracket string
    """
    chars = [UNPAIRED] * length
    for i, j in pairs:
        if i > j:
            i, j = j, i
        chars[i] = OPEN
        chars[j] = CLOSE
    return "".join(chars)


def validate_structure(
    seq: str,
    struct: str,
    *,
    min_hairpin: int = 3,
    allow_lonely_pairs: bool = True,
    canonical_only: bool = True,
) -> tuple[bool, list[str]]:
    """Validate an RNA structure against all invariants.

    Args:
        seq: RNA sequence
        struct: Dot-bracket structure
        min_hairpin: Minimum unpaired bases in hairpin loops
        allow_lonely_pairs: Whether isolated pairs are allowed
        canonical_only: Only allow canonical base pairs (AU, GC, GU)

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    errors = []

    # 1. Length match
    if len(seq) != len(struct):
        errors.append(f"Length mismatch: seq={len(seq)}, struct={len(struct)}")
        return False, errors

    # 2. Parse structure and check balance
    pairs = []
    stack: list[int] = []
    for i, ch in enumerate(struct):
        if ch == OPEN:
            stack.append(i)
        elif ch == CLOSE:
            if not stack:
                errors.append(f"Unmatched close bracket ')' at position {i}")
            else:
                pairs.append((stack.pop(), i))
        elif ch != UNPAIRED:
            errors.append(f"Unknown character '{ch}' at position {i}")

    for pos in stack:
        errors.append(f"Unmatched open bracket '(' at position {pos}")

    if errors:
        return False, errors

    pair_set = set(pairs)
    openers = {i for i, _ in pairs}

    # 3. Canonical pairing check
    if canonical_only:
        for i, j in pairs:
            b1 = seq[i].upper()
            b2 = seq[j].upper()
            if (b1, b2) not in CANONICAL_PAIRS:
                errors.append(f"Non-canonical pair ({b1}, {b2}) at ({i}, {j})")

    # 4. Hairpin length check: a pair enclosing no other pair closes a hairpin
    for i, j in pairs:
        encloses = any(k in openers for k in range(i + 1, j))
        if not encloses and j - i - 1 < min_hairpin:
            errors.append(f"Hairpin loop at ({i}, {j}) too small: {j - i - 1} < {min_hairpin}")

    # 5. Lonely pair check
    if not allow_lonely_pairs:
        for i, j in pairs:
            has_stack_inside = (i + 1, j - 1) in pair_set
            has_stack_outside = (i - 1, j + 1) in pair_set
            if not has_stack_inside and not has_stack_outside:
                errors.append(f"Lonely pair at ({i}, {j})")

    return len(errors) == 0, errors
