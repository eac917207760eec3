"""Tests for RNA structure validation."""

import pytest

from foldkin.errors import ConfigurationError
from foldkin.validate_structure import (
    pairs_to_structure,
    parse_structure_to_pairs,
    validate_structure,
)


class TestParseStructureToPairs:
    """Tests for parse_structure_to_pairs()."""

    def test_empty_structure(self) -> None:
        """Empty structure has no pairs."""
        assert parse_structure_to_pairs("....") == []

    def test_simple_hairpin(self) -> None:
        """Simple hairpin structure."""
        pairs = parse_structure_to_pairs("((...))")
        assert pairs == [(0, 6), (1, 5)]

    def test_multiloop_sorted(self) -> None:
        """Pairs come back sorted by 5' index."""
        pairs = parse_structure_to_pairs("(((...)((...))))")
        assert pairs == sorted(pairs)
        assert (0, 15) in pairs
        assert (3, 6) not in pairs
        assert (2, 6) in pairs

    def test_unmatched_close(self) -> None:
        """A stray ')' raises."""
        with pytest.raises(ConfigurationError, match="Unmatched close"):
            parse_structure_to_pairs("..)")

    def test_unmatched_open(self) -> None:
        """A dangling '(' raises."""
        with pytest.raises(ConfigurationError, match="Unmatched open"):
            parse_structure_to_pairs("((...)")

    def test_pseudoknot_brackets_rejected(self) -> None:
        """Only nested dot-bracket is accepted."""
        with pytest.raises(ConfigurationError, match="Unknown character"):
            parse_structure_to_pairs("((..[..))..]..")


class TestPairsToStructure:
    """Tests for pairs_to_structure()."""

    def test_empty_pairs(self) -> None:
        """No pairs gives dots."""
        assert pairs_to_structure([], 5) == "....."

    def test_simple_pairs(self) -> None:
        """Simple nested pairs."""
        assert pairs_to_structure([(0, 6), (1, 5)], 7) == "((...))"

    def test_reversed_pairs(self) -> None:
        """Pairs given as (j, i) are normalized."""
        assert pairs_to_structure([(6, 0)], 7) == "(.....)"


class TestValidateStructure:
    """Tests for validate_structure()."""

    def test_valid_simple_structure(self) -> None:
        """Valid simple structure passes."""
        is_valid, errors = validate_structure("GGGGAAAACCCC", "((((....))))")
        assert is_valid is True
        assert errors == []

    def test_length_mismatch(self) -> None:
        """Length mismatch is detected."""
        is_valid, errors = validate_structure("AAAA", "((...))")
        assert is_valid is False
        assert any("Length" in e for e in errors)

    def test_unbalanced_brackets(self) -> None:
        """Unbalanced brackets are detected."""
        is_valid, errors = validate_structure("AAAAA", "((..)")
        assert is_valid is False
        assert any("Unmatched" in e for e in errors)

    def test_hairpin_too_small(self) -> None:
        """Small hairpin is detected."""
        is_valid, errors = validate_structure("GGCC", "(())", min_hairpin=3)
        assert is_valid is False
        assert any("Hairpin" in e for e in errors)

    def test_hairpin_allowed_when_large_enough(self) -> None:
        """Hairpin passes when large enough."""
        is_valid, _ = validate_structure("GGAAACC", "((...))", min_hairpin=3)
        assert is_valid is True

    def test_min_hairpin_zero(self) -> None:
        """Adjacent pairs are legal with min_hairpin=0."""
        is_valid, _ = validate_structure("GC", "()", min_hairpin=0)
        assert is_valid is True

    def test_lonely_pair_detected(self) -> None:
        """Lonely (isolated) pairs are detected."""
        is_valid, errors = validate_structure("GAAAC", "(...)", allow_lonely_pairs=False)
        assert is_valid is False
        assert any("Lonely" in e for e in errors)

    def test_lonely_pair_allowed(self) -> None:
        """Lonely pairs pass when allowed."""
        is_valid, _ = validate_structure("GAAAC", "(...)", allow_lonely_pairs=True)
        assert is_valid is True

    def test_stacked_pairs_not_lonely(self) -> None:
        """Stacked pairs pass the lonely check."""
        is_valid, _ = validate_structure("GGAAACC", "((...))", allow_lonely_pairs=False)
        assert is_valid is True

    def test_canonical_only(self) -> None:
        """Non-canonical pairs detected when canonical_only=True."""
        is_valid, errors = validate_structure("AAAAA", "(...)", canonical_only=True)
        assert is_valid is False
        assert any("Non-canonical" in e for e in errors)

    def test_wildcard_never_pairs(self) -> None:
        """N is not complementary to anything."""
        is_valid, errors = validate_structure("NAAAC", "(...)")
        assert is_valid is False
        assert any("Non-canonical" in e for e in errors)

    def test_canonical_check_disabled(self) -> None:
        """Non-canonical pairs pass when canonical_only=False."""
        is_valid, _ = validate_structure("AAAAA", "(...)", canonical_only=False)
        assert is_valid is True

    def test_wobble_pairs(self) -> None:
        """GU and UG wobble pairs are canonical."""
        assert validate_structure("GAAAU", "(...)")[0] is True
        assert validate_structure("UAAAG", "(...)")[0] is True
