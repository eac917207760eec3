"""Tests for sequences and the pair-table structure representation."""

import pytest

from foldkin.errors import ConfigurationError, InvalidMove
from foldkin.sequence import Sequence, can_pair, is_terminal_au
from foldkin.structure import PairTable, enumerate_structures
from foldkin.validate_structure import validate_structure


class TestSequence:
    """Tests for Sequence."""

    def test_normalization(self) -> None:
        """Lower case is upper-cased and T read as U."""
        seq = Sequence("ggtac")
        assert str(seq) == "GGUAC"
        assert seq == "GGUAC"

    def test_unknown_symbol(self) -> None:
        """Symbols outside ACGUN raise."""
        with pytest.raises(ConfigurationError, match="Unknown nucleotide"):
            Sequence("GGXA")

    def test_pairing_rules(self) -> None:
        """Watson-Crick and wobble pairs only; N never pairs."""
        assert can_pair("G", "C") and can_pair("U", "G")
        assert not can_pair("A", "C")
        assert not can_pair("N", "U")
        assert is_terminal_au("GU") and not is_terminal_au("CG")

    def test_prefix_and_extend(self) -> None:
        """Extension appends at the 3' end and leaves the prefix intact."""
        seq = Sequence("GGGAAACCC")
        prefix = seq.prefix(4)
        assert prefix == "GGGA"
        prefix.extend("aa")
        assert prefix == "GGGAAA"
        assert seq == "GGGAAACCC"

    def test_unhashable(self) -> None:
        """A growing sequence cannot be a dict key or set member."""
        seq = Sequence("GGGA")
        with pytest.raises(TypeError):
            hash(seq)
        with pytest.raises(TypeError):
            {seq: 1}
        assert seq == Sequence("GGGA")

    def test_prefix_out_of_range(self) -> None:
        """Prefixes longer than the sequence raise."""
        with pytest.raises(ConfigurationError):
            Sequence("GGG").prefix(4)


class TestPairTable:
    """Tests for PairTable construction and queries."""

    def test_from_dot_bracket(self) -> None:
        """Dot-bracket round trip and partner lookups."""
        pt = PairTable.from_dot_bracket("GGGAAACCC", "(((...)))")
        assert pt.partner(0) == 8 and pt.partner(8) == 0
        assert pt.partner(4) == -1
        assert pt.n_pairs == 3
        assert pt.to_dot_bracket() == "(((...)))"
        assert pt.validate() == []

    def test_length_mismatch(self) -> None:
        """Structure of the wrong length is a configuration error."""
        with pytest.raises(ConfigurationError, match="does not match"):
            PairTable.from_dot_bracket("GGGAAACCC", "((...))")

    def test_invalid_initial_structure(self) -> None:
        """Non-complementary start pairs raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Invalid initial structure"):
            PairTable.from_dot_bracket("AAAAAAA", "((...))")

    def test_hairpin_too_small_initial(self) -> None:
        """Start structures must respect min_hairpin."""
        with pytest.raises(ConfigurationError):
            PairTable.from_dot_bracket("GGAACC", "((..))", min_hairpin=3)
        pt = PairTable.from_dot_bracket("GGAACC", "((..))", min_hairpin=2)
        assert pt.n_pairs == 2

    def test_enclosing_pair(self) -> None:
        """Innermost enclosing pair, skipping closed branches."""
        pt = PairTable.from_dot_bracket(
            "GGGAGCAAAGCAGCAAAGCACCC", "(((.((...)).((...)).)))"
        )
        assert pt.enclosing_pair(3) == (2, 20)
        assert pt.enclosing_pair(11) == (2, 20)
        assert pt.enclosing_pair(7) == (5, 9)
        assert pt.enclosing_pair(4) == (2, 20)
        assert pt.enclosing_pair(10) == (2, 20)
        assert pt.enclosing_pair(1) == (0, 22)
        assert pt.enclosing_pair(0) is None

    def test_loop_members(self) -> None:
        """Branches and unpaired positions of a multiloop."""
        pt = PairTable.from_dot_bracket(
            "GGGAGCAAAGCAGCAAAGCACCC", "(((.((...)).((...)).)))"
        )
        branches, unpaired = pt.loop_members((2, 20))
        assert branches == [(4, 10), (12, 18)]
        assert unpaired == [3, 11, 19]
        branches, unpaired = pt.loop_members(None)
        assert branches == [(0, 22)]
        assert unpaired == []

    def test_copy_is_independent(self) -> None:
        """Copies do not share state."""
        pt = PairTable.from_dot_bracket("GGGAAACCC", "(((...)))")
        other = pt.copy()
        other.remove_pair(0, 8)
        assert pt.partner(0) == 8
        assert other.partner(0) == -1
        assert other.n_pairs == 2


class TestPairTableMutation:
    """Tests for add/remove and their InvalidMove conditions."""

    def test_add_and_remove(self) -> None:
        """Adding then removing restores the open chain."""
        pt = PairTable("GGGAAACCC")
        pt.add_pair(0, 8)
        assert pt.to_dot_bracket() == "(.......)"
        pt.remove_pair(0, 8)
        assert pt.to_dot_bracket() == "........."
        assert pt.n_pairs == 0

    @pytest.mark.parametrize(
        "i,j,reason",
        [
            (0, 9, "out of range"),
            (2, 2, "self pairing"),
            (0, 3, "non-complementary"),
            (2, 6, "hairpin"),
        ],
    )
    def test_add_rejected(self, i: int, j: int, reason: str) -> None:
        """Illegal additions raise InvalidMove and leave the table unchanged."""
        pt = PairTable("GGGAAACCC", min_hairpin=4)
        with pytest.raises(InvalidMove, match=reason):
            pt.add_pair(i, j)
        assert pt.n_pairs == 0
        assert pt.to_dot_bracket() == "........."

    def test_add_already_paired(self) -> None:
        """A paired position cannot take a second partner."""
        pt = PairTable.from_dot_bracket("GGGAAACCC", "(((...)))")
        with pytest.raises(InvalidMove, match="already paired"):
            pt.add_pair(0, 7)

    def test_add_crossing(self) -> None:
        """Crossing pairs are rejected."""
        pt = PairTable.from_dot_bracket("GGAGAACCAAAAC", "((....)).....")
        # (1, 6) encloses 3 but not 12
        assert not pt.can_add(3, 12)
        with pytest.raises(InvalidMove, match="cross"):
            pt.add_pair(3, 12)

    def test_remove_absent(self) -> None:
        """Removing a pair that is not present raises."""
        pt = PairTable("GGGAAACCC")
        with pytest.raises(InvalidMove, match="not present"):
            pt.remove_pair(0, 8)

    def test_invalid_move_carries_positions(self) -> None:
        """InvalidMove exposes the offending pair."""
        pt = PairTable("GGGAAACCC")
        with pytest.raises(InvalidMove) as exc:
            pt.add_pair(0, 3)
        assert (exc.value.i, exc.value.j) == (0, 3)

    def test_reset(self) -> None:
        """reset restores a saved partner array."""
        pt = PairTable.from_dot_bracket("GGGAAACCC", "(((...)))")
        saved = list(pt.partners)
        pt.remove_pair(1, 7)
        pt.reset(saved)
        assert pt.to_dot_bracket() == "(((...)))"
        assert pt.n_pairs == 3

    def test_extend_keeps_pairs(self) -> None:
        """Extension appends unpaired positions only."""
        pt = PairTable.from_dot_bracket("GGGAAACCC", "(((...)))")
        assert pt.extend("AAG") == 12
        assert pt.to_dot_bracket() == "(((...)))..."
        assert str(pt.sequence) == "GGGAAACCCAAG"
        assert pt.validate() == []


class TestEnumerateStructures:
    """Tests for exhaustive enumeration."""

    def test_single_hairpin_sequence(self) -> None:
        """Only (0, 5) can close on GAAAAC."""
        assert enumerate_structures("GAAAAC") == ["(....)", "......"]

    def test_all_valid_and_unique(self) -> None:
        """Every enumerated structure is valid and listed once."""
        seq = "GGGAAACCC"
        structures = enumerate_structures(seq)
        assert len(structures) == len(set(structures))
        assert "(((...)))" in structures
        for s in structures:
            assert validate_structure(seq, s)[0], s

    def test_max_span(self) -> None:
        """max_span removes long-range pairs."""
        structures = enumerate_structures("GGGAAACCC", max_span=6)
        assert "(((...)))" not in structures
        for s in structures:
            pairs = PairTable.from_dot_bracket("GGGAAACCC", s).pairs()
            assert all(j - i <= 6 for i, j in pairs)
