"""
Unit tests for hard and soft structure constraints.

Hard constraints are compiled from a dot-bracket string into per-pair loop
context masks and per-column unpairing permissions. Soft constraints add a
per-column pseudo-energy for unpaired exterior columns.
"""
import pytest

from rna_ali_fold.errors import InputError
from rna_ali_fold.rules.constraints import (
    HardConstraints,
    LoopContext,
    SoftConstraints,
    hairpin_size,
    is_min_hairpin_size,
)


def test_hairpin_size_helpers():
    """
    Tests the hairpin-size helpers on 1-based columns.
    """
    assert hairpin_size(1, 5) == 3
    assert is_min_hairpin_size(1, 5)
    assert not is_min_hairpin_size(1, 4)
    assert is_min_hairpin_size(1, 4, min_unpaired=2)


def test_unconstrained_allows_everything():
    """
    Tests that unconstrained folding admits every pair in every context.
    """
    hard = HardConstraints.unconstrained(8)

    assert hard.allows(1, 8, LoopContext.HP_LOOP)
    assert hard.allows(2, 7, LoopContext.MB_LOOP_ENC)
    assert hard.unpaired_range_ok(1, 8)
    assert hard.forced_pairs == ()


def test_forced_pair_blocks_competitors_and_crossings():
    """
    Tests that `( )` forces the pair, forbids pairs sharing a column and
    forbids pairs crossing it.
    """
    hard = HardConstraints.from_dot_bracket(".(....).", 8)

    assert hard.forced_pairs == ((2, 7),)
    assert hard.pair_allowed(2, 7)
    # Competing partners of 2 and 7.
    assert not hard.pair_allowed(1, 2)
    assert not hard.pair_allowed(2, 6)
    assert not hard.pair_allowed(3, 7)
    # Crossing pairs.
    assert not hard.pair_allowed(1, 4)
    assert not hard.pair_allowed(5, 8)
    # Nested and enclosing pairs stay allowed.
    assert hard.pair_allowed(3, 6)
    assert hard.pair_allowed(1, 8)
    # Forced columns cannot stay unpaired.
    assert not hard.unpaired_ok(2)
    assert not hard.unpaired_ok(7)
    assert hard.unpaired_ok(1)


def test_unpaired_and_paired_symbols():
    """
    Tests `x` (must stay unpaired), `|` (must pair), `<` and `>` (pair direction).
    """
    hard = HardConstraints.from_dot_bracket("x..|<..>", 8)

    # x: no pair may use column 1.
    assert not any(hard.pair_allowed(1, j) for j in range(2, 9))
    # |: column 4 must pair with any partner.
    assert not hard.unpaired_ok(4)
    assert hard.pair_allowed(4, 8)
    # <: column 5 pairs downstream only.
    assert not hard.pair_allowed(2, 5)
    assert hard.pair_allowed(5, 8)
    # >: column 8 pairs upstream only (it is the last column).
    assert not hard.unpaired_ok(8)


def test_unpaired_range():
    """
    Tests the prefix-sum range check, including empty ranges.
    """
    hard = HardConstraints.from_dot_bracket("...|....", 8)

    assert hard.unpaired_range_ok(1, 3)
    assert not hard.unpaired_range_ok(2, 6)
    assert hard.unpaired_range_ok(5, 8)
    assert hard.unpaired_range_ok(5, 4)


@pytest.mark.parametrize(
    "constraint, seq_len",
    [
        ("(...)", 6),   # length mismatch
        ("(...", 4),    # unbalanced open
        ("...)", 4),    # unbalanced close
        ("..a.", 4),    # unknown symbol
    ],
)
def test_invalid_constraints_raise(constraint, seq_len):
    """
    Tests that malformed constraint strings raise `InputError`.
    """
    with pytest.raises(InputError):
        HardConstraints.from_dot_bracket(constraint, seq_len)


def test_soft_constraints():
    """
    Tests per-column bias values and their row-summed dcal/mol conversion.
    """
    soft = SoftConstraints.from_values([0.0, -0.5, 1.25], seq_len=3)

    assert not soft.is_empty
    assert soft.unpaired_energy(2, 3) == -150
    assert soft.unpaired_energy(3, 2) == 250
    assert soft.unpaired_energy(1, 4) == 0

    assert SoftConstraints.none(5).is_empty

    with pytest.raises(InputError):
        SoftConstraints.from_values([0.0, 1.0], seq_len=3)
