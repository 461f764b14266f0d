"""
Unit tests for base-pair containers and dot-bracket conversions.

Validates the `Pair` value object, pair tables, the dot-bracket parser
(including G-quadruplex runs written as `+`) and the base-pair distance.
"""
import pytest

from rna_ali_fold.errors import InputError
from rna_ali_fold.structures.pairing import (
    Pair,
    base_pair_distance,
    dotbracket_to_pairs,
    is_valid_pair_table,
    make_pair_table,
    pair_table_to_pairs,
    pairs_to_dotbracket,
    parse_dot_bracket,
)


def test_pair_properties():
    """
    Tests the derived properties of `Pair`.
    """
    pair = Pair(2, 9)

    assert pair.span == 8
    assert pair.loop_len == 6
    assert pair.as_tuple() == (2, 9)


def test_make_pair_table_and_back():
    """
    Tests that a pair table is symmetric, stores n at index 0 and converts back to pairs.
    """
    table = make_pair_table(8, [(1, 8), (2, 7)])

    assert table[0] == 8
    assert table[1] == 8 and table[8] == 1
    assert table[2] == 7 and table[7] == 2
    assert table[4] == 0
    assert pair_table_to_pairs(table) == [(1, 8), (2, 7)]


def test_make_pair_table_rejects_bad_pairs():
    """
    Tests that out-of-range pairs and columns used twice are rejected.
    """
    with pytest.raises(InputError):
        make_pair_table(5, [(0, 4)])
    with pytest.raises(InputError):
        make_pair_table(5, [(2, 6)])
    with pytest.raises(InputError):
        make_pair_table(8, [(1, 6), (1, 8)])


def test_is_valid_pair_table():
    """
    Tests that nested tables are valid while crossing or asymmetric ones are not.
    """
    nested = make_pair_table(10, [(1, 10), (2, 5), (6, 9)])
    assert is_valid_pair_table(nested)

    # A pseudoknot: (1, 5) crosses (3, 8).
    crossing = [8, 5, 0, 8, 0, 1, 0, 0, 3]
    assert not is_valid_pair_table(crossing)

    # Partner of 1 is 5 but partner of 5 is 2.
    asymmetric = [5, 5, 0, 0, 0, 2]
    assert not is_valid_pair_table(asymmetric)


def test_parse_dot_bracket_pairs_and_gquad_runs():
    """
    Tests that brackets become pairs and maximal `+` runs become G-quadruplex spans.
    """
    table, runs = parse_dot_bracket("++.++.++.++..((...))")

    assert runs == [(1, 2), (4, 5), (7, 8), (10, 11)]
    assert pair_table_to_pairs(table) == [(14, 20), (15, 19)]


@pytest.mark.parametrize("bad", ["(((...))", "(...))", "((..]]"])
def test_parse_dot_bracket_errors(bad):
    """
    Tests that unbalanced brackets and foreign symbols raise `InputError`.
    """
    with pytest.raises(InputError):
        parse_dot_bracket(bad)


def test_pairs_to_dotbracket_with_gquad_columns():
    """
    Tests rendering of pairs and G-quadruplex layer columns.
    """
    db = pairs_to_dotbracket(12, [(9, 12)], gquad_columns=[1, 2])

    assert db == "++......(..)"


def test_dotbracket_to_pairs_and_distance():
    """
    Tests the set conversion and the base-pair distance between two structures.
    """
    assert dotbracket_to_pairs("((...))") == {(1, 7), (2, 6)}

    first, _ = parse_dot_bracket("((....))")
    second, _ = parse_dot_bracket("(......)")
    third, _ = parse_dot_bracket("..(..)..")

    # (2, 7) is present only in the first structure.
    assert base_pair_distance(first, second) == 1
    # No pair in common: 2 + 1 pairs differ.
    assert base_pair_distance(first, third) == 3
    assert base_pair_distance(first, first) == 0
