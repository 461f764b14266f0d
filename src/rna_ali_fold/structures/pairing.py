from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from rna_ali_fold.errors import InputError

GQUAD_SYMBOL = "+"


@dataclass(frozen=True, slots=True)
class Pair:
    """
    Immutable (i, j) index pair used to represent a base pair between two columns.

    Parameters
    ----------
    base_i : int
        Left column (1-based).
    base_j : int
        Right column (1-based), must satisfy j > i in valid uses.

    Notes
    -----
    - `span` is the inclusive length (j - i + 1).
    - `loop_len` is the number of unpaired columns between `i` and `j` (`j - i - 1`).
    """
    base_i: int
    base_j: int

    @property
    def span(self) -> int:
        """Inclusive span length, ``j - i + 1``."""
        return self.base_j - self.base_i + 1

    @property
    def loop_len(self) -> int:
        """Number of columns enclosed by the pair, ``j - i - 1``."""
        return self.base_j - self.base_i - 1

    def as_tuple(self) -> tuple[int, int]:
        """
        Pair indices as a tuple.

        Returns
        -------
        tuple[int, int]
            The pair ``(i, j)``.
        """
        return self.base_i, self.base_j


def make_pair_table(seq_len: int, pairs: Iterable[Tuple[int, int]]) -> List[int]:
    """
    Build a 1-based pair table from a collection of base pairs.

    The table has length `seq_len + 1`. Entry 0 stores `seq_len`; entry `k`
    stores the partner of column `k`, or 0 when `k` is unpaired.

    Parameters
    ----------
    seq_len : int
        Number of alignment columns.
    pairs : Iterable[Tuple[int, int]]
        Pairs `(i, j)` with `1 <= i < j <= seq_len`.

    Returns
    -------
    List[int]
        The pair table.

    Raises
    ------
    InputError
        If a pair is out of range or a column is used twice.
    """
    table = [0] * (seq_len + 1)
    table[0] = seq_len
    for base_i, base_j in pairs:
        if not 1 <= base_i < base_j <= seq_len:
            raise InputError(f"Pair ({base_i}, {base_j}) lies outside columns 1..{seq_len}.")
        if table[base_i] or table[base_j]:
            raise InputError(f"Column used by more than one pair in ({base_i}, {base_j}).")
        table[base_i] = base_j
        table[base_j] = base_i

    return table


def pair_table_to_pairs(pair_table: Sequence[int]) -> List[Tuple[int, int]]:
    """Return the pairs `(i, j)` with `i < j` of a pair table, sorted by `i`."""
    return [(k, pair_table[k]) for k in range(1, len(pair_table)) if pair_table[k] > k]


def is_valid_pair_table(pair_table: Sequence[int]) -> bool:
    """
    Check that a pair table is symmetric and free of crossing pairs.

    Parameters
    ----------
    pair_table : Sequence[int]
        A 1-based pair table as built by `make_pair_table`.

    Returns
    -------
    bool
        True if `pt[pt[k]] == k` for every paired column and no two pairs cross.
    """
    n = len(pair_table) - 1
    stack: List[int] = []
    for k in range(1, n + 1):
        partner = pair_table[k]
        if partner == 0:
            continue
        if partner < 1 or partner > n or partner == k or pair_table[partner] != k:
            return False
        if partner > k:
            stack.append(k)
        else:
            if not stack or stack.pop() != partner:
                return False

    return not stack


def parse_dot_bracket(structure: str) -> Tuple[List[int], List[Tuple[int, int]]]:
    """
    Parse a dot-bracket string into a pair table and a list of G-quadruplex spans.

    Parentheses encode base pairs; `.` is unpaired. Maximal runs of `+` are
    read back as G-quadruplex spans `(first, last)`; the layer layout inside
    a span is recovered by the energy evaluator.

    Parameters
    ----------
    structure : str
        Dot-bracket structure.

    Returns
    -------
    Tuple[List[int], List[Tuple[int, int]]]
        The pair table and the G-quadruplex spans.

    Raises
    ------
    InputError
        If brackets are unbalanced or the string contains other symbols.
    """
    n = len(structure)
    stack: List[int] = []
    pairs: List[Tuple[int, int]] = []
    gquads: List[Tuple[int, int]] = []
    run_start: Optional[int] = None

    for idx, ch in enumerate(structure, start=1):
        if ch == GQUAD_SYMBOL:
            if run_start is None:
                run_start = idx
            continue
        if run_start is not None:
            gquads.append((run_start, idx - 1))
            run_start = None
        if ch == "(":
            stack.append(idx)
        elif ch == ")":
            if not stack:
                raise InputError(f"Unbalanced ')' at position {idx} in structure.")
            pairs.append((stack.pop(), idx))
        elif ch != ".":
            raise InputError(f"Unexpected symbol '{ch}' at position {idx} in structure.")

    if run_start is not None:
        gquads.append((run_start, n))
    if stack:
        raise InputError(f"Unbalanced '(' at position {stack[-1]} in structure.")

    return make_pair_table(n, pairs), gquads


def pairs_to_dotbracket(
    seq_len: int,
    pairs: Iterable[Tuple[int, int]],
    gquad_columns: Iterable[int] = (),
) -> str:
    """
    Converts base pairs and G-quadruplex layer columns into a dot-bracket string.

    Parameters
    ----------
    seq_len : int
        Number of alignment columns.
    pairs : Iterable[Tuple[int, int]]
        Base pairs `(i, j)` in 1-based columns.
    gquad_columns : Iterable[int]
        Columns covered by G-quadruplexes, written as `+`.

    Returns
    -------
    str
        The dot-bracket string.
    """
    chars = ['.'] * seq_len
    for i, j in pairs:
        if 1 <= i < j <= seq_len:
            chars[i - 1] = '('
            chars[j - 1] = ')'
    for k in gquad_columns:
        chars[k - 1] = GQUAD_SYMBOL

    return ''.join(chars)


def dotbracket_to_pairs(db: str) -> Set[Tuple[int, int]]:
    """
    Parses a dot-bracket string into a set of 1-based base pairs.

    Parameters
    ----------
    db : str
        The dot-bracket string to parse.

    Returns
    -------
    Set[Tuple[int, int]]
        Pairs `(i, j)` with `i < j`.
    """
    pair_table, _ = parse_dot_bracket(db)
    return set(pair_table_to_pairs(pair_table))


def base_pair_distance(first: Sequence[int], second: Sequence[int]) -> int:
    """Number of pairs present in exactly one of two pair tables."""
    pairs_a = set(pair_table_to_pairs(first))
    pairs_b = set(pair_table_to_pairs(second))
    return len(pairs_a ^ pairs_b)
