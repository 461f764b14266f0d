from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from typing import Final, Iterable, Tuple

from rna_ali_fold.errors import InputError
from rna_ali_fold.utils.nucleotide_utils import NUCLEOTIDE_CODES, normalize_base


class PairType(IntEnum):
    """
    Pair classes used to index every pair-dependent energy table.

    NONE : The two bases cannot pair.
    CG .. UA : The six canonical and wobble pairs.
    NS : A user-enabled nonstandard pair, scored with neutral table entries.
    """
    NONE = 0
    CG = 1
    GC = 2
    GU = 3
    UG = 4
    AU = 5
    UA = 6
    NS = 7


CANONICAL_TYPES: Final[Tuple[PairType, ...]] = (
    PairType.CG, PairType.GC, PairType.GU, PairType.UG, PairType.AU, PairType.UA,
)

PAIR_LABELS: Final[Tuple[str, ...]] = ("", "CG", "GC", "GU", "UG", "AU", "UA", "--")

# Type of the same pair read from the opposite strand, (i, j) -> (j, i).
REVERSE_TYPE: Final[Tuple[int, ...]] = (0, 2, 1, 4, 3, 6, 5, 7)

# Number of positions at which two canonical pair types differ.
PAIR_DISTANCE: Final[Tuple[Tuple[int, ...], ...]] = tuple(
    tuple(
        0 if t1 == 0 or t2 == 0 else
        (PAIR_LABELS[t1][0] != PAIR_LABELS[t2][0]) + (PAIR_LABELS[t1][1] != PAIR_LABELS[t2][1])
        for t2 in range(7)
    )
    for t1 in range(7)
)

_CANONICAL_BY_BASES: Final[dict] = {
    ("C", "G"): PairType.CG,
    ("G", "C"): PairType.GC,
    ("G", "U"): PairType.GU,
    ("U", "G"): PairType.UG,
    ("A", "U"): PairType.AU,
    ("U", "A"): PairType.UA,
}


def parse_nonstandard_pairs(codes: str) -> Tuple[Tuple[str, str], ...]:
    """
    Parse a comma-separated list of nonstandard pairs such as ``"GA,AG,-UU"``.

    A leading `-` adds the pair in both orientations.

    Parameters
    ----------
    codes : str
        Comma-separated two-letter pair codes.

    Returns
    -------
    Tuple[Tuple[str, str], ...]
        The normalised base pairs.

    Raises
    ------
    InputError
        If an entry is not two nucleotide letters.
    """
    out = []
    for token in codes.split(","):
        token = token.strip()
        if not token:
            continue
        both = token.startswith("-")
        if both:
            token = token[1:]
        if len(token) != 2:
            raise InputError(f"Nonstandard pair '{token}' must be two nucleotide letters.")
        base_i, base_j = normalize_base(token[0]), normalize_base(token[1])
        if base_i not in NUCLEOTIDE_CODES or base_j not in NUCLEOTIDE_CODES:
            raise InputError(f"Nonstandard pair '{token}' must use A, C, G or U.")
        out.append((base_i, base_j))
        if both:
            out.append((base_j, base_i))

    return tuple(out)


@dataclass(frozen=True, slots=True)
class PairMatrix:
    """
    Lookup table from encoded base pairs to `PairType`.

    Attributes
    ----------
    table : Tuple[Tuple[int, ...], ...]
        5x5 table indexed by the numeric codes of the two bases (0 = gap/other).
    """
    table: Tuple[Tuple[int, ...], ...]

    @classmethod
    def build(cls, *, no_gu: bool = False, nonstandard: Iterable[Tuple[str, str]] = ()) -> PairMatrix:
        """
        Build the pair lookup for a model configuration.

        Parameters
        ----------
        no_gu : bool
            Forbid GU and UG pairs everywhere.
        nonstandard : Iterable[Tuple[str, str]]
            Extra base combinations allowed to pair, classified as `PairType.NS`.

        Returns
        -------
        PairMatrix
            The lookup table.
        """
        rows = [[0] * 5 for _ in range(5)]
        for (base_i, base_j), ptype in _CANONICAL_BY_BASES.items():
            if no_gu and ptype in (PairType.GU, PairType.UG):
                continue
            rows[NUCLEOTIDE_CODES[base_i]][NUCLEOTIDE_CODES[base_j]] = int(ptype)
        for base_i, base_j in nonstandard:
            code_i, code_j = NUCLEOTIDE_CODES[base_i], NUCLEOTIDE_CODES[base_j]
            if rows[code_i][code_j] == 0:
                rows[code_i][code_j] = int(PairType.NS)

        return cls(table=tuple(tuple(row) for row in rows))

    def pair_type(self, code_i: int, code_j: int) -> int:
        """Return the pair type of two encoded bases, 0 if they cannot pair."""
        if code_i <= 0 or code_j <= 0:
            return 0
        return self.table[code_i][code_j]

    def can_pair(self, code_i: int, code_j: int) -> bool:
        """True if the two encoded bases may form a pair."""
        return self.pair_type(code_i, code_j) != 0


def is_gu_type(ptype: int) -> bool:
    """True for GU and UG wobble pairs."""
    return ptype in (PairType.GU, PairType.UG)
