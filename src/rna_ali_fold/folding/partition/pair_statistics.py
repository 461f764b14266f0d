from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Collection, List, Tuple

from rna_ali_fold.rules.pair_types import PairMatrix, PairType
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.structures.tri_matrix import TriMatrix
from rna_ali_fold.utils.nucleotide_utils import is_gap

# Pairs below this probability are not reported.
PMIN = 0.0008

# Index of the gapped-row count in `PairInfo.type_counts`.
GAP_TYPE_INDEX = 7


@dataclass(frozen=True, slots=True)
class PairInfo:
    """
    Statistics of one probable consensus pair.

    Attributes
    ----------
    base_i, base_j : int
        The pair, 1-based.
    probability : float
        Equilibrium pair probability.
    entropy : float
        Positional entropy `S(i) + S(j)`.
    type_counts : Tuple[int, ...]
        Rows per class: index 0 non-compatible, 1-6 the canonical pair types
        CG, GC, GU, UG, AU, UA, and 7 rows with a gap or end gap in either
        column. A gapped row is counted in slot 7 only.
    nonstandard : int
        Rows forming a nonstandard pair.
    in_mfe : bool
        True if the pair is part of the MFE structure.
    """
    base_i: int
    base_j: int
    probability: float
    entropy: float
    type_counts: Tuple[int, ...]
    nonstandard: int
    in_mfe: bool

    @property
    def non_compatible(self) -> int:
        return self.type_counts[0]

    @property
    def gapped(self) -> int:
        return self.type_counts[GAP_TYPE_INDEX]

    @property
    def n_types(self) -> int:
        """Number of distinct canonical pair types among the rows."""
        return sum(1 for t in range(1, 7) if self.type_counts[t])

    @property
    def rank_score(self) -> float:
        """Sort key: probability plus a small bonus for consistent covariation."""
        return self.probability + 0.01 * self.n_types / (self.non_compatible + 1)


def positional_entropy(probs: TriMatrix) -> List[float]:
    """`S(k) = Σ −p · ln p` over all pairs incident to column `k`, 1-based."""
    n = probs.size
    entropy = [0.0] * (n + 1)
    for i in range(1, n + 1):
        for j in range(i + 1, n + 1):
            p = probs.get(i, j)
            if p > 0.0:
                term = -p * math.log(p)
                entropy[i] += term
                entropy[j] += term
    return entropy


def row_classes(
    alignment: Alignment, pair_matrix: PairMatrix, base_i: int, base_j: int
) -> Tuple[Tuple[int, ...], int]:
    """
    Bin every row of column pair `(i, j)` into one `PairInfo` class.

    Rows with a gap in either column go to slot 7 and nowhere else, so
    `non_compatible` only counts rows whose two bases cannot pair.

    Returns
    -------
    Tuple[Tuple[int, ...], int]
        The eight class counts and the number of nonstandard rows.
    """
    counts = [0] * 8
    nonstandard = 0
    for s, row in enumerate(alignment.rows):
        if is_gap(row[base_i - 1]) or is_gap(row[base_j - 1]):
            counts[GAP_TYPE_INDEX] += 1
            continue
        encoded = alignment.encoding[s]
        ptype = pair_matrix.pair_type(encoded[base_i], encoded[base_j])
        if ptype == PairType.NS:
            nonstandard += 1
        else:
            counts[ptype] += 1
    return tuple(counts), nonstandard


def pair_statistics(
    alignment: Alignment,
    pair_matrix: PairMatrix,
    probs: TriMatrix,
    mfe_pairs: Collection[Tuple[int, int]],
) -> List[PairInfo]:
    """
    Collects `PairInfo` for every pair with `P >= PMIN`.

    Parameters
    ----------
    alignment : Alignment
        The folded alignment.
    pair_matrix : PairMatrix
        Base-pair lookup of the fold.
    probs : TriMatrix[float]
        Pair probabilities.
    mfe_pairs : Collection[Tuple[int, int]]
        Pairs of the MFE structure.

    Returns
    -------
    List[PairInfo]
        Sorted by `rank_score` descending, ties by `(i, j)`.
    """
    n = probs.size
    entropy = positional_entropy(probs)
    in_mfe = set(mfe_pairs)
    infos: List[PairInfo] = []
    for i in range(1, n + 1):
        for j in range(i + 1, n + 1):
            p = probs.get(i, j)
            if p < PMIN:
                continue
            type_counts, nonstandard = row_classes(alignment, pair_matrix, i, j)
            infos.append(PairInfo(
                base_i=i,
                base_j=j,
                probability=p,
                entropy=entropy[i] + entropy[j],
                type_counts=type_counts,
                nonstandard=nonstandard,
                in_mfe=(i, j) in in_mfe,
            ))

    infos.sort(key=lambda info: (-info.rank_score, info.base_i, info.base_j))
    return infos
