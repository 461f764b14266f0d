from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Final, List, Optional, Sequence, Tuple

from rna_ali_fold.errors import ConstraintConflict
from rna_ali_fold.rules.constraints import MIN_HAIRPIN_UNPAIRED, HardConstraints
from rna_ali_fold.rules.pair_types import PairMatrix, PairType
from rna_ali_fold.rules.substitution import HAMMING, SubstitutionMatrix
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.structures.tri_matrix import TriMatrix
from rna_ali_fold.utils.nucleotide_utils import END_GAP_CHAR, is_gap

logger = logging.getLogger(__name__)

# Scores are kept on the dcal/mol grid.
UNIT: Final[int] = 100

# Pairs whose neighbours both score below this are pruned when lonely pairs are off.
LONELY_PAIR_THRESHOLD: Final[int] = -4 * UNIT


@dataclass(frozen=True, slots=True)
class PairTally:
    """
    Per-type row counts of one alignment column pair.

    Attributes
    ----------
    counts : Tuple[int, ...]
        Row counts indexed by `PairType`; index 0 holds the non-compatible
        rows (including rows with a gap on exactly one side).
    gap_gap : int
        Rows with a gap in both columns.
    gapped : int
        Rows with a gap, or an end gap, in at least one of the two columns.
    end_gapped : int
        Rows skipped because one of the columns is an end gap.
    """
    counts: Tuple[int, ...]
    gap_gap: int
    gapped: int
    end_gapped: int

    @property
    def non_compatible(self) -> int:
        return self.counts[PairType.NONE]

    @property
    def compatible(self) -> int:
        """Rows whose bases can pair, canonical or nonstandard."""
        return sum(self.counts[1:])

    @property
    def n_types(self) -> int:
        """Number of distinct canonical pair types present."""
        return sum(1 for t in range(1, 7) if self.counts[t] > 0)


def tally_pair(alignment: Alignment, pair_matrix: PairMatrix, base_i: int, base_j: int) -> PairTally:
    """
    Count, per pair type, the rows of `alignment` at columns `(i, j)`.

    Rows with an end gap (`~`) in either column are skipped entirely.
    """
    counts = [0] * 8
    gap_gap = gapped = end_gapped = 0
    for s, row in enumerate(alignment.rows):
        char_i, char_j = row[base_i - 1], row[base_j - 1]
        if char_i == END_GAP_CHAR or char_j == END_GAP_CHAR:
            end_gapped += 1
            gapped += 1
            continue
        gap_i, gap_j = is_gap(char_i), is_gap(char_j)
        if gap_i or gap_j:
            gapped += 1
        if gap_i and gap_j:
            gap_gap += 1
            continue
        encoded = alignment.encoding[s]
        counts[pair_matrix.pair_type(encoded[base_i], encoded[base_j])] += 1

    return PairTally(counts=tuple(counts), gap_gap=gap_gap, gapped=gapped, end_gapped=end_gapped)


def raw_covariation_score(
    tally: PairTally,
    n_seq: int,
    cv_fact: float,
    nc_fact: float,
    matrix: SubstitutionMatrix = HAMMING,
) -> int:
    """
    Covariation bonus of a column pair, before any admissibility rule.

    The bonus sums `matrix.score` over every unordered pair of canonically
    pairing rows. With the default Hamming matrix it grows with the number
    of distinct pair types weighted by how many bases differ between them.
    The penalty counts non-compatible rows fully and gap-gap rows with
    weight 0.25.

    Returns
    -------
    int
        `trunc(cv_fact · (100·bonus/N − nc_fact·100·(non_compatible + 0.25·gap_gap)))`.
    """
    counts = tally.counts
    bonus = 0.0
    for k in range(1, 7):
        if not counts[k]:
            continue
        # Row pairs of the same type.
        bonus += counts[k] * (counts[k] - 1) // 2 * matrix.score(k, k)
        for l in range(k + 1, 7):
            bonus += counts[k] * counts[l] * matrix.score(k, l)

    penalty = tally.non_compatible + tally.gap_gap * 0.25
    return int(cv_fact * ((UNIT * bonus) / n_seq - nc_fact * UNIT * penalty))


def covariation_score(
    tally: PairTally,
    n_seq: int,
    cv_fact: float,
    nc_fact: float,
    matrix: SubstitutionMatrix = HAMMING,
) -> Optional[int]:
    """
    Covariation score of a column pair, or None if the pair is not admissible.

    A pair is rejected when twice the non-compatible rows plus the gap-gap
    rows outnumber the rows, when every row has a gap in one of the columns,
    or when no row can form it.
    """
    if 2 * tally.non_compatible + tally.gap_gap > n_seq:
        return None
    if tally.gapped >= n_seq or tally.compatible == 0:
        return None

    return raw_covariation_score(tally, n_seq, cv_fact, nc_fact, matrix)


@dataclass(frozen=True, slots=True)
class CovariationMatrix:
    """
    Covariation scores of every column pair of an alignment.

    Attributes
    ----------
    seq_len : int
        Number of alignment columns.
    n_seq : int
        Number of rows.
    scores : TriMatrix
        `Optional[int]` per pair; None marks a pair the model does not admit.
    raw : TriMatrix
        Score of every pair with the admissibility rules ignored. Used when
        scoring a user-supplied structure.
    conflicts : Tuple[ConstraintConflict, ...]
        Constrained pairs that were admitted against the covariation rules,
        or that stay forbidden because no row can form them.
    """
    seq_len: int
    n_seq: int
    scores: TriMatrix
    raw: TriMatrix
    conflicts: Tuple[ConstraintConflict, ...] = ()

    def pscore(self, base_i: int, base_j: int) -> Optional[int]:
        return self.scores.get(base_i, base_j)

    def raw_score(self, base_i: int, base_j: int) -> int:
        return self.raw.get(base_i, base_j)

    def is_allowed(self, base_i: int, base_j: int) -> bool:
        return self.scores.get(base_i, base_j) is not None

    def energy_bonus(self, base_i: int, base_j: int) -> int:
        """Covariation score of an admitted pair in row-summed dcal/mol."""
        return self.scores.get(base_i, base_j) * self.n_seq

    def allowed_pairs(self) -> List[Tuple[int, int]]:
        """All admitted pairs `(i, j)` in row-major order."""
        n = self.seq_len
        return [(i, j) for i in range(1, n + 1) for j in range(i + 1, n + 1) if self.is_allowed(i, j)]


def build_covariation_matrix(
    alignment: Alignment,
    pair_matrix: PairMatrix,
    *,
    cv_fact: float = 1.0,
    nc_fact: float = 1.0,
    no_lonely_pairs: bool = False,
    hard_constraints: Optional[HardConstraints] = None,
    min_loop_size: int = MIN_HAIRPIN_UNPAIRED,
    matrix: SubstitutionMatrix = HAMMING,
) -> CovariationMatrix:
    """
    Score every column pair of `alignment`.

    Parameters
    ----------
    alignment : Alignment
        The input alignment.
    pair_matrix : PairMatrix
        Base-pair lookup for the model configuration.
    cv_fact : float
        Weight of the covariation term.
    nc_fact : float
        Weight of the non-compatibility penalty.
    no_lonely_pairs : bool
        Prune pairs that cannot be part of a helix of length two.
    hard_constraints : Optional[HardConstraints]
        Forced pairs are admitted against the covariation rules when at least
        one row can form them.
    min_loop_size : int
        Pairs enclosing fewer columns are never admitted.
    matrix : SubstitutionMatrix
        Scores of pair-type combinations; Hamming distance by default,
        a RIBOSUM-style table for RIBOSUM scoring.

    Returns
    -------
    CovariationMatrix
        The scored matrix.
    """
    n = alignment.length
    n_seq = alignment.n_seq
    scores: TriMatrix = TriMatrix(n, None)
    raw: TriMatrix = TriMatrix(n, 0)
    tallies = {}

    # --- Score ---
    for i in range(1, n + 1):
        for j in range(i + 1, n + 1):
            tally = tally_pair(alignment, pair_matrix, i, j)
            raw.set(i, j, raw_covariation_score(tally, n_seq, cv_fact, nc_fact, matrix))
            if j - i - 1 < min_loop_size:
                continue
            tallies[(i, j)] = tally
            scores.set(i, j, covariation_score(tally, n_seq, cv_fact, nc_fact, matrix))

    # --- Lonely pair pruning (neighbours read before any pair is removed) ---
    if no_lonely_pairs:
        lonely = [
            (i, j)
            for i in range(1, n + 1)
            for j in range(i + min_loop_size + 1, n + 1)
            if scores.get(i, j) is not None
            and _score_or_floor(scores, i - 1, j + 1, n) < LONELY_PAIR_THRESHOLD
            and _score_or_floor(scores, i + 1, j - 1, n) < LONELY_PAIR_THRESHOLD
        ]
        for base_i, base_j in lonely:
            scores.set(base_i, base_j, None)
        logger.debug(f"Pruned {len(lonely)} pairs that cannot stack")

    # --- Constrained pairs override the admissibility rules ---
    conflicts: List[ConstraintConflict] = []
    if hard_constraints is not None:
        for base_i, base_j in hard_constraints.forced_pairs:
            if scores.get(base_i, base_j) is not None:
                continue
            tally = tallies.get((base_i, base_j))
            if tally is not None and tally.compatible > 0:
                conflict = ConstraintConflict(base_i, base_j, "pair admitted although the covariation model rejects it")
                scores.set(base_i, base_j, raw.get(base_i, base_j))
            else:
                conflict = ConstraintConflict(base_i, base_j, "no row can form this pair")
            logger.warning(str(conflict))
            conflicts.append(conflict)

    return CovariationMatrix(
        seq_len=n,
        n_seq=n_seq,
        scores=scores,
        raw=raw,
        conflicts=tuple(conflicts),
    )


def _score_or_floor(scores: TriMatrix, base_i: int, base_j: int, n: int) -> float:
    if base_i < 1 or base_j > n or base_i >= base_j:
        return float("-inf")
    value = scores.get(base_i, base_j)
    return float("-inf") if value is None else value
