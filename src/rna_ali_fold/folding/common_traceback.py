from __future__ import annotations
from dataclasses import dataclass, field
from typing import List

from rna_ali_fold.folding.gquad import GquadLayout
from rna_ali_fold.structures import Pair, make_pair_table, pairs_to_dotbracket


@dataclass(frozen=True, slots=True)
class TraceResult:
    """
    A standard container for the result of a traceback.

    Bundles the representations of a consensus secondary structure: a list
    of base pairs, the G-quadruplexes and the corresponding dot-bracket
    string. Used by the MFE backtracking, the centroid and the stochastic
    sampler alike.

    Attributes
    ----------
    pairs : List[Pair]
        Base pairs `(i, j)` with `i < j`, sorted by the 5' column.
    dot_bracket : str
        Dot-bracket string; G-quadruplex layers are written as `+`.
    gquads : List[GquadLayout]
        G-quadruplexes in the exterior loop, sorted by start column.
    """
    pairs: List[Pair]
    dot_bracket: str
    gquads: List[GquadLayout] = field(default_factory=list)

    def pair_table(self) -> List[int]:
        """The structure as a 1-based pair table."""
        return make_pair_table(len(self.dot_bracket), (p.as_tuple() for p in self.pairs))


def build_trace_result(seq_len: int, pairs, gquads=()) -> TraceResult:
    """
    Sorts pairs and G-quadruplexes and renders the dot-bracket string.

    Parameters
    ----------
    seq_len : int
        Number of alignment columns.
    pairs : Iterable[Tuple[int, int]]
        Base pairs in 1-based columns.
    gquads : Iterable[GquadLayout]
        G-quadruplex layouts.

    Returns
    -------
    TraceResult
        The assembled result.
    """
    ordered = sorted({Pair(i, j) for i, j in pairs}, key=lambda pr: (pr.base_i, pr.base_j))
    quads = sorted(gquads, key=lambda g: g.start)
    layer_cols = [k for quad in quads for k in quad.layer_columns()]

    return TraceResult(
        pairs=ordered,
        dot_bracket=pairs_to_dotbracket(seq_len, (p.as_tuple() for p in ordered), layer_cols),
        gquads=quads,
    )
