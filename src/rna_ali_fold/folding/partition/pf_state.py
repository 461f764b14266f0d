from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from rna_ali_fold.structures.tri_matrix import TriMatrix


@dataclass(frozen=True, slots=True)
class CircularPartition:
    """
    Scaled partition functions of the four ways to close a circular exterior loop.

    Attributes
    ----------
    z_open : float
        Open chain, every column unpaired.
    z_hairpin : float
        Exterior loop closed by a single pair.
    z_interior : float
        Exterior loop closed by exactly two pairs.
    z_multi : float
        Exterior loop with at least three branches.
    """
    z_open: float
    z_hairpin: float
    z_interior: float
    z_multi: float

    @property
    def total(self) -> float:
        return self.z_open + self.z_hairpin + self.z_interior + self.z_multi


@dataclass(slots=True)
class PartitionState:
    """
    Holds the scaled partition-function arrays of an alignment.

    Every entry covering `d` columns is multiplied by `scale[d] = pf_scale^-d`,
    so the stored values stay within floating range for long alignments.

    Attributes
    ----------
    seq_len : int
        Number of alignment columns.
    pf_scale : float
        Per-column scale factor.
    scale : List[float]
        `scale[d] = pf_scale^-d` for `d = 0..n+1`.
    qb : TriMatrix[float]
        Partition function of `i..j` given that `(i, j)` pair.
    qm : TriMatrix[float]
        Multiloop segments with at least one branch.
    qm1 : TriMatrix[float]
        Multiloop segments with exactly one branch starting at `i`.
    q5 : List[float]
        `q5[j]` is the exterior partition function of `1..j`; `q5[0] = 1`.
    q3 : List[float]
        `q3[i]` is the exterior partition function of `i..n`; `q3[n+1] = 1`.
    gquad : Optional[TriMatrix[float]]
        Scaled G-quadruplex weights, when enabled.
    probs : Optional[TriMatrix[float]]
        Pair probabilities, filled by the outside pass.
    circular : Optional[CircularPartition]
        Closures of the exterior loop, for circular alignments.
    """
    seq_len: int
    pf_scale: float
    scale: List[float]
    qb: TriMatrix
    qm: TriMatrix
    qm1: TriMatrix
    q5: List[float]
    q3: List[float]
    gquad: Optional[TriMatrix] = None
    probs: Optional[TriMatrix] = None
    circular: Optional[CircularPartition] = None

    @property
    def partition_function(self) -> float:
        """Scaled partition function `Z`; the circular closure sum when folding a circle."""
        if self.circular is not None:
            return self.circular.total
        return self.q5[self.seq_len]


def make_pf_state(seq_len: int, pf_scale: float) -> PartitionState:
    """
    Allocates the partition-function arrays.

    Parameters
    ----------
    seq_len : int
        Number of alignment columns.
    pf_scale : float
        Per-column scale factor.

    Returns
    -------
    PartitionState
        Arrays initialised to zero, with `q5[0] = q3[n+1] = 1`.
    """
    q5 = [0.0] * (seq_len + 1)
    q5[0] = 1.0
    q3 = [0.0] * (seq_len + 2)
    q3[seq_len + 1] = 1.0

    # Repeated division saturates at inf where `**` would raise.
    scale = [1.0]
    for _ in range(seq_len + 1):
        scale.append(scale[-1] / pf_scale)

    return PartitionState(
        seq_len=seq_len,
        pf_scale=pf_scale,
        scale=scale,
        qb=TriMatrix(seq_len, 0.0),
        qm=TriMatrix(seq_len, 0.0),
        qm1=TriMatrix(seq_len, 0.0),
        q5=q5,
        q3=q3,
    )
