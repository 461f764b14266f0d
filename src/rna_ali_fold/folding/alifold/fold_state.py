from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.folding.alifold.back_pointer import AliFoldBackPointer
from rna_ali_fold.folding.gquad import GquadTable
from rna_ali_fold.structures.tri_matrix import TriMatrix


@dataclass(slots=True)
class AliFoldState:
    """
    Holds all DP arrays of the alignment MFE fill.

    Energies are row-summed integers in dcal/mol (covariation included), or `INF`.

    Attributes
    ----------
    f5 : List[float]
        `f5[j]` is the optimal energy of the prefix `1..j`; `f5[0] = 0`.
    c_matrix : TriMatrix[float]
        `c[i, j]` is the optimal energy of `i..j` given that `(i, j)` pair.
        Without lonely pairs this is restricted to pairs stacked on `(i+1, j-1)`.
    cc_matrix : TriMatrix[float]
        Unrestricted pair energies, used only when lonely pairs are forbidden.
    fml_matrix : TriMatrix[float]
        `fML[i, j]` is the optimal energy of a multiloop segment with at least one branch.
    f5_back_ptr : List[AliFoldBackPointer]
        Backpointers of `f5`.
    c_back_ptr, cc_back_ptr, fml_back_ptr : TriMatrix[AliFoldBackPointer]
        Backpointers of the matrices.
    gquad : Optional[GquadTable]
        G-quadruplex energies, when enabled.
    """
    seq_len: int
    f5: List[float]
    c_matrix: TriMatrix
    cc_matrix: TriMatrix
    fml_matrix: TriMatrix
    f5_back_ptr: List[AliFoldBackPointer]
    c_back_ptr: TriMatrix
    cc_back_ptr: TriMatrix
    fml_back_ptr: TriMatrix
    gquad: Optional[GquadTable] = None
    circular: Optional[CircularSummary] = None

    @property
    def mfe_energy(self) -> float:
        """Row-summed optimal energy of the whole alignment."""
        if self.circular is not None:
            return self.circular.energy
        return self.f5[self.seq_len]


@dataclass(frozen=True, slots=True)
class CircularSummary:
    """
    Optimal exterior-loop closures of a circular alignment.

    Attributes
    ----------
    energy : float
        Optimum over the open chain, `FcH`, `FcI` and `FcM`.
    kind : str
        Which closure is optimal: "open", "hairpin", "interior" or "multi".
    pairs : tuple
        The pairs closing the exterior loop for "hairpin" and "interior".
    split : Optional[tuple]
        `(k, u)` of the multiloop decomposition `fML[1, k] + fML[k+1, u] + fML[u+1, n]`.
    fc_hairpin, fc_interior, fc_multi : float
        The three closure optima.
    """
    energy: float
    kind: str
    pairs: tuple = ()
    split: Optional[tuple] = None
    fc_hairpin: float = INF
    fc_interior: float = INF
    fc_multi: float = INF


def make_fold_state(seq_len: int, init_energy: float = INF) -> AliFoldState:
    """
    Allocates and initializes the arrays of the MFE fill.

    Parameters
    ----------
    seq_len : int
        Number of alignment columns.
    init_energy : float, optional
        Initial value of every energy cell, by default `INF`.

    Returns
    -------
    AliFoldState
        A new state object.
    """
    return AliFoldState(
        seq_len=seq_len,
        f5=[init_energy] * (seq_len + 1),
        c_matrix=TriMatrix(seq_len, init_energy),
        cc_matrix=TriMatrix(seq_len, init_energy),
        fml_matrix=TriMatrix(seq_len, init_energy),
        f5_back_ptr=[AliFoldBackPointer() for _ in range(seq_len + 1)],
        c_back_ptr=TriMatrix(seq_len, AliFoldBackPointer()),
        cc_back_ptr=TriMatrix(seq_len, AliFoldBackPointer()),
        fml_back_ptr=TriMatrix(seq_len, AliFoldBackPointer()),
    )
