from __future__ import annotations
from dataclasses import dataclass

from rna_ali_fold.folding.common_traceback import TraceResult, build_trace_result
from rna_ali_fold.structures.tri_matrix import TriMatrix


@dataclass(frozen=True, slots=True)
class CentroidResult:
    """
    The centroid structure of the ensemble.

    Attributes
    ----------
    trace : TraceResult
        All pairs with probability above one half.
    distance : float
        Expected base-pair distance of the centroid to the ensemble.
    """
    trace: TraceResult
    distance: float

    @property
    def structure(self) -> str:
        return self.trace.dot_bracket


def centroid_structure(probs: TriMatrix) -> CentroidResult:
    """
    Builds the centroid from the pair probabilities.

    Two pairs sharing a column or crossing each other cannot both have a
    probability above 0.5, so the selected pairs always form a valid
    nested structure.

    Parameters
    ----------
    probs : TriMatrix[float]
        Pair probabilities.

    Returns
    -------
    CentroidResult
        The centroid and its distance `Σ (P > 0.5 ? 1 − P : P)` over all pairs.
    """
    n = probs.size
    pairs = []
    distance = 0.0
    for i in range(1, n + 1):
        for j in range(i + 1, n + 1):
            p = probs.get(i, j)
            if p > 0.5:
                pairs.append((i, j))
                distance += 1.0 - p
            else:
                distance += p

    return CentroidResult(trace=build_trace_result(n, pairs), distance=distance)
