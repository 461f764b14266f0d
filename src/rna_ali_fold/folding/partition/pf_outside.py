from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import List

from tqdm import tqdm

from rna_ali_fold.folding.partition.pf_recurrences import PartitionFunctionEngine
from rna_ali_fold.folding.partition.pf_state import PartitionState
from rna_ali_fold.structures.tri_matrix import TriMatrix

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PairProbability:
    """Equilibrium probability of the pair `(i, j)`."""
    base_i: int
    base_j: int
    probability: float


def compute_pair_probabilities(engine: PartitionFunctionEngine, state: PartitionState) -> TriMatrix:
    """
    Runs the outside pass and stores the base-pair probabilities in `state.probs`.

    Outside values are pushed from every cell to the cells its inside
    recursion refers to, by decreasing span. Within one cell, `qm` refers to
    `qm1` and `qm1` to `qb` of the same span, so the three outside values
    of a cell are completed in the order `qm`, `qm1`, `qb`. For a circular
    alignment the pass starts from the closures of the circular exterior
    loop instead of the linear exterior loop.

    Parameters
    ----------
    engine : PartitionFunctionEngine
        The engine whose inside pass filled `state`.
    state : PartitionState
        Filled inside arrays.

    Returns
    -------
    TriMatrix[float]
        `P(i, j)` for every pair; 0 where the pair is not admitted.
    """
    start_time = time.perf_counter()
    n = state.seq_len
    turn = engine.config.min_loop_size
    z = state.partition_function
    scale = state.scale
    qb, qm, qm1 = state.qb, state.qm, state.qm1
    q5, q3 = state.q5, state.q3

    qb_out: TriMatrix = TriMatrix(n, 0.0)
    qm_out: TriMatrix = TriMatrix(n, 0.0)
    qm1_out: TriMatrix = TriMatrix(n, 0.0)
    probs: TriMatrix = TriMatrix(n, 0.0)

    if state.circular is not None:
        _seed_circular(engine, state, qb_out, qm_out, qm1_out)
    else:
        # --- Exterior loop: every pair may close a stem of the exterior loop ---
        for i in range(1, n + 1):
            for j in range(i + turn + 1, n + 1):
                if qb.get(i, j) > 0.0:
                    qb_out.set(i, j, q5[i - 1] * engine.exterior_stem_weight(i, j) * q3[j + 1])

    show_progress = engine.config.verbose or logger.isEnabledFor(logging.INFO)
    span_iter = tqdm(range(n - 1, turn, -1), desc="Alifold outside", leave=True, disable=not show_progress)

    for d in span_iter:
        for i in range(1, n - d + 1):
            j = i + d

            # ---------- 1. qm[i, j] -> qm[i, k-1], qm1[k, j] ----------
            outer = qm_out.get(i, j)
            if outer > 0.0:
                for k in range(i, j - turn):
                    branch = qm1.get(k, j)
                    prefix = engine.ml_unpaired_weight(i, k - 1) * scale[k - i]
                    if k > i:
                        prefix += qm.get(i, k - 1)
                        if branch > 0.0:
                            qm_out.add(i, k - 1, outer * branch)
                    if prefix > 0.0:
                        qm1_out.add(k, j, outer * prefix)

            # ---------- 2. qm1[i, j] -> qb[i, l] ----------
            outer = qm1_out.get(i, j)
            if outer > 0.0:
                for l in range(i + turn + 1, j + 1):
                    if qb.get(i, l) == 0.0:
                        continue
                    weight = engine.ml_stem_weight(i, l) * engine.ml_unpaired_weight(l + 1, j) * scale[j - l]
                    if weight > 0.0:
                        qb_out.add(i, l, outer * weight)

            # ---------- 3. qb[i, j] -> inner pairs and multiloop segments ----------
            inside = qb.get(i, j)
            if inside == 0.0:
                continue
            outer = qb_out.get(i, j)
            probs.set(i, j, inside * outer / z)
            if outer == 0.0:
                continue

            factor = engine.pair_factor(i, j)
            for p, q, weight in engine.interior_terms(i, j, state):
                qb_out.add(p, q, outer * factor * weight / qb.get(p, q))

            closing = engine.ml_closing_weight(i, j)
            if closing > 0.0:
                ml_factor = outer * factor * closing * scale[2]
                for u, _ in engine.multiloop_terms(i, j, state):
                    qm_out.add(i + 1, u - 1, ml_factor * qm1.get(u, j - 1))
                    qm1_out.add(u, j - 1, ml_factor * qm.get(i + 1, u - 1))

    state.probs = probs

    elapsed = time.perf_counter() - start_time
    logger.info(f"Outside pass completed in {elapsed:.2f}s")

    return probs


def probability_list(probs: TriMatrix, cutoff: float) -> List[PairProbability]:
    """
    Sparse list of all pairs with `P(i, j) > cutoff`, sorted by `(i, j)`.

    Parameters
    ----------
    probs : TriMatrix[float]
        Pair probabilities.
    cutoff : float
        Probability threshold.

    Returns
    -------
    List[PairProbability]
        The retained pairs.
    """
    n = probs.size
    result: List[PairProbability] = []
    for i in range(1, n + 1):
        for j in range(i + 1, n + 1):
            p = probs.get(i, j)
            if p > cutoff:
                result.append(PairProbability(i, j, p))
    return result
