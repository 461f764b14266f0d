from __future__ import annotations
import logging
import math
from typing import List

from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.folding.alifold.fold_state import AliFoldState, CircularSummary
from rna_ali_fold.folding.alifold.recurrences import AliFoldEngine
from rna_ali_fold.rules.constraints import LoopContext

logger = logging.getLogger(__name__)


def fill_circular(engine: AliFoldEngine, state: AliFoldState) -> CircularSummary:
    """
    Closes the exterior loop of a circular alignment.

    After the linear fill, the exterior loop of a circular molecule is one
    more loop closed across the `n -> 1` junction. It is either empty (open
    chain), a hairpin closed by one pair (`FcH`), an interior loop closed by
    two pairs (`FcI`) or a multiloop with at least three branches (`FcM`).
    Dangles on the exterior pairs follow the multiloop rules of the policy.

    Parameters
    ----------
    engine : AliFoldEngine
        The engine whose linear fill populated `state`.
    state : AliFoldState
        Filled MFE arrays; `state.circular` is set on return.

    Returns
    -------
    CircularSummary
        The optimal closure and the three closure optima.
    """
    n = state.seq_len
    model = engine.energy_model
    hard = engine.hard
    turn = engine.config.min_loop_size
    max_loop = engine.config.max_loop_size
    c_matrix = state.c_matrix
    fml_matrix = state.fml_matrix

    # --- Open chain: every column unpaired ---
    best_energy = 0 if hard.unpaired_range_ok(1, n) else INF
    best_kind = "open"
    best_pairs: tuple = ()
    best_split = None

    # --- FcH and FcI ---
    fc_h, fc_h_pairs = INF, ()
    fc_i, fc_i_pairs = INF, ()
    for i in range(1, n + 1):
        for j in range(i + turn + 1, n + 1):
            c_ij = c_matrix.get(i, j)
            if c_ij == INF or not hard.allows(i, j, LoopContext.EXT_LOOP):
                continue

            wrap_size = n - j + i - 1
            if wrap_size >= turn and hard.unpaired_range_ok(j + 1, n) and hard.unpaired_range_ok(1, i - 1):
                loop_energy = model.hairpin_circular(i, j)
                if c_ij + loop_energy < fc_h:
                    fc_h, fc_h_pairs = c_ij + loop_energy, ((i, j),)

            if not hard.unpaired_range_ok(1, i - 1):
                continue
            for p in range(j + 1, min(j + max_loop + 1, n - turn - 1) + 1):
                u1 = p - j - 1
                if u1 and not hard.unpaired_ok(p - 1):
                    break
                for q in range(n, p + turn, -1):
                    u2 = i - 1 + n - q
                    if u1 + u2 > max_loop:
                        break
                    if q < n and not hard.unpaired_ok(q + 1):
                        break
                    c_pq = c_matrix.get(p, q)
                    if c_pq == INF or not hard.allows(p, q, LoopContext.EXT_LOOP):
                        continue
                    cand = c_ij + c_pq + model.interior_circular(i, j, p, q)
                    if cand < fc_i:
                        fc_i, fc_i_pairs = cand, ((i, j), (p, q))

    # --- FcM: fML[1, k] + fM2[k + 1] + closing penalty ---
    fm2: List[float] = [INF] * (n + 2)
    fm2_split: List[int] = [0] * (n + 2)
    for k in range(n - 1, 0, -1):
        for u in range(k + 1, n):
            cand = fml_matrix.get(k, u) + fml_matrix.get(u + 1, n)
            if cand < fm2[k]:
                fm2[k], fm2_split[k] = cand, u

    fc_m, fc_m_split = INF, None
    closing = model.params.ml_closing * model.n_seq
    for k in range(1, n - 1):
        cand = fml_matrix.get(1, k) + fm2[k + 1]
        if cand + closing < fc_m:
            fc_m, fc_m_split = cand + closing, (k, fm2_split[k + 1])

    # Tie order: open chain, hairpin, interior, multiloop.
    for energy, kind, pairs, split in (
        (fc_h, "hairpin", fc_h_pairs, None),
        (fc_i, "interior", fc_i_pairs, None),
        (fc_m, "multi", (), fc_m_split),
    ):
        if energy < best_energy:
            best_energy, best_kind, best_pairs, best_split = energy, kind, pairs, split

    summary = CircularSummary(
        energy=best_energy,
        kind=best_kind,
        pairs=best_pairs,
        split=best_split,
        fc_hairpin=fc_h,
        fc_interior=fc_i,
        fc_multi=fc_m,
    )
    state.circular = summary

    if math.isfinite(best_energy):
        logger.info(
            f"Circular closure: {best_kind} at {best_energy / (100.0 * model.n_seq):.2f} kcal/mol "
            f"(FcH={fc_h}, FcI={fc_i}, FcM={fc_m})"
        )
    return summary
