from __future__ import annotations
from typing import List, Set, Tuple

from rna_ali_fold.errors import NoSolution
from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.folding.alifold.back_pointer import AliFoldBackPointer, AliFoldBacktrackOp
from rna_ali_fold.folding.alifold.fold_state import AliFoldState
from rna_ali_fold.folding.common_traceback import TraceResult, build_trace_result
from rna_ali_fold.folding.gquad import GquadLayout

Frame = Tuple[str, int, int]


def traceback_alifold(state: AliFoldState) -> TraceResult:
    """
    Reconstructs the MFE consensus structure of a filled alignment fold.

    Linear alignments are traced from `f5[n]`. For circular alignments the
    exterior closure recorded in `state.circular` seeds the traceback.

    Parameters
    ----------
    state : AliFoldState
        The state object containing the filled arrays and backpointers.

    Returns
    -------
    TraceResult
        The base pairs, G-quadruplexes and dot-bracket string.

    Raises
    ------
    NoSolution
        If the optimal energy is infinite.
    """
    n = state.seq_len
    if state.mfe_energy == INF:
        raise NoSolution("No structure satisfies the constraints; the optimal energy is infinite.")

    if state.circular is None:
        return _traceback_core(state, seed_frames=[('F5', 0, n)])

    summary = state.circular
    frames: List[Frame] = []
    if summary.kind in ("hairpin", "interior"):
        frames = [('C', i, j) for i, j in summary.pairs]
    elif summary.kind == "multi" and summary.split is not None:
        k, u = summary.split
        frames = [('ML', 1, k), ('ML', k + 1, u), ('ML', u + 1, n)]

    return _traceback_core(state, seed_frames=frames)


def _traceback_core(state: AliFoldState, *, seed_frames: List[Frame]) -> TraceResult:
    """
    Core stack-based traceback state machine.

    Frames are `('F5', 0, j)` for the exterior prefix `1..j`, `('C', i, j)`
    and `('CC', i, j)` for a pair `(i, j)` (restricted and unrestricted
    without lonely pairs), and `('ML', i, j)` for a multiloop segment. Pairs
    are collected whenever a `C` or `CC` frame is opened.
    """
    n = state.seq_len
    pairs: Set[Tuple[int, int]] = set()
    gquads: List[GquadLayout] = []
    stack: List[Frame] = list(seed_frames)

    f5_bp = state.f5_back_ptr
    c_bp = state.c_back_ptr
    cc_bp = state.cc_back_ptr
    fml_bp = state.fml_back_ptr

    while stack:
        which, i, j = stack.pop()

        # --- Exterior loop ---
        if which == 'F5':
            if j <= 0:
                continue
            bp: AliFoldBackPointer = f5_bp[j]
            op = bp.operation

            if op is AliFoldBacktrackOp.EXT_UNPAIRED:
                stack.append(('F5', 0, j - 1))

            elif op is AliFoldBacktrackOp.EXT_STEM and bp.inner is not None:
                stack.append(('C', *bp.inner))
                stack.append(('F5', 0, bp.prefix))

            elif op is AliFoldBacktrackOp.EXT_GQUAD and bp.inner is not None:
                gquads.append(state.gquad.layouts[bp.inner])
                stack.append(('F5', 0, bp.prefix))

        # --- Pair (i, j) ---
        elif which in ('C', 'CC'):
            pairs.add((i, j))
            bp = c_bp.get(i, j) if which == 'C' else cc_bp.get(i, j)
            op = bp.operation

            # Hairpin: terminal.
            if op is AliFoldBacktrackOp.HAIRPIN:
                continue

            elif op is AliFoldBacktrackOp.STACK_ONLY and bp.inner is not None:
                stack.append(('CC', *bp.inner))

            elif op is AliFoldBacktrackOp.INTERIOR and bp.inner is not None:
                stack.append(('C', *bp.inner))

            elif op is AliFoldBacktrackOp.MULTI and bp.segments is not None:
                first, second = bp.segments
                stack.append(('ML', *second))
                stack.append(('ML', *first))

        # --- Multiloop segment ---
        elif which == 'ML':
            if i >= j:
                continue
            bp = fml_bp.get(i, j)
            op = bp.operation

            if op is AliFoldBacktrackOp.ML_UNPAIRED_LEFT:
                stack.append(('ML', i + 1, j))

            elif op is AliFoldBacktrackOp.ML_UNPAIRED_RIGHT:
                stack.append(('ML', i, j - 1))

            elif op is AliFoldBacktrackOp.ML_STEM and bp.inner is not None:
                stack.append(('C', *bp.inner))

            elif op is AliFoldBacktrackOp.ML_SPLIT and bp.split_k is not None:
                k = bp.split_k
                stack.append(('ML', k, j))
                stack.append(('ML', i, k - 1))

    return build_trace_result(n, pairs, gquads)
