"""
Unit tests for the alignment MFE state container and its backpointers.
"""
import math

from rna_ali_fold.folding.alifold import (
    AliFoldBacktrackOp,
    AliFoldBackPointer,
    CircularSummary,
    make_fold_state,
)


def test_make_fold_state_initialisation():
    """
    Tests that every energy cell starts at infinity and every backpointer is empty.
    """
    state = make_fold_state(6)

    assert state.seq_len == 6
    assert len(state.f5) == 7
    assert all(math.isinf(v) for v in state.f5)
    assert math.isinf(state.c_matrix.get(1, 6))
    assert math.isinf(state.fml_matrix.get(2, 5))
    assert state.c_back_ptr.get(1, 6).operation is AliFoldBacktrackOp.NONE
    assert state.f5_back_ptr[3].operation is AliFoldBacktrackOp.NONE
    assert state.gquad is None and state.circular is None


def test_backpointers_are_distinct_objects_per_f5_cell():
    """
    Tests that the `f5` backpointer list does not alias a single object.
    """
    state = make_fold_state(4)

    state.f5_back_ptr[2] = AliFoldBackPointer(operation=AliFoldBacktrackOp.EXT_UNPAIRED, prefix=1)

    assert state.f5_back_ptr[1].operation is AliFoldBacktrackOp.NONE
    assert state.f5_back_ptr[2].prefix == 1


def test_mfe_energy_reads_circular_summary():
    """
    Tests that the optimum comes from `f5[n]`, or from the circular closure when present.
    """
    state = make_fold_state(5, init_energy=0)
    state.f5[5] = -120

    assert state.mfe_energy == -120

    state.circular = CircularSummary(energy=-300, kind="hairpin", pairs=((1, 5),))
    assert state.mfe_energy == -300


def test_back_pointer_defaults():
    """
    Tests the default, immutable backpointer.
    """
    bp = AliFoldBackPointer()

    assert bp.operation is AliFoldBacktrackOp.NONE
    assert bp.inner is None and bp.split_k is None and bp.segments is None
    assert AliFoldBackPointer(operation=AliFoldBacktrackOp.ML_SPLIT, split_k=7).split_k == 7
