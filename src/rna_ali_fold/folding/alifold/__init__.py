from rna_ali_fold.folding.alifold.back_pointer import AliFoldBacktrackOp, AliFoldBackPointer
from rna_ali_fold.folding.alifold.fold_state import AliFoldState, CircularSummary, make_fold_state
from rna_ali_fold.folding.alifold.recurrences import AliFoldEngine
from rna_ali_fold.folding.alifold.circular import fill_circular
from rna_ali_fold.folding.alifold.traceback import traceback_alifold
from rna_ali_fold.folding.alifold.energy_eval import EnergyDecomposition, StructureEvaluator

__all__ = [
    "AliFoldBacktrackOp",
    "AliFoldBackPointer",
    "AliFoldState",
    "CircularSummary",
    "make_fold_state",
    "AliFoldEngine",
    "fill_circular",
    "traceback_alifold",
    "EnergyDecomposition",
    "StructureEvaluator",
]
